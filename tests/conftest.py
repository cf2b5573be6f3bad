"""
Shared fixtures

Every test gets a fresh in-memory store, so tests never depend on each
other or on a running MongoDB server.
"""
import pytest
from fastapi.testclient import TestClient

from auth import AuthService
from cart import CartService
from catalog import CatalogService
from database import MemoryStore
from main import create_app
from schemas import Role
from settings import Settings
from stores import CartStore, ProductStore, UserStore


@pytest.fixture
def settings():
    # Lowest bcrypt cost keeps the suite fast
    return Settings(database_url="memory://", jwt_secret="test-secret", bcrypt_rounds=4)


@pytest.fixture
def store():
    return MemoryStore("test")


@pytest.fixture
def users(store):
    users = UserStore(store)
    users.ensure_indexes()
    return users


@pytest.fixture
def products(store):
    return ProductStore(store)


@pytest.fixture
def auth(users, settings):
    return AuthService(users, settings)


@pytest.fixture
def catalog(products):
    return CatalogService(products)


@pytest.fixture
def carts(store, products, users):
    return CartService(CartStore(store), products, users)


@pytest.fixture
def shopper(auth):
    """A registered user with the default role."""
    return auth.register("Alice", "alice@example.com", "secret")


@pytest.fixture
def admin(auth, users):
    auth.register("Root", "root@example.com", "secret")
    return users.set_role("root@example.com", Role.admin)


@pytest.fixture
def test_client(settings, store):
    app = create_app(settings, store=store)
    with TestClient(app) as client:
        yield client


def signup(client: TestClient, name: str, email: str, password: str = "secret") -> str:
    """Register through the API and return the login token."""
    client.post("/register", json={"name": name, "email": email, "password": password})
    response = client.post("/login", json={"email": email, "password": password})
    return response.json()["token"]
