"""Typed access to the user, product and cart collections."""
from typing import List, Optional

from errors import NotFoundError
from schemas import Cart, Product, Role, User


def _dump(model) -> dict:
    return model.model_dump(mode="json", exclude={"id"})


class UserStore:
    collection = "user"

    def __init__(self, store):
        self.store = store

    def ensure_indexes(self):
        self.store.create_index(self.collection, "email", unique=True)

    def find_by_email(self, email: str) -> Optional[User]:
        doc = self.store.find_one(self.collection, {"email": email})
        return User(**doc) if doc else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        doc = self.store.find_by_id(self.collection, user_id)
        return User(**doc) if doc else None

    def create(self, user: User) -> User:
        return User(**self.store.create(self.collection, _dump(user)))

    def save(self, user: User) -> User:
        doc = self.store.update(self.collection, user.id, _dump(user))
        if doc is None:
            raise NotFoundError("User not found")
        return User(**doc)

    def attach_cart(self, user_id: str, cart_id: str) -> User:
        doc = self.store.update(self.collection, user_id, {"cart": cart_id})
        if doc is None:
            raise NotFoundError("User not found")
        return User(**doc)

    def set_role(self, email: str, role: Role) -> Optional[User]:
        user = self.find_by_email(email)
        if user is None:
            return None
        user.role = role
        return self.save(user)


class ProductStore:
    collection = "product"

    def __init__(self, store):
        self.store = store

    def all(self) -> List[Product]:
        return [Product(**d) for d in self.store.find(self.collection)]

    def get(self, product_id: str) -> Optional[Product]:
        doc = self.store.find_by_id(self.collection, product_id)
        return Product(**doc) if doc else None

    def create(self, product: Product) -> Product:
        return Product(**self.store.create(self.collection, _dump(product)))

    def update(self, product_id: str, fields: dict) -> Optional[Product]:
        doc = self.store.update(self.collection, product_id, fields)
        return Product(**doc) if doc else None

    def delete(self, product_id: str) -> Optional[Product]:
        doc = self.store.delete(self.collection, product_id)
        return Product(**doc) if doc else None


class CartStore:
    collection = "cart"

    def __init__(self, store):
        self.store = store

    def get(self, cart_id: str) -> Optional[Cart]:
        doc = self.store.find_by_id(self.collection, cart_id)
        return Cart(**doc) if doc else None

    def create(self, cart: Cart) -> Cart:
        return Cart(**self.store.create(self.collection, _dump(cart)))

    def save(self, cart: Cart) -> Cart:
        doc = self.store.update(self.collection, cart.id, _dump(cart))
        if doc is None:
            raise NotFoundError("Cart Not Found")
        return Cart(**doc)
