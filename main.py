import logging
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AuthService
from cart import CartService
from catalog import CatalogService
from database import open_store
from errors import AuthError, ForbiddenError, NotFoundError, ShopError, StoreError
from settings import Settings
from stores import CartStore, ProductStore, UserStore

logger = logging.getLogger(__name__)

router = APIRouter()


# Error boundary

@contextmanager
def error_boundary(fallback: int, statuses: Optional[Dict[type, int]] = None):
    """Turn any failure inside the block into an HTTPException.

    Error kinds listed in ``statuses`` get their mapped status; everything
    else, unexpected exceptions included, gets ``fallback``.
    """
    statuses = statuses or {}
    try:
        yield
    except ShopError as exc:
        status = next((code for kind, code in statuses.items() if isinstance(exc, kind)), fallback)
        logger.info("%s: %s", type(exc).__name__, exc.message)
        raise HTTPException(status_code=status, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("unhandled error")
        raise HTTPException(status_code=fallback, detail="Internal Server Error") from exc


# Dependencies

def get_auth(request: Request) -> AuthService:
    return request.app.state.auth


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_carts(request: Request) -> CartService:
    return request.app.state.carts


def bearer_token(
    authorization: Optional[str] = Header(default=None),
    token: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Accept ``Authorization: Bearer <token>`` or a bare ``token`` header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1]
    return token


# Request models

class RegisterInput(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class LoginInput(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class ProductIn(BaseModel):
    name: str
    description: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    brand: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    brand: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)


class ProductEdit(BaseModel):
    product_data: ProductUpdate = Field(..., alias="productData")


class CartAdd(BaseModel):
    products: List[str]


class CartRemove(BaseModel):
    product_id: str = Field(..., alias="productID")


# Routes

@router.get("/")
def read_root():
    return {"message": "Storefront API"}


@router.get("/test")
def test_database(request: Request):
    store = getattr(request.app.state, "store", None)
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if store is None:
        return response
    try:
        store.ping()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        response["database_name"] = store.name
        response["collections"] = store.collection_names()
    except StoreError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth

@router.post("/register")
def register(payload: RegisterInput, auth: AuthService = Depends(get_auth)):
    with error_boundary(400):
        auth.register(payload.name, payload.email, payload.password)
    return {"message": "User is created successfully"}


@router.post("/login")
def login(payload: LoginInput, auth: AuthService = Depends(get_auth)):
    with error_boundary(400):
        user = auth.login(payload.email, payload.password)
    return {"message": "User is logged in successfully", "token": user.token, **user.public()}


# Products

@router.get("/products")
def list_products(catalog: CatalogService = Depends(get_catalog)):
    with error_boundary(400):
        products = catalog.list()
    return {"products": products}


@router.post("/add-product")
def add_product(
    data: ProductIn,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    catalog: CatalogService = Depends(get_catalog),
):
    with error_boundary(500):
        user = auth.current_user(token)
        product = catalog.create(user, data.model_dump())
    return {"message": "Product created successfully", "product": product}


@router.get("/product/{product_id}")
def get_product(
    product_id: str,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    catalog: CatalogService = Depends(get_catalog),
):
    with error_boundary(500, {NotFoundError: 400, AuthError: 401}):
        user = auth.current_user(token)
        product = catalog.get(product_id, user)
    return {"product": product}


@router.patch("/product/edit/{product_id}")
def edit_product(
    product_id: str,
    body: ProductEdit,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    catalog: CatalogService = Depends(get_catalog),
):
    with error_boundary(400):
        user = auth.current_user(token)
        fields = body.product_data.model_dump(exclude_unset=True, exclude_none=True)
        product = catalog.update(product_id, user, fields)
    return {"message": "Product Updated Successfully", "product": product}


@router.delete("/product/delete/{product_id}")
def delete_product(
    product_id: str,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    catalog: CatalogService = Depends(get_catalog),
):
    with error_boundary(500, {AuthError: 401, ForbiddenError: 403, NotFoundError: 404}):
        user = auth.current_user(token)
        product = catalog.delete(product_id, user)
    return {"message": "Product Deleted Successfully", "product": product}


# Cart

@router.get("/cart")
def get_cart(
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    carts: CartService = Depends(get_carts),
):
    with error_boundary(500, {NotFoundError: 400}):
        user = auth.current_user(token)
        cart = carts.get_cart(user)
    return {"cart": cart}


@router.post("/cart/add")
def add_to_cart(
    body: CartAdd,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    carts: CartService = Depends(get_carts),
):
    with error_boundary(500, {NotFoundError: 400}):
        user = auth.current_user(token)
        cart = carts.add_products(user, body.products)
    return {"message": "Cart updated successfully", "cart": cart}


@router.delete("/cart/product/delete")
def remove_from_cart(
    body: CartRemove,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
    carts: CartService = Depends(get_carts),
):
    with error_boundary(500, {NotFoundError: 404}):
        user = auth.current_user(token)
        cart = carts.remove_product(user, body.product_id)
    return {"message": "Product Removed from Cart Successfully", "cart": cart}


# App

def bind_services(app: FastAPI, store, settings: Settings):
    users = UserStore(store)
    products = ProductStore(store)
    try:
        users.ensure_indexes()
    except StoreError:
        logger.warning("db is not connected, user email index not ensured")
    app.state.store = store
    app.state.auth = AuthService(users, settings)
    app.state.catalog = CatalogService(products)
    app.state.carts = CartService(CartStore(store), products, users)


def create_app(settings: Optional[Settings] = None, store=None) -> FastAPI:
    """Build the application.

    A ``store`` passed in is owned by the caller and left open at shutdown;
    otherwise one is opened from ``settings`` at startup and closed afterwards.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        handle = store if store is not None else open_store(settings)
        bind_services(app, handle, settings)
        yield
        if store is None:
            handle.close()
            logger.info("store closed")

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info("%s %s %d %.1f ms", request.method, request.url.path, response.status_code, elapsed)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def body_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            "%s: %s" % (".".join(str(part) for part in err["loc"][1:]) or "body", err["msg"])
            for err in exc.errors()
        )
        return JSONResponse({"message": "Invalid request: %s" % problems}, status_code=400)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
