import logging
from typing import List, Optional

from errors import ForbiddenError, NotFoundError
from schemas import Product, Role, User
from stores import ProductStore

logger = logging.getLogger(__name__)

# Role a user needs for each catalog action; None means any signed-in user.
REQUIRED_ROLES = {
    "create": None,
    "get": None,
    "update": None,
    "delete": Role.admin,
}

EDITABLE_FIELDS = ("name", "description", "image", "price", "brand", "stock")


def authorize(user: User, action: str):
    required = REQUIRED_ROLES[action]
    if required is not None and user.role != required:
        raise ForbiddenError("Forbidden: You do not have permission to %s this product" % action)


class CatalogService:
    def __init__(self, products: ProductStore):
        self.products = products

    def list(self) -> List[Product]:
        return self.products.all()

    def create(self, user: User, fields: dict) -> Product:
        authorize(user, "create")
        product = Product(**{k: v for k, v in fields.items() if k in EDITABLE_FIELDS}, user=user.id)
        product = self.products.create(product)
        logger.info("user %s created product %s", user.id, product.id)
        return product

    def get(self, product_id: Optional[str], user: User) -> Product:
        authorize(user, "get")
        if not product_id:
            raise NotFoundError("Product Id not found")
        product = self.products.get(product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def update(self, product_id: str, user: User, fields: dict) -> Product:
        """Set only the fields that were supplied; omitted fields keep their value."""
        authorize(user, "update")
        changes = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        product = self.products.update(product_id, changes)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def delete(self, product_id: str, user: User) -> Product:
        authorize(user, "delete")
        product = self.products.delete(product_id)
        if not product:
            raise NotFoundError("Product not found")
        logger.info("user %s deleted product %s", user.id, product.id)
        return product
