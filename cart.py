"""
Cart merging and pricing.

A cart's total is always recomputed from the products it currently lists,
never accumulated from deltas, so any sequence of adds and removes leaves
``total == sum(p.price for p in products)``.
"""
import logging
from typing import Iterable, List, Optional

from errors import NotFoundError, ValidationError
from schemas import Cart, CartView, Product, User
from stores import CartStore, ProductStore, UserStore

logger = logging.getLogger(__name__)


def price_of(products: Iterable[Product]) -> float:
    return sum((p.price for p in products), 0.0)


class CartService:
    def __init__(self, carts: CartStore, products: ProductStore, users: UserStore):
        self.carts = carts
        self.products = products
        self.users = users

    def _lookup(self, product_ids: Iterable[str]) -> List[Product]:
        """Resolve ids in order, dropping unknown ids and repeats."""
        found, seen = [], set()
        for product_id in product_ids:
            if product_id in seen:
                continue
            seen.add(product_id)
            product = self.products.get(product_id)
            if product:
                found.append(product)
        return found

    def _load(self, user: User) -> Optional[Cart]:
        if not user.cart:
            return None
        return self.carts.get(user.cart)

    def _persist(self, cart: Cart, products: List[Product]) -> CartView:
        cart.products = [p.id for p in products]
        cart.total = price_of(products)
        cart = self.carts.save(cart)
        return CartView(id=cart.id, products=products, total=cart.total)

    def get_cart(self, user: User) -> Optional[CartView]:
        cart = self._load(user)
        if cart is None:
            return None
        products = self._lookup(cart.products)
        return CartView(id=cart.id, products=products, total=price_of(products))

    def add_products(self, user: User, product_ids: List[str]) -> CartView:
        if product_ids is None:
            raise ValidationError("Please provide products")
        incoming = self._lookup(product_ids)
        cart = self._load(user)

        if cart is None:
            cart = self.carts.create(Cart(products=[p.id for p in incoming], total=price_of(incoming)))
            self.users.attach_cart(user.id, cart.id)
            user.cart = cart.id
            logger.info("created cart %s for user %s", cart.id, user.id)
            return CartView(id=cart.id, products=incoming, total=cart.total)

        current = self._lookup(cart.products)
        present = {p.id for p in current}
        merged = current + [p for p in incoming if p.id not in present]
        return self._persist(cart, merged)

    def remove_product(self, user: User, product_id: str) -> CartView:
        cart = self._load(user)
        if cart is None:
            raise NotFoundError("Cart Not Found")
        products = self._lookup(cart.products)
        index = next((i for i, p in enumerate(products) if p.id == product_id), None)
        if index is None:
            raise NotFoundError("Product Not Found in Cart")
        del products[index]
        return self._persist(cart, products)
