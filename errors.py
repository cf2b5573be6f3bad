"""
Error kinds raised by the stores and services.

They carry no HTTP status: each route decides the status for each kind in
``main.error_boundary``, so the same kind can map differently per route.
"""


class ShopError(Exception):
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShopError):
    """Missing or malformed input."""

    default_message = "Please enter all fields"


class ConflictError(ShopError):
    default_message = "User already has an account"


class NotFoundError(ShopError):
    default_message = "Not found"


class AuthError(ShopError):
    """Missing, malformed or expired token, or a bad password."""

    default_message = "Unauthorized"


class ForbiddenError(ShopError):
    default_message = "Forbidden"


class StoreError(ShopError):
    """Unexpected persistence failure."""

    default_message = "Database error"
