"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Model name lowercased is the collection name:
- User -> "user"
- Product -> "product"
- Cart -> "cart"
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    user = "user"
    admin = "admin"


class User(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password: str = Field(..., description="BCrypt hashed password")
    token: str = Field(..., description="Bearer token issued at registration")
    role: Role = Field(Role.user, description="Role: user | admin")
    cart: Optional[str] = Field(None, description="Id of the user's cart")

    def public(self) -> dict:
        # Never send password hash
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role.value}


class Product(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    brand: Optional[str] = None
    user: Optional[str] = Field(None, description="Id of the user who created it")


class Cart(BaseModel):
    id: Optional[str] = None
    products: List[str] = Field(default_factory=list, description="Product ids, in insertion order")
    total: float = Field(0, ge=0)


class CartView(BaseModel):
    """A cart with its product references resolved."""

    id: str
    products: List[Product] = Field(default_factory=list)
    total: float = 0
