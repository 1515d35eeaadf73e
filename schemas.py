"""
Database Schemas for the aquarium shop

Each Pydantic model corresponds to one MongoDB collection (or an embedded
sub-document of one). Request bodies accept camelCase names as well, so
older frontend clients keep working.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Address(CamelModel):
    name: Optional[str] = None
    company: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    is_admin: bool = False
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None
    reset_password_otp: Optional[str] = None
    reset_password_otp_expires: Optional[datetime] = None


class Category(BaseModel):
    name: str
    description: str
    image: Optional[str] = None


class Review(BaseModel):
    user: str
    name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    created_at: datetime


class CatalogItem(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    images: List[str] = []
    additional_info: str = ""
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)
    reviews: List[Review] = []


class CartItem(CamelModel):
    product: str
    name: Optional[str] = None
    price: float = 0
    image: Optional[str] = None
    quantity: int = Field(1, gt=0)


class Cart(BaseModel):
    user: str
    items: List[CartItem] = []


class OrderItem(CamelModel):
    product: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    price: Optional[float] = None
    qty: Optional[int] = None


class ShippingAddress(CamelModel):
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class Order(BaseModel):
    user: str
    order_items: List[OrderItem]
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None
    items_price: float = 0
    tax_price: float = 0
    shipping_price: float = 0
    total_price: float = 0
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_result: Optional[dict] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    status: OrderStatus = "pending"


class Policy(CamelModel):
    shipping_policy: str = ""
    refund_policy: str = ""
    terms_and_conditions: str = ""
    privacy_policy: str = ""
