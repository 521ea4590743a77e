"""
Database Schemas for the Bubbly Crochet storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.

Fields are snake_case in storage and camelCase on the wire: every model
accepts either spelling on input.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

ProductCategory = Literal["Blankets", "Toys", "Apparel", "Accessories"]
JourneyCategory = Literal["styles", "tools", "resources", "stores"]
JOURNEY_CATEGORIES = ("styles", "tools", "resources", "stores")
Role = Literal["client", "admin"]

DEFAULT_AVATAR = "https://ui-avatars.com/api/?background=d946ef&color=fff"
ADMIN_RECIPIENT = "admin"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True, validate_default=True)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Forward-only progression; CANCELLED is reachable from any open state.
# COMPLETED and CANCELLED are terminal.
ORDER_TRANSITIONS: Dict[OrderStatus, tuple] = {
    OrderStatus.PENDING: (OrderStatus.REVIEWED, OrderStatus.ACCEPTED, OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    OrderStatus.REVIEWED: (OrderStatus.ACCEPTED, OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    OrderStatus.ACCEPTED: (OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    OrderStatus.COMPLETED: (),
    OrderStatus.CANCELLED: (),
}


def can_transition(current: str, target: str) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


class NotificationType(str, Enum):
    ORDER = "ORDER"
    SYSTEM = "SYSTEM"
    INFO = "INFO"


# ----------------------- Collections -----------------------

class User(CamelModel):
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    name: str = Field(..., min_length=1, max_length=100)
    role: Role = "client"
    avatar: str = DEFAULT_AVATAR
    address: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    interests: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class Product(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    category: ProductCategory
    images: List[str] = Field(..., min_length=1, description="At least one image is required")
    in_stock: bool = True
    discount: float = Field(0, ge=0, le=100)
    days_to_make: int = Field(3, ge=1)
    shipping_cost: float = Field(0, ge=0)


def effective_price(price: float, discount: Optional[float]) -> float:
    """Unit price after the percentage discount, rounded to cents."""
    if not discount:
        return round(price, 2)
    return round(price * (1 - discount / 100), 2)


class OrderItem(CamelModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0, description="Effective unit price at placement")
    original_price: float = Field(..., ge=0)
    discount: float = Field(0, ge=0, le=100)
    quantity: int = Field(..., ge=1)
    shipping_cost: float = Field(..., ge=0)
    days_to_make: int = Field(..., ge=1)


class Order(CamelModel):
    user_id: str
    user_name: str
    contact_email: str
    shipping_address: str = Field(..., min_length=1)
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    shipping_total: float = Field(..., ge=0)
    special_request: Optional[str] = Field(None, max_length=500)
    status: OrderStatus = OrderStatus.PENDING
    estimated_completion_date: Optional[datetime] = None


class Review(CamelModel):
    product_id: str
    user_id: str
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class Settings(CamelModel):
    store_name: str = "Bubbly Crochet"
    owner_name: str = "Store Owner"
    contact_email: str = "contact@bubblycrochet.com"
    contact_phone: str = "+1 (555) 000-0000"
    shop_location: str = "Made with love"
    logo_url: str = "https://ui-avatars.com/api/?name=BC&background=d946ef&color=fff"
    instagram_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    youtube_url: Optional[str] = None
    copyright_text: str = "© 2024 Bubbly Crochet. All rights reserved."


class JourneyResource(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=500)
    url: str = Field(..., min_length=1)
    thumbnail_url: str = Field(..., min_length=1)
    category: JourneyCategory


class Notification(CamelModel):
    recipient_id: str = Field(..., description="'admin' or a user id")
    message: str
    type: NotificationType = NotificationType.INFO
    read: bool = False
    order_id: Optional[str] = None


# ----------------------- Request bodies -----------------------

class RegisterBody(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class LoginBody(CamelModel):
    email: EmailStr
    password: str


class ProfileUpdateBody(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    avatar: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    interests: Optional[List[str]] = None


class ChangePasswordBody(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ResetPasswordBody(CamelModel):
    email: EmailStr


class ProductUpdateBody(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[ProductCategory] = None
    images: Optional[List[str]] = Field(None, min_length=1)
    in_stock: Optional[bool] = None
    discount: Optional[float] = Field(None, ge=0, le=100)
    days_to_make: Optional[int] = Field(None, ge=1)
    shipping_cost: Optional[float] = Field(None, ge=0)


class CartLine(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class OrderCreateBody(CamelModel):
    items: List[CartLine] = Field(..., min_length=1, description="Order must contain at least one item")
    special_request: Optional[str] = Field(None, max_length=500)
    shipping_address: Optional[str] = None


class StatusUpdateBody(CamelModel):
    status: OrderStatus


class ReviewCreateBody(CamelModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class ReviewUpdateBody(CamelModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=500)


class JourneyUpdateBody(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    url: Optional[str] = Field(None, min_length=1)
    thumbnail_url: Optional[str] = Field(None, min_length=1)
    category: Optional[JourneyCategory] = None
