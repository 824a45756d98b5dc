"""
Database Schemas for the coupon catalog

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., Store -> "store"). Fields are snake_case in
Python and camelCase in documents and JSON (e.g., shop_now_url -> "shopNowUrl").
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_LOGO = "no-photo.jpg"

URL_PATTERN = r"^https?://\S+$"

ProductCategory = Literal[
    "Electronics",
    "Fashion",
    "Home & Garden",
    "Books",
    "Sports",
    "Health & Beauty",
    "Automotive",
    "Food & Drink",
    "Other",
]


def today_midnight() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ----------------------------- Auth ---------------------------------------
class AdminUser(Document):
    username: str = Field(..., min_length=1, description="Admin username (unique)")
    password: str = Field(..., description="bcrypt password hash")
    email: Optional[str] = Field(None, description="Contact email")
    role: Literal["admin"] = Field("admin", description="User role")
    reset_password_token: Optional[str] = Field(None, description="SHA-256 hash of the pending reset token")
    reset_password_expire: Optional[datetime] = Field(None, description="When the pending reset token expires")


# -------------------------------- Catalog ---------------------------------
class Store(Document):
    name: str = Field(..., min_length=1, max_length=50, description="Store name (unique)")
    description: str = Field(..., min_length=1, max_length=500, description="Store description")
    slug: str = Field(..., min_length=1, description="URL friendly slug (unique)")
    logo: str = Field(DEFAULT_LOGO, description="Logo path under the uploads prefix")
    top_deal_headline: Optional[str] = Field(None, max_length=150, description="Headline shown on top deals")
    tagline: Optional[str] = Field(None, max_length=150, description="Short tagline")
    main_url: Optional[str] = Field(None, description="Store homepage")


class StoreUpdate(Document):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    slug: Optional[str] = None
    top_deal_headline: Optional[str] = Field(None, max_length=150)
    tagline: Optional[str] = Field(None, max_length=150)
    main_url: Optional[str] = None


class Product(Document):
    name: str = Field(..., min_length=1, max_length=100, description="Deal title")
    slug: str = Field(..., description="Slug derived from the name")
    description: str = Field(..., min_length=1, max_length=500)
    price: float = Field(..., ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    category: ProductCategory = "Other"
    images: List[str] = Field(default_factory=list, description="Image paths, in display order")
    store: str = Field(..., description="Owning store _id")
    stock: int = Field(..., ge=0)
    is_active: bool = True
    discount_code: str = Field(..., min_length=1, max_length=50)
    shop_now_url: str = Field(..., pattern=URL_PATTERN)
    success_rate: float = Field(0, ge=0, le=100)
    total_uses: int = Field(0, ge=0)
    today_uses: int = Field(0, ge=0)
    likes: int = Field(0, ge=0)
    dislikes: int = Field(0, ge=0)
    last_daily_reset: datetime = Field(default_factory=today_midnight)


class ProductUpdate(Document):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    category: Optional[ProductCategory] = None
    store: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    discount_code: Optional[str] = Field(None, min_length=1, max_length=50)
    shop_now_url: Optional[str] = Field(None, pattern=URL_PATTERN)
    success_rate: Optional[float] = Field(None, ge=0, le=100)
    total_uses: Optional[int] = Field(None, ge=0)
    today_uses: Optional[int] = Field(None, ge=0)
    likes: Optional[int] = Field(None, ge=0)
    dislikes: Optional[int] = Field(None, ge=0)


# -------------------------------- Requests --------------------------------
class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(BaseModel):
    token: str
    username: str
    role: str
    expires_in: int


class InteractionRequest(BaseModel):
    action: str = Field(..., description="copy | shop | like | dislike")


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None
