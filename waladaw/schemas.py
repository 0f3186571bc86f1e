from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import ProductCategory, UserRole


# -----------------------------
# Users
# -----------------------------

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=4, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=200)


class UserOut(BaseModel):
    id: int
    email: EmailStr
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    avatar: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdminUserOut(UserOut):
    deleted: bool = False
    product_count: int = 0
    purchase_count: int = 0


class Token(BaseModel):
    access_token: str
    token_type: str


# -----------------------------
# Products
# -----------------------------

class ProductOut(BaseModel):
    id: int
    name: str
    description: str
    price: Decimal
    category: ProductCategory
    image_url: str
    owner: UserSummary
    reserved: bool
    reserved_until: Optional[datetime] = None
    is_sold: bool
    average_rating: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductBrief(BaseModel):
    id: int
    name: str
    price: Decimal
    category: ProductCategory
    image_url: str

    model_config = ConfigDict(from_attributes=True)


# -----------------------------
# Cart
# -----------------------------

class CartItemOut(BaseModel):
    id: int
    product_id: int
    price: Decimal
    created_at: datetime
    product: ProductBrief

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    items: List[CartItemOut] = []
    total: Decimal
    count: int


class CartSummary(BaseModel):
    count: int
    total: Decimal


# -----------------------------
# Purchases
# -----------------------------

class PurchaseOut(BaseModel):
    id: int
    purchased_at: datetime
    total: Decimal
    buyer: UserSummary
    products: List[ProductBrief] = []

    model_config = ConfigDict(from_attributes=True)


class PurchaseListResponse(BaseModel):
    purchases: List[PurchaseOut]
    total: int
    page: int
    page_size: int


# -----------------------------
# API (favorites / ratings)
# -----------------------------

class FavoriteRequest(BaseModel):
    product_id: int = Field(..., gt=0)


class RatingRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    score: int
    comment: Optional[str] = Field(None, max_length=500)


class RatingUpdateRequest(BaseModel):
    score: int
    comment: Optional[str] = Field(None, max_length=500)


class RatingOut(BaseModel):
    id: int
    score: int
    comment: Optional[str] = None
    created_at: datetime
    product_id: int
    user: UserSummary

    model_config = ConfigDict(from_attributes=True)


# -----------------------------
# Admin
# -----------------------------

class DashboardOut(BaseModel):
    total_users: int
    active_users: int
    total_products: int
    available_products: int
    total_purchases: int
    total_sales: Decimal
    purchases_today: int
    purchases_week: int
    purchases_month: int
    sales_today: Decimal
    sales_week: Decimal
    sales_month: Decimal


class CategoryCount(BaseModel):
    category: ProductCategory
    count: int


class BuyerStats(BaseModel):
    buyer_id: int
    purchases: int
    spent: Decimal


class SellerStats(BaseModel):
    owner_id: int
    products_sold: int


class MonthlySales(BaseModel):
    year: int
    month: int
    total: Decimal
    purchases: int


class StatisticsOut(BaseModel):
    sold_by_category: List[CategoryCount]
    top_buyers: List[BuyerStats]
    top_sellers: List[SellerStats]
    monthly_sales: List[MonthlySales]
