import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Form, Query
from sqlalchemy.orm import Session

from ..auth import get_current_admin
from ..crud import admin as stats
from ..crud import products as product_crud
from ..crud import purchases as purchase_crud
from ..crud import users as user_crud
from ..database import get_db
from ..errors import invalid_data
from ..models import ProductCategory, User
from ..schemas import AdminUserOut, DashboardOut, ProductOut, PurchaseOut, StatisticsOut

router = APIRouter(prefix="/admin", tags=["admin"])


def _admin_user_out(db: Session, user: User) -> AdminUserOut:
    out = AdminUserOut.model_validate(user)
    out.product_count = user_crud.count_user_products(db, user.id)
    out.purchase_count = user_crud.count_user_purchases(db, user.id)
    return out


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """
    Totals and today / this week / this month activity (Admin only)
    """
    return stats.dashboard(db)


@router.get("/statistics", response_model=StatisticsOut)
def statistics(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return stats.statistics(db)


# -----------------------------
# Users
# -----------------------------

@router.get("/users")
def list_all_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """
    Get list of all users, newest first (Admin only)
    """
    users = user_crud.get_users(db, skip=(page - 1) * page_size, limit=page_size)
    return {
        "users": [_admin_user_out(db, u) for u in users],
        "total": user_crud.count_users(db),
        "page": page,
        "page_size": page_size,
    }


@router.get("/users/{user_id}", response_model=AdminUserOut)
def user_detail(
    user_id: int,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _admin_user_out(db, user_crud.get_user_or_raise(db, user_id))


@router.patch("/users/{user_id}/role", response_model=AdminUserOut)
def change_user_role(
    user_id: int,
    role: str = Form(..., description="**New role** (ADMIN, USER or MODERATOR)", examples=["USER"]),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _admin_user_out(db, user_crud.change_role(db, user_id, role))


@router.delete("/users/{user_id}", response_model=AdminUserOut)
def delete_user_by_admin(
    user_id: int,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """
    Soft-delete a user by ID (Admin only)
    """
    user = user_crud.soft_delete_user(db, user_id, current_admin)
    return _admin_user_out(db, user)


# -----------------------------
# Products
# -----------------------------

@router.get("/products")
def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    category: Optional[ProductCategory] = Query(None),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    items, total = product_crud.list_products_admin(
        db, skip=(page - 1) * page_size, limit=page_size, category=category
    )
    return {
        "products": [ProductOut.model_validate(p) for p in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.delete("/products/{product_id}", response_model=ProductOut)
def delete_product_by_admin(
    product_id: int,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return product_crud.delete_product(db, product_id, current_admin)


# -----------------------------
# Purchases
# -----------------------------

def _purchases_in_range(db: Session, start: Optional[dt.date], end: Optional[dt.date]) -> List[PurchaseOut]:
    if start and end and start > end:
        raise invalid_data("The start date must be before the end date")
    return [PurchaseOut.model_validate(p) for p in purchase_crud.list_purchases_between(db, start, end)]


@router.get("/purchases", response_model=List[PurchaseOut])
def list_purchases(
    start: Optional[dt.date] = Query(None, description="**From** (YYYY-MM-DD)"),
    end: Optional[dt.date] = Query(None, description="**To**, inclusive (YYYY-MM-DD)"),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _purchases_in_range(db, start, end)


@router.get("/sales", response_model=List[PurchaseOut])
def list_sales(
    start: Optional[dt.date] = Query(None),
    end: Optional[dt.date] = Query(None),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _purchases_in_range(db, start, end)
