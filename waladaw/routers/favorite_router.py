from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..crud import favorites as crud
from ..database import get_db
from ..models import User
from ..schemas import FavoriteRequest, ProductOut

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


@router.post("", status_code=201)
def add_favorite(
    body: FavoriteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    crud.add_favorite(db, current_user, body.product_id)
    return {"success": True, "message": "Added to favorites", "is_favorite": True}


@router.delete("/{product_id}")
def remove_favorite(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    crud.remove_favorite(db, current_user, product_id)
    return {"success": True, "message": "Removed from favorites", "is_favorite": False}


@router.get("/check/{product_id}")
def check_favorite(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "is_favorite": crud.is_favorite(db, current_user.id, product_id)}


@router.post("/toggle")
def toggle_favorite(
    body: FavoriteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    now_favorite = crud.toggle_favorite(db, current_user, body.product_id)
    message = "Added to favorites" if now_favorite else "Removed from favorites"
    return {"success": True, "message": message, "is_favorite": now_favorite}


@router.get("")
def list_favorites(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    products = crud.list_favorite_products(db, current_user.id)
    return {
        "success": True,
        "count": len(products),
        "products": [ProductOut.model_validate(p).model_dump(mode="json") for p in products],
    }
