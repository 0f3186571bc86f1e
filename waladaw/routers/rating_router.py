from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..crud import ratings as crud
from ..database import get_db
from ..models import User
from ..schemas import RatingOut, RatingRequest, RatingUpdateRequest

router = APIRouter(prefix="/api/ratings", tags=["ratings"])


def _dump(rating) -> dict:
    return RatingOut.model_validate(rating).model_dump(mode="json")


@router.post("", status_code=201)
def add_rating(
    body: RatingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rating = crud.add_rating(db, current_user, body.product_id, body.score, body.comment)
    return {"success": True, "message": "Rating saved", "rating": _dump(rating)}


@router.get("/product/{product_id}")
def product_ratings(product_id: int, db: Session = Depends(get_db)):
    ratings = crud.list_product_ratings(db, product_id)
    return {
        "success": True,
        "average": crud.average_score(db, product_id),
        "count": len(ratings),
        "ratings": [_dump(r) for r in ratings],
    }


@router.get("/user/{product_id}")
def my_rating(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rating = crud.get_user_rating(db, current_user.id, product_id)
    return {"success": True, "rating": _dump(rating) if rating else None}


@router.get("/can-rate/{product_id}")
def can_rate(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "can_rate": crud.can_rate(db, current_user.id, product_id)}


@router.put("/{rating_id}")
def update_rating(
    rating_id: int,
    body: RatingUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rating = crud.update_rating(db, rating_id, current_user, body.score, body.comment)
    return {"success": True, "message": "Rating updated", "rating": _dump(rating)}


@router.delete("/{rating_id}")
def delete_rating(
    rating_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    crud.delete_rating(db, rating_id, current_user)
    return {"success": True, "message": "Rating deleted"}
