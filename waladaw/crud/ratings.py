import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from .. import cache, errors
from ..models import Product, Purchase, Rating, User

logger = logging.getLogger(__name__)


def _check_score(score) -> int:
    try:
        value = int(score)
    except (TypeError, ValueError):
        raise errors.invalid_rating()
    if value < 1 or value > 5:
        raise errors.invalid_rating()
    return value


def _clean_comment(comment: Optional[str]) -> Optional[str]:
    comment = (comment or "").strip()
    if len(comment) > 500:
        raise errors.invalid_data("Comment cannot exceed 500 characters")
    return comment or None


def _live_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.deleted.is_(False)).first()
    if product is None:
        raise errors.product_not_found(product_id)
    return product


def has_purchased(db: Session, user_id: int, product_id: int) -> bool:
    return (
        db.query(Product.id)
        .join(Purchase, Product.purchase_id == Purchase.id)
        .filter(Product.id == product_id, Purchase.buyer_id == user_id)
        .first()
        is not None
    )


def get_user_rating(db: Session, user_id: int, product_id: int) -> Optional[Rating]:
    return (
        db.query(Rating)
        .filter(Rating.user_id == user_id, Rating.product_id == product_id)
        .first()
    )


def get_rating(db: Session, rating_id: int) -> Rating:
    rating = db.query(Rating).options(joinedload(Rating.user)).filter(Rating.id == rating_id).first()
    if rating is None:
        raise errors.rating_not_found(rating_id)
    return rating


def can_rate(db: Session, user_id: int, product_id: int) -> bool:
    product = db.query(Product).filter(Product.id == product_id, Product.deleted.is_(False)).first()
    if product is None:
        return False
    return has_purchased(db, user_id, product_id) and get_user_rating(db, user_id, product_id) is None


def add_rating(db: Session, user: User, product_id: int, score, comment: Optional[str] = None) -> Rating:
    value = _check_score(score)
    _live_product(db, product_id)
    if not has_purchased(db, user.id, product_id):
        raise errors.product_not_purchased()
    if get_user_rating(db, user.id, product_id) is not None:
        raise errors.already_rated()

    rating = Rating(user_id=user.id, product_id=product_id, score=value, comment=_clean_comment(comment))
    db.add(rating)
    db.commit()
    db.refresh(rating)
    cache.invalidate_products(product_id)
    logger.info("User %s rated product %s with %s", user.id, product_id, value)
    return rating


def update_rating(db: Session, rating_id: int, user: User, score, comment: Optional[str] = None) -> Rating:
    rating = get_rating(db, rating_id)
    if rating.user_id != user.id:
        logger.warning("User %s tried to edit rating %s", user.id, rating_id)
        raise errors.rating_forbidden()

    rating.score = _check_score(score)
    rating.comment = _clean_comment(comment)
    db.commit()
    db.refresh(rating)
    cache.invalidate_products(rating.product_id)
    return rating


def delete_rating(db: Session, rating_id: int, user: User) -> None:
    rating = get_rating(db, rating_id)
    if rating.user_id != user.id and not user.is_admin:
        logger.warning("User %s tried to delete rating %s", user.id, rating_id)
        raise errors.rating_forbidden()

    product_id = rating.product_id
    db.delete(rating)
    db.commit()
    cache.invalidate_products(product_id)


def list_product_ratings(db: Session, product_id: int) -> List[Rating]:
    return (
        db.query(Rating)
        .options(joinedload(Rating.user))
        .join(Product, Rating.product_id == Product.id)
        .filter(Rating.product_id == product_id, Product.deleted.is_(False))
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .all()
    )


def list_user_ratings(db: Session, user_id: int) -> List[Rating]:
    return (
        db.query(Rating)
        .options(joinedload(Rating.user))
        .join(Product, Rating.product_id == Product.id)
        .filter(Rating.user_id == user_id, Product.deleted.is_(False))
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .all()
    )


def average_score(db: Session, product_id: int) -> float:
    avg = db.query(func.avg(Rating.score)).filter(Rating.product_id == product_id).scalar()
    return round(float(avg), 2) if avg is not None else 0.0
