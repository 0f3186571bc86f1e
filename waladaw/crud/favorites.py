import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from .. import errors
from ..models import Favorite, Product, User

logger = logging.getLogger(__name__)


def is_favorite(db: Session, user_id: int, product_id: int) -> bool:
    return (
        db.query(Favorite.id)
        .filter(Favorite.user_id == user_id, Favorite.product_id == product_id)
        .first()
        is not None
    )


def add_favorite(db: Session, user: User, product_id: int) -> Favorite:
    product = db.query(Product).filter(Product.id == product_id, Product.deleted.is_(False)).first()
    if product is None:
        raise errors.product_not_found(product_id)
    if is_favorite(db, user.id, product_id):
        raise errors.favorite_exists()

    favorite = Favorite(user_id=user.id, product_id=product_id)
    db.add(favorite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise errors.favorite_exists()
    db.refresh(favorite)
    return favorite


def remove_favorite(db: Session, user: User, product_id: int) -> None:
    favorite = (
        db.query(Favorite)
        .filter(Favorite.user_id == user.id, Favorite.product_id == product_id)
        .first()
    )
    if favorite is None:
        raise errors.favorite_not_found()
    db.delete(favorite)
    db.commit()


def toggle_favorite(db: Session, user: User, product_id: int) -> bool:
    """Flip the favorite flag. Returns True when the product is now a favorite."""
    if is_favorite(db, user.id, product_id):
        remove_favorite(db, user, product_id)
        return False
    add_favorite(db, user, product_id)
    return True


def list_favorite_products(db: Session, user_id: int) -> List[Product]:
    return (
        db.query(Product)
        .join(Favorite, Favorite.product_id == Product.id)
        .options(joinedload(Product.owner), selectinload(Product.ratings))
        .filter(Favorite.user_id == user_id, Product.deleted.is_(False))
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        .all()
    )
