import datetime as dt
import logging
from decimal import Decimal
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from .. import cache, errors
from ..config import RESERVATION_MINUTES
from ..models import CartItem, Product, User, utcnow

logger = logging.getLogger(__name__)


def _user_items(db: Session, user_id: int):
    return (
        db.query(CartItem)
        .join(Product, CartItem.product_id == Product.id)
        .filter(CartItem.user_id == user_id, Product.deleted.is_(False))
    )


def get_cart_items(db: Session, user_id: int) -> List[CartItem]:
    return (
        _user_items(db, user_id)
        .options(joinedload(CartItem.product))
        .order_by(CartItem.created_at, CartItem.id)
        .all()
    )


def cart_total(db: Session, user_id: int) -> Decimal:
    total = _user_items(db, user_id).with_entities(func.coalesce(func.sum(CartItem.price), 0)).scalar()
    return Decimal(str(total or 0)).quantize(Decimal("0.01"))


def cart_count(db: Session, user_id: int) -> int:
    return _user_items(db, user_id).count()


def add_to_cart(db: Session, user: User, product_id: int) -> CartItem:
    """Put a product in the user's cart and reserve it for RESERVATION_MINUTES."""
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.deleted.is_(False))
        .with_for_update()
        .first()
    )
    if product is None:
        raise errors.product_not_found(product_id)
    if product.is_sold:
        raise errors.cart_product_not_available(product.name)
    if product.owner_id == user.id:
        raise errors.cannot_buy_own_product()

    now = utcnow()
    if product.reservation_active_for_other(user.id, now):
        raise errors.cart_product_not_available(product.name)
    if product.reserved and product.reserved_by != user.id:
        logger.info("Releasing expired reservation on product %s", product.id)
        product.release_reservation()

    existing = (
        db.query(CartItem.id)
        .filter(CartItem.user_id == user.id, CartItem.product_id == product.id)
        .first()
    )
    if existing is not None:
        db.rollback()
        raise errors.product_already_in_cart(product.name)

    until = now + dt.timedelta(minutes=RESERVATION_MINUTES)
    product.reserve(user.id, until)
    item = CartItem(user_id=user.id, product_id=product.id, price=product.price)
    db.add(item)
    try:
        db.commit()
    except (IntegrityError, StaleDataError):
        db.rollback()
        logger.warning("Cart conflict adding product %s for user %s", product_id, user.id)
        raise errors.cart_concurrency_conflict()

    db.refresh(item)
    cache.invalidate_products(product_id)
    logger.info("Product %s added to cart of user %s, reserved until %s", product_id, user.id, until.isoformat())
    return item


def remove_from_cart(db: Session, user: User, item_id: int) -> None:
    item = db.query(CartItem).filter(CartItem.id == item_id).first()
    if item is None:
        raise errors.cart_item_not_found(item_id)
    if item.user_id != user.id:
        raise errors.cart_item_forbidden()

    product = db.query(Product).filter(Product.id == item.product_id).first()
    if product is not None and product.reserved_by == user.id and not product.is_sold:
        product.release_reservation()

    db.delete(item)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise errors.cart_concurrency_conflict()
    cache.invalidate_products(item.product_id)


def clear_cart(db: Session, user: User) -> int:
    items = db.query(CartItem).filter(CartItem.user_id == user.id).all()
    if not items:
        return 0

    product_ids = [item.product_id for item in items]
    products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    for product in products:
        if product.reserved_by == user.id and not product.is_sold:
            product.release_reservation()
    for item in items:
        db.delete(item)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise errors.cart_concurrency_conflict()

    cache.invalidate_products(*product_ids)
    return len(items)
