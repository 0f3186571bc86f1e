"""Checkout and purchase history.

A purchase turns every item of the buyer's cart into a sold product in one
SERIALIZABLE transaction. Products are re-read (and row-locked where the
database supports it) inside that transaction, so a product sold or reserved
by someone else since it was put in the cart is refused. A write conflict
surfaces as a serialization failure, a stale cart-item version or a product
already marked sold by another checkout; the whole transaction is then rolled
back and retried up to ``PURCHASE_MAX_ATTEMPTS`` times. Any other database
error fails the purchase at once.
"""
import datetime as dt
import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from .. import cache, errors
from ..config import PURCHASE_MAX_ATTEMPTS
from ..models import CartItem, Product, Purchase, User, utcnow

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = ("40001", "40P01")
CONFLICT_MESSAGES = ("could not serialize access", "deadlock detected", "database is locked")


def is_write_conflict(exc: Exception) -> bool:
    """Whether a failed checkout lost a race and may be run again."""
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, OperationalError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(text in message for text in CONFLICT_MESSAGES)


def _begin_serializable(db: Session) -> None:
    # isolation level can only be chosen before the transaction starts
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={"isolation_level": "SERIALIZABLE"})


def _purchase_cart(db: Session, buyer_id: int) -> Tuple[int, List[int]]:
    _begin_serializable(db)
    try:
        items = (
            db.query(CartItem)
            .filter(CartItem.user_id == buyer_id)
            .order_by(CartItem.product_id)
            .all()
        )
        if not items:
            raise errors.empty_cart()

        now = utcnow()
        products = []
        # stable order keeps concurrent checkouts from deadlocking
        for item in items:
            product = (
                db.query(Product)
                .filter(Product.id == item.product_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if product is None or product.deleted:
                raise errors.product_not_found(item.product_id)
            if product.is_sold:
                raise errors.purchase_product_not_available(product.name)
            if product.reservation_active_for_other(buyer_id, now):
                raise errors.purchase_product_not_available(product.name)
            products.append(product)

        total = sum((Decimal(item.price) for item in items), Decimal("0.00"))
        purchase = Purchase(buyer_id=buyer_id, total=total, purchased_at=now)
        db.add(purchase)
        db.flush()

        purchase_id = purchase.id
        product_ids = [p.id for p in products]
        for product in products:
            # a product row is written once: by the checkout that sells it
            sold = (
                db.query(Product)
                .filter(Product.id == product.id, Product.purchase_id.is_(None))
                .update(
                    {
                        Product.purchase_id: purchase_id,
                        Product.reserved: False,
                        Product.reserved_until: None,
                        Product.reserved_by: None,
                        Product.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if sold != 1:
                raise StaleDataError(f"Product {product.id} was sold by another checkout")
        for item in items:
            db.delete(item)

        db.commit()
    except errors.DomainError:
        db.rollback()
        raise

    return purchase_id, product_ids


def create_purchase(db: Session, buyer: User) -> Purchase:
    buyer_id = buyer.id
    for attempt in range(1, PURCHASE_MAX_ATTEMPTS + 1):
        try:
            purchase_id, product_ids = _purchase_cart(db, buyer_id)
        except (OperationalError, StaleDataError) as exc:
            db.rollback()
            if not is_write_conflict(exc):
                logger.error("Purchase for user %s failed: %s", buyer_id, exc)
                raise errors.database_error("The purchase could not be saved") from exc
            logger.warning(
                "Purchase attempt %s/%s for user %s conflicted: %s",
                attempt, PURCHASE_MAX_ATTEMPTS, buyer_id, exc.__class__.__name__,
            )
            continue

        cache.invalidate_products(*product_ids)
        purchase = get_purchase_by_id(db, purchase_id)
        logger.info(
            "Purchase %s created for user %s: %s products, total %s",
            purchase.id, buyer_id, len(product_ids), purchase.total,
        )
        return purchase

    logger.error("Purchase for user %s failed after %s attempts", buyer_id, PURCHASE_MAX_ATTEMPTS)
    raise errors.concurrency_error()


# -----------------------------
# Reads
# -----------------------------

def _purchases(db: Session):
    return db.query(Purchase).options(
        joinedload(Purchase.buyer),
        selectinload(Purchase.products),
    )


def get_purchase_by_id(db: Session, purchase_id: int) -> Optional[Purchase]:
    return _purchases(db).filter(Purchase.id == purchase_id).first()


def get_purchase(db: Session, purchase_id: int, user: User) -> Purchase:
    """A purchase as seen by ``user``: its buyer or an admin."""
    purchase = get_purchase_by_id(db, purchase_id)
    if purchase is None:
        raise errors.purchase_not_found(purchase_id)
    if purchase.buyer_id != user.id and not user.is_admin:
        logger.warning("User %s tried to read purchase %s", user.id, purchase_id)
        raise errors.purchase_forbidden()
    return purchase


def list_user_purchases(db: Session, user_id: int, skip: int = 0, limit: int = 10) -> Tuple[List[Purchase], int]:
    query = _purchases(db).filter(Purchase.buyer_id == user_id)
    total = query.count()
    items = query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).offset(skip).limit(limit).all()
    return items, total


def list_all_purchases(db: Session, skip: int = 0, limit: int = 20) -> Tuple[List[Purchase], int]:
    query = _purchases(db)
    total = query.count()
    items = query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).offset(skip).limit(limit).all()
    return items, total


def list_purchases_between(
    db: Session,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> List[Purchase]:
    """Purchases made from the start of ``start`` to the end of ``end`` (UTC), newest first."""
    query = _purchases(db)
    if start is not None:
        since = dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc)
        query = query.filter(Purchase.purchased_at >= since)
    if end is not None:
        until = dt.datetime.combine(end + dt.timedelta(days=1), dt.time.min, tzinfo=dt.timezone.utc)
        query = query.filter(Purchase.purchased_at < until)
    return query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).all()
