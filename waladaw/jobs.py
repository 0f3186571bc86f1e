"""Periodic cleanup of abandoned carts and expired reservations.

Each sweeper runs in its own daemon thread with a fresh session per run.
"""
from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from . import cache
from .config import (
    CART_CLEANUP_INTERVAL_MINUTES,
    CART_EXPIRATION_MINUTES,
    RESERVATION_CLEANUP_INTERVAL_MINUTES,
)
from .database import SessionLocal
from .models import CartItem, Product, utcnow

logger = logging.getLogger(__name__)


def sweep_expired_cart_items(db: Session, now: Optional[dt.datetime] = None) -> int:
    """Delete cart items older than CART_EXPIRATION_MINUTES and release what they reserved."""
    cutoff = (now or utcnow()) - dt.timedelta(minutes=CART_EXPIRATION_MINUTES)
    items = db.query(CartItem).filter(CartItem.created_at < cutoff).all()
    if not items:
        return 0

    holders = {(item.product_id, item.user_id) for item in items}
    product_ids = {product_id for product_id, _ in holders}
    products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    for product in products:
        if not product.is_sold and (product.id, product.reserved_by) in holders:
            product.release_reservation()

    count = (
        db.query(CartItem)
        .filter(CartItem.id.in_([item.id for item in items]))
        .delete(synchronize_session=False)
    )
    db.commit()
    cache.invalidate_products(*product_ids)
    logger.info("Removed %s expired cart items", count)
    return int(count or 0)


def sweep_expired_reservations(db: Session, now: Optional[dt.datetime] = None) -> int:
    """Clear reservation fields on products whose reservation deadline has passed."""
    now = now or utcnow()
    products = (
        db.query(Product)
        .filter(Product.reserved.is_(True), Product.reserved_until.isnot(None), Product.reserved_until < now)
        .all()
    )
    if not products:
        return 0

    for product in products:
        product.release_reservation()
    db.commit()
    cache.invalidate_products(*[p.id for p in products])
    logger.info("Released %s expired reservations", len(products))
    return len(products)


def _run_forever(name: str, sweep: Callable[[Session], int], interval_seconds: float, stop: threading.Event) -> None:
    # first sweep at startup, then every interval
    while not stop.is_set():
        db = SessionLocal()
        try:
            sweep(db)
        except Exception:
            db.rollback()
            logger.exception("Sweeper %s failed; retrying in %ss", name, interval_seconds)
        finally:
            db.close()
        stop.wait(interval_seconds)


def start_sweeper_in_thread(
    *,
    name: str,
    sweep: Callable[[Session], int],
    interval_seconds: float,
    stop: Optional[threading.Event] = None,
    daemon: bool = True,
) -> threading.Thread:
    stop = stop or threading.Event()
    t = threading.Thread(
        target=_run_forever,
        args=(name, sweep, interval_seconds, stop),
        name=f"sweeper:{name}",
        daemon=daemon,
    )
    t.start()
    return t


def start_background_jobs(stop: Optional[threading.Event] = None) -> List[threading.Thread]:
    logger.info(
        "Starting sweepers: carts every %s min, reservations every %s min",
        CART_CLEANUP_INTERVAL_MINUTES,
        RESERVATION_CLEANUP_INTERVAL_MINUTES,
    )
    return [
        start_sweeper_in_thread(
            name="carts",
            sweep=sweep_expired_cart_items,
            interval_seconds=CART_CLEANUP_INTERVAL_MINUTES * 60,
            stop=stop,
        ),
        start_sweeper_in_thread(
            name="reservations",
            sweep=sweep_expired_reservations,
            interval_seconds=RESERVATION_CLEANUP_INTERVAL_MINUTES * 60,
            stop=stop,
        ),
    ]
