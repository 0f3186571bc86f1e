import datetime as dt
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Product, Purchase, User, as_utc, utcnow
from ..schemas import (
    BuyerStats,
    CategoryCount,
    DashboardOut,
    MonthlySales,
    SellerStats,
    StatisticsOut,
)

TOP_LIMIT = 10
MONTHS = 12


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _purchases_since(db: Session, since: dt.datetime):
    count, total = (
        db.query(func.count(Purchase.id), func.coalesce(func.sum(Purchase.total), 0))
        .filter(Purchase.purchased_at >= since)
        .one()
    )
    return int(count or 0), _money(total)


def dashboard(db: Session, now: Optional[dt.datetime] = None) -> DashboardOut:
    now = as_utc(now) if now else utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today - dt.timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    purchases_today, sales_today = _purchases_since(db, today)
    purchases_week, sales_week = _purchases_since(db, week_start)
    purchases_month, sales_month = _purchases_since(db, month_start)

    total_purchases, total_sales = (
        db.query(func.count(Purchase.id), func.coalesce(func.sum(Purchase.total), 0)).one()
    )

    return DashboardOut(
        total_users=db.query(User).count(),
        active_users=db.query(User).filter(User.deleted.is_(False)).count(),
        total_products=db.query(Product).filter(Product.deleted.is_(False)).count(),
        available_products=db.query(Product)
        .filter(Product.deleted.is_(False), Product.purchase_id.is_(None))
        .count(),
        total_purchases=int(total_purchases or 0),
        total_sales=_money(total_sales),
        purchases_today=purchases_today,
        purchases_week=purchases_week,
        purchases_month=purchases_month,
        sales_today=sales_today,
        sales_week=sales_week,
        sales_month=sales_month,
    )


def sold_by_category(db: Session) -> List[CategoryCount]:
    rows = (
        db.query(Product.category, func.count(Product.id))
        .filter(Product.purchase_id.isnot(None))
        .group_by(Product.category)
        .order_by(func.count(Product.id).desc())
        .all()
    )
    return [CategoryCount(category=category, count=count) for category, count in rows]


def top_buyers(db: Session, limit: int = TOP_LIMIT) -> List[BuyerStats]:
    spent = func.coalesce(func.sum(Purchase.total), 0)
    rows = (
        db.query(Purchase.buyer_id, func.count(Purchase.id), spent)
        .group_by(Purchase.buyer_id)
        .order_by(spent.desc(), Purchase.buyer_id)
        .limit(limit)
        .all()
    )
    return [BuyerStats(buyer_id=buyer_id, purchases=count, spent=_money(total)) for buyer_id, count, total in rows]


def top_sellers(db: Session, limit: int = TOP_LIMIT) -> List[SellerStats]:
    sold = func.count(Product.id)
    rows = (
        db.query(Product.owner_id, sold)
        .filter(Product.purchase_id.isnot(None))
        .group_by(Product.owner_id)
        .order_by(sold.desc(), Product.owner_id)
        .limit(limit)
        .all()
    )
    return [SellerStats(owner_id=owner_id, products_sold=count) for owner_id, count in rows]


def _month_starts(now: dt.datetime, months: int) -> List[dt.date]:
    year, month = now.year, now.month
    starts = []
    for _ in range(months):
        starts.append(dt.date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def monthly_sales(db: Session, now: Optional[dt.datetime] = None, months: int = MONTHS) -> List[MonthlySales]:
    """Sales per calendar month (UTC), oldest first, including months without sales."""
    now = as_utc(now) if now else utcnow()
    starts = _month_starts(now, months)
    since = dt.datetime.combine(starts[0], dt.time.min, tzinfo=dt.timezone.utc)

    buckets = {(s.year, s.month): [Decimal("0.00"), 0] for s in starts}
    rows = db.query(Purchase.purchased_at, Purchase.total).filter(Purchase.purchased_at >= since).all()
    for purchased_at, total in rows:
        when = as_utc(purchased_at)
        bucket = buckets.get((when.year, when.month))
        if bucket is None:
            continue
        bucket[0] += _money(total)
        bucket[1] += 1

    return [
        MonthlySales(year=year, month=month, total=total, purchases=count)
        for (year, month), (total, count) in buckets.items()
    ]


def statistics(db: Session) -> StatisticsOut:
    return StatisticsOut(
        sold_by_category=sold_by_category(db),
        top_buyers=top_buyers(db),
        top_sellers=top_sellers(db),
        monthly_sales=monthly_sales(db),
    )
