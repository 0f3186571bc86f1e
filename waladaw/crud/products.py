import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from .. import cache, errors
from ..models import Product, ProductCategory, User
from ..pricing import parse_price
from ..schemas import ProductOut

logger = logging.getLogger(__name__)


def _live_products(db: Session):
    return (
        db.query(Product)
        .options(joinedload(Product.owner), selectinload(Product.ratings))
        .filter(Product.deleted.is_(False))
    )


def parse_category(value) -> ProductCategory:
    if isinstance(value, ProductCategory):
        return value
    try:
        return ProductCategory((value or "").strip().upper())
    except ValueError:
        raise errors.invalid_data(f"Unknown category '{value}'")


def _validated_fields(name: str, description: str, price, category) -> dict:
    name = (name or "").strip()
    description = (description or "").strip()
    if not name:
        raise errors.invalid_data("Product name is required")
    if len(name) > 200:
        raise errors.invalid_data("Product name cannot exceed 200 characters")
    if not description:
        raise errors.invalid_data("Product description is required")
    if len(description) > 1000:
        raise errors.invalid_data("Product description cannot exceed 1000 characters")

    amount = parse_price(price)
    if amount <= 0:
        raise errors.invalid_price()

    return {
        "name": name,
        "description": description,
        "price": amount,
        "category": parse_category(category),
    }


def get_product(db: Session, product_id: int) -> Optional[Product]:
    return _live_products(db).filter(Product.id == product_id).first()


def get_product_or_raise(db: Session, product_id: int) -> Product:
    product = get_product(db, product_id)
    if product is None:
        raise errors.product_not_found(product_id)
    return product


def list_available(db: Session) -> List[ProductOut]:
    """Products that are for sale, newest first. Served from the product cache."""

    def load():
        products = (
            _live_products(db)
            .filter(Product.purchase_id.is_(None))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .all()
        )
        return [ProductOut.model_validate(p) for p in products]

    return cache.get_or_set(cache.PRODUCTS_KEY, load)


def get_product_detail(db: Session, product_id: int) -> ProductOut:
    def load():
        return ProductOut.model_validate(get_product_or_raise(db, product_id))

    return cache.get_or_set(cache.product_details_key(product_id), load)


def search_products(
    db: Session,
    text: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Product]:
    query = _live_products(db).filter(Product.purchase_id.is_(None))
    if text and text.strip():
        pattern = f"%{text.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if category:
        query = query.filter(Product.category == parse_category(category))
    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_by_owner(db: Session, owner_id: int) -> List[Product]:
    """The owner's listings, sold ones included."""
    return (
        _live_products(db)
        .filter(Product.owner_id == owner_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )


def create_product(
    db: Session,
    owner: User,
    name: str,
    description: str,
    price,
    category,
    image: Optional[str] = None,
) -> Product:
    fields = _validated_fields(name, description, price, category)
    db_product = Product(**fields, image=image, owner_id=owner.id)
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    cache.invalidate_products()
    logger.info("Product %s created by user %s", db_product.id, owner.id)
    return db_product


def update_product(
    db: Session,
    product_id: int,
    user: User,
    name: str,
    description: str,
    price,
    category,
    image: Optional[str] = None,
) -> Tuple[Product, Optional[str]]:
    """Update a listing. Returns the product and the image it replaced, if any."""
    product = get_product_or_raise(db, product_id)
    if product.owner_id != user.id:
        logger.warning("User %s tried to edit product %s", user.id, product_id)
        raise errors.not_owner()
    if product.is_sold:
        raise errors.product_already_sold()

    fields = _validated_fields(name, description, price, category)
    for key, value in fields.items():
        setattr(product, key, value)

    replaced = None
    if image:
        replaced = product.image
        product.image = image

    db.commit()
    db.refresh(product)
    cache.invalidate_products(product_id)
    return product, replaced


def delete_product(db: Session, product_id: int, user: User) -> Product:
    product = get_product_or_raise(db, product_id)
    if product.owner_id != user.id and not user.is_admin:
        raise errors.not_owner()
    if product.is_sold:
        logger.warning("Refused to delete sold product %s", product_id)
        raise errors.cannot_delete_sold()

    product.soft_delete(str(user.id))
    product.release_reservation()
    db.commit()
    db.refresh(product)
    cache.invalidate_products(product_id)
    logger.info("Product %s deleted by user %s", product_id, user.id)
    return product


# -----------------------------
# Admin
# -----------------------------

def list_products_admin(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    category: Optional[str] = None,
) -> Tuple[List[Product], int]:
    query = _live_products(db)
    if category:
        query = query.filter(Product.category == parse_category(category))
    total = query.count()
    items = query.order_by(Product.created_at.desc(), Product.id.desc()).offset(skip).limit(limit).all()
    return items, total
