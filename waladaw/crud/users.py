import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import errors
from ..models import Product, Purchase, User, UserRole, utcnow
from ..schemas import UserCreate

logger = logging.getLogger(__name__)

DEFAULT_AVATAR = "https://robohash.org/{seed}?size=200x200"


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str, include_deleted: bool = False) -> Optional[User]:
    query = db.query(User).filter(func.lower(User.email) == _normalize_email(email))
    if not include_deleted:
        query = query.filter(User.deleted.is_(False))
    return query.first()


def get_user_by_id(db: Session, user_id: int, include_deleted: bool = False) -> Optional[User]:
    query = db.query(User).filter(User.id == user_id)
    if not include_deleted:
        query = query.filter(User.deleted.is_(False))
    return query.first()


def get_user_or_raise(db: Session, user_id: int) -> User:
    user = get_user_by_id(db, user_id)
    if user is None:
        raise errors.user_not_found(user_id)
    return user


def create_user(db: Session, user: UserCreate, role: UserRole = UserRole.USER) -> User:
    from ..auth import get_password_hash

    email = _normalize_email(user.email)
    if get_user_by_email(db, email, include_deleted=True):
        raise errors.user_already_exists(email)

    db_user = User(
        email=email,
        first_name=user.first_name.strip(),
        last_name=user.last_name.strip(),
        hashed_password=get_password_hash(user.password),
        avatar=DEFAULT_AVATAR.format(seed=email.split("@")[0]),
        role=role.value,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("User %s registered", db_user.id)
    return db_user


def authenticate(db: Session, email: str, password: str) -> User:
    from ..auth import verify_password

    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        raise errors.invalid_credentials()
    return user


def update_profile(db: Session, user: User, first_name: str, last_name: str, avatar: Optional[str] = None) -> User:
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise errors.invalid_data("First name and last name are required")

    user.first_name = first_name
    user.last_name = last_name
    if avatar:
        user.avatar = avatar
    db.commit()
    db.refresh(user)
    return user


def clear_avatar(db: Session, user: User) -> Optional[str]:
    """Reset the avatar to the generated default. Returns the previous value."""
    previous = user.avatar
    user.avatar = DEFAULT_AVATAR.format(seed=user.email.split("@")[0])
    db.commit()
    db.refresh(user)
    return previous


def change_password(db: Session, user: User, current_password: str, new_password: str, confirm_password: str) -> User:
    from ..auth import get_password_hash, verify_password

    if not current_password or not new_password or not confirm_password:
        raise errors.invalid_data("All fields are required")
    if new_password != confirm_password:
        raise errors.invalid_data("Passwords do not match")
    if len(new_password) < 4:
        raise errors.invalid_data("Password must be at least 4 characters long")
    if len(new_password.encode("utf-8")) > 72:
        raise errors.invalid_data("Password is too long")
    if not verify_password(current_password, user.hashed_password):
        raise errors.UnauthorizedError("INVALID_CREDENTIALS", "Current password is incorrect")

    user.hashed_password = get_password_hash(new_password)
    db.commit()
    db.refresh(user)
    return user


# -----------------------------
# Admin
# -----------------------------

def get_users(db: Session, skip: int = 0, limit: int = 20) -> List[User]:
    return (
        db.query(User)
        .filter(User.deleted.is_(False))
        .order_by(User.created_at.desc(), User.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def count_users(db: Session) -> int:
    return db.query(User).filter(User.deleted.is_(False)).count()


def count_user_products(db: Session, user_id: int) -> int:
    return db.query(Product).filter(Product.owner_id == user_id, Product.deleted.is_(False)).count()


def count_user_purchases(db: Session, user_id: int) -> int:
    return db.query(Purchase).filter(Purchase.buyer_id == user_id).count()


def change_role(db: Session, user_id: int, new_role: str) -> User:
    try:
        role = UserRole((new_role or "").strip().upper())
    except ValueError:
        raise errors.invalid_role(new_role)

    user = get_user_or_raise(db, user_id)
    user.role = role.value
    db.commit()
    db.refresh(user)
    logger.info("Role of user %s changed to %s", user_id, role.value)
    return user


def soft_delete_user(db: Session, user_id: int, acting_admin: User) -> User:
    user = get_user_or_raise(db, user_id)
    if user.id == acting_admin.id:
        raise errors.cannot_delete_self()

    has_active_products = (
        db.query(Product.id)
        .filter(Product.owner_id == user_id, Product.deleted.is_(False), Product.purchase_id.is_(None))
        .first()
        is not None
    )
    if has_active_products:
        logger.warning("Refused to delete user %s: products for sale", user_id)
        raise errors.user_has_active_products()

    has_sold_products = (
        db.query(Product.id)
        .filter(Product.owner_id == user_id, Product.purchase_id.isnot(None))
        .first()
        is not None
    )
    if has_sold_products:
        logger.warning("Refused to delete user %s: sold products", user_id)
        raise errors.user_has_sold_products()

    if db.query(Purchase.id).filter(Purchase.buyer_id == user_id).first() is not None:
        logger.warning("Refused to delete user %s: purchases", user_id)
        raise errors.user_has_purchases()

    user.deleted = True
    user.deleted_at = utcnow()
    user.deleted_by = str(acting_admin.id)
    db.commit()
    db.refresh(user)
    logger.info("User %s soft-deleted by admin %s", user_id, acting_admin.id)
    return user
