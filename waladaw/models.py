import datetime as dt
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .config import DEFAULT_PRODUCT_IMAGE, UPLOAD_URL_PREFIX

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime | None) -> dt.datetime | None:
    """Normalize a datetime read back from the database to aware UTC.

    SQLite hands back naive values even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


class ProductCategory(str, Enum):
    SMARTPHONES = "SMARTPHONES"
    LAPTOPS = "LAPTOPS"
    AUDIO = "AUDIO"
    GAMING = "GAMING"
    ACCESSORIES = "ACCESSORIES"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    MODERATOR = "MODERATOR"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(200), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    avatar = Column(String(500))
    role = Column(String(50), nullable=False, default=UserRole.USER.value)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True))
    deleted_by = Column(String(100))

    products = relationship("Product", back_populates="owner", foreign_keys="Product.owner_id")
    purchases = relationship("Purchase", back_populates="buyer")
    favorites = relationship("Favorite", back_populates="user", cascade="all, delete-orphan")
    ratings = relationship("Rating", back_populates="user", cascade="all, delete-orphan")
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(String(1000), nullable=False)
    price = Column(Numeric(18, 2), nullable=False)
    image = Column(String(500))
    category = Column(SAEnum(ProductCategory, name="product_category"), nullable=False, index=True)

    reserved = Column(Boolean, nullable=False, default=False)
    reserved_until = Column(DateTime(timezone=True))
    reserved_by = Column(Integer, index=True)

    deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True))
    deleted_by = Column(String(100))

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    purchase_id = Column(Integer, ForeignKey("purchases.id", ondelete="RESTRICT"), index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    owner = relationship("User", back_populates="products", foreign_keys=[owner_id])
    purchase = relationship("Purchase", back_populates="products")
    favorites = relationship("Favorite", back_populates="product")
    ratings = relationship("Rating", back_populates="product")

    __table_args__ = (CheckConstraint("price > 0", name="ck_products_price_positive"),)

    @property
    def image_url(self) -> str:
        if not self.image:
            return DEFAULT_PRODUCT_IMAGE
        if self.image.startswith("http") or self.image.startswith("/"):
            return self.image
        return f"{UPLOAD_URL_PREFIX}/{self.image}"

    @property
    def is_sold(self) -> bool:
        return self.purchase_id is not None

    @property
    def average_rating(self) -> float:
        scores = [r.score for r in (self.ratings or [])]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)

    def reservation_active_for_other(self, user_id: int, now: dt.datetime | None = None) -> bool:
        """True when someone other than user_id holds a reservation that has not expired.

        A reservation without a deadline is treated as still held.
        """
        if not self.reserved or self.reserved_by == user_id:
            return False
        until = as_utc(self.reserved_until)
        if until is None:
            return True
        return until > (now or utcnow())

    def reserve(self, user_id: int, until: dt.datetime) -> None:
        self.reserved = True
        self.reserved_until = until
        self.reserved_by = user_id

    def release_reservation(self) -> None:
        self.reserved = False
        self.reserved_until = None
        self.reserved_by = None

    def soft_delete(self, deleted_by: str) -> None:
        self.deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = deleted_by


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    purchased_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    total = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    buyer = relationship("User", back_populates="purchases")
    products = relationship("Product", back_populates="purchase", order_by="Product.id")


class CartItem(Base):
    """A product held in a user's cart. No quantity: every product is unique."""

    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    # price of the product when it was added
    price = Column(Numeric(18, 2), nullable=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="cart_items")
    product = relationship("Product")

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),)
    __mapper_args__ = {"version_id_col": version}


class Favorite(Base):
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="favorites")
    product = relationship("Product", back_populates="favorites")

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_favorites_user_product"),)


class Rating(Base):
    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, index=True)
    score = Column(Integer, nullable=False)
    comment = Column(String(500))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    user = relationship("User", back_populates="ratings")
    product = relationship("Product", back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_ratings_user_product"),
        CheckConstraint("score >= 1 AND score <= 5", name="ck_ratings_score_range"),
    )
