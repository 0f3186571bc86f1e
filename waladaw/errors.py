"""Domain errors raised by the data-access layer.

Every error carries a stable ``code`` and a user-facing ``message``. The
subclass says what kind of failure it is; the web layer maps the kind to an
HTTP status (see ``waladaw.main``).
"""
from __future__ import annotations


class DomainError(Exception):
    kind = "technical"

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(DomainError):
    kind = "not_found"


class BusinessRuleError(DomainError):
    kind = "business"


class ForbiddenError(DomainError):
    kind = "forbidden"


class ValidationError(DomainError):
    kind = "validation"


class ConflictError(DomainError):
    kind = "conflict"


class UnauthorizedError(DomainError):
    kind = "unauthorized"


class TechnicalError(DomainError):
    kind = "technical"


class ConcurrencyError(TechnicalError):
    kind = "concurrency"


# -----------------------------
# Generic
# -----------------------------

def database_error(message: str) -> DomainError:
    return TechnicalError("DATABASE_ERROR", message)


def concurrency_error(message: str = "Another user changed the data. Please try again.") -> DomainError:
    return ConcurrencyError("CONCURRENCY_ERROR", message)


def invalid_data(message: str) -> DomainError:
    return ValidationError("INVALID_DATA", message)


# -----------------------------
# Users
# -----------------------------

def invalid_credentials() -> DomainError:
    return UnauthorizedError("INVALID_CREDENTIALS", "Incorrect email or password")


def user_not_found(user_id: int) -> DomainError:
    return NotFoundError("USER_NOT_FOUND", f"User with id {user_id} not found")


def user_already_exists(email: str) -> DomainError:
    return ConflictError("USER_EXISTS", f"A user with email {email} already exists")


def user_has_active_products() -> DomainError:
    return BusinessRuleError("USER_HAS_ACTIVE_PRODUCTS", "Cannot delete a user with products for sale")


def user_has_sold_products() -> DomainError:
    return BusinessRuleError("USER_HAS_SOLD_PRODUCTS", "Cannot delete a user who has sold products")


def user_has_purchases() -> DomainError:
    return BusinessRuleError("USER_HAS_PURCHASES", "Cannot delete a user who has made purchases")


def cannot_delete_self() -> DomainError:
    return BusinessRuleError("CANNOT_DELETE_SELF", "Cannot delete your own account")


def invalid_role(role: str) -> DomainError:
    return ValidationError("INVALID_ROLE", f"Unknown role '{role}'")


# -----------------------------
# Products
# -----------------------------

def product_not_found(product_id: int) -> DomainError:
    return NotFoundError("PRODUCT_NOT_FOUND", f"Product with id {product_id} not found")


def product_already_sold() -> DomainError:
    return BusinessRuleError("PRODUCT_SOLD", "This product has already been sold")


def cannot_delete_sold() -> DomainError:
    return BusinessRuleError("CANNOT_DELETE_SOLD", "A product that has been sold cannot be deleted")


def not_owner() -> DomainError:
    return ForbiddenError("NOT_OWNER", "You are not the owner of this product")


def invalid_price() -> DomainError:
    return ValidationError("INVALID_PRICE", "Price must be greater than zero")


# -----------------------------
# Cart
# -----------------------------

def cart_item_not_found(item_id: int) -> DomainError:
    return NotFoundError("CART_ITEM_NOT_FOUND", f"Cart item with id {item_id} not found")


def cart_item_forbidden() -> DomainError:
    return ForbiddenError("CART_ITEM_FORBIDDEN", "This cart item belongs to another user")


def cart_product_not_available(product_name: str) -> DomainError:
    return BusinessRuleError("PRODUCT_NOT_AVAILABLE", f"The product '{product_name}' is not available")


def product_already_in_cart(product_name: str) -> DomainError:
    return ConflictError("PRODUCT_ALREADY_IN_CART", f"The product '{product_name}' is already in your cart")


def cannot_buy_own_product() -> DomainError:
    return BusinessRuleError("CANNOT_BUY_OWN_PRODUCT", "You cannot buy your own product")


def cart_concurrency_conflict() -> DomainError:
    return ConcurrencyError(
        "CART_CONCURRENCY_CONFLICT",
        "The cart was modified by another process. Please try again.",
    )


# -----------------------------
# Purchases
# -----------------------------

def empty_cart() -> DomainError:
    return BusinessRuleError("EMPTY_CART", "Cannot create a purchase from an empty cart")


def purchase_not_found(purchase_id: int) -> DomainError:
    return NotFoundError("PURCHASE_NOT_FOUND", f"Purchase with id {purchase_id} not found")


def purchase_forbidden() -> DomainError:
    return ForbiddenError("UNAUTHORIZED", "You are not allowed to view this purchase")


def purchase_product_not_available(product_name: str) -> DomainError:
    return BusinessRuleError("PRODUCT_NOT_AVAILABLE", f"The product '{product_name}' is no longer available")


def pdf_generation_failed(message: str) -> DomainError:
    return TechnicalError("PDF_GENERATION_FAILED", f"Error generating PDF: {message}")


# -----------------------------
# Ratings
# -----------------------------

def invalid_rating() -> DomainError:
    return ValidationError("INVALID_RATING", "Score must be between 1 and 5")


def product_not_purchased() -> DomainError:
    return BusinessRuleError("PRODUCT_NOT_PURCHASED", "You can only rate products you have bought")


def already_rated() -> DomainError:
    return BusinessRuleError("ALREADY_RATED", "You have already rated this product")


def rating_not_found(rating_id: int) -> DomainError:
    return NotFoundError("RATING_NOT_FOUND", f"Rating with id {rating_id} not found")


def rating_forbidden() -> DomainError:
    return ForbiddenError("UNAUTHORIZED", "You are not allowed to modify this rating")


# -----------------------------
# Favorites
# -----------------------------

def favorite_exists() -> DomainError:
    return ConflictError("FAVORITE_EXISTS", "This product is already in your favorites")


def favorite_not_found() -> DomainError:
    return NotFoundError("FAVORITE_NOT_FOUND", "This product is not in your favorites")
