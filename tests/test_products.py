"""Tests for product listings: data access, caching and routes."""

from decimal import Decimal

import pytest

from waladaw import cache
from waladaw.crud import products as crud
from waladaw.errors import BusinessRuleError, ForbiddenError, NotFoundError, ValidationError
from waladaw.models import Product, ProductCategory, Purchase


# =============================================================================
# Data access
# =============================================================================


class TestCreateProduct:
    def test_creates_with_comma_price(self, db, seller):
        product = crud.create_product(db, seller, "Laptop", "Barely used", "499,90", "laptops")

        assert product.id is not None
        assert product.price == Decimal("499.90")
        assert product.category == ProductCategory.LAPTOPS
        assert product.image_url == "/images/default-product.svg"

    def test_zero_price_is_rejected(self, db, seller):
        with pytest.raises(ValidationError) as exc:
            crud.create_product(db, seller, "Laptop", "Barely used", "0", "LAPTOPS")
        assert exc.value.code == "INVALID_PRICE"

    def test_price_with_two_separators_is_rejected(self, db, seller):
        with pytest.raises(ValidationError) as exc:
            crud.create_product(db, seller, "Laptop", "Barely used", "1.299,00", "LAPTOPS")
        assert exc.value.code == "INVALID_DATA"

    def test_unknown_category_is_rejected(self, db, seller):
        with pytest.raises(ValidationError):
            crud.create_product(db, seller, "Lamp", "Desk lamp", "10", "FURNITURE")

    def test_invalidates_list_cache(self, db, seller, make_product):
        make_product(seller, name="Old")
        assert len(crud.list_available(db)) == 1

        crud.create_product(db, seller, "New", "Brand new", "10", "AUDIO")

        assert len(crud.list_available(db)) == 2


class TestListAndSearch:
    def test_lists_only_available_products_newest_first(self, db, seller, buyer, make_product):
        first = make_product(seller, name="First")
        second = make_product(seller, name="Second")
        make_product(seller, name="Gone", deleted=True)
        sold = make_product(seller, name="Sold")
        purchase = Purchase(buyer_id=buyer.id, total=sold.price)
        db.add(purchase)
        db.flush()
        sold.purchase_id = purchase.id
        db.commit()

        names = [p.name for p in crud.list_available(db)]

        assert names == [second.name, first.name]

    def test_list_is_served_from_cache(self, db, seller, make_product):
        make_product(seller, name="Cached")
        crud.list_available(db)

        db.add(Product(name="Sneaky", description="Not invalidated", price=Decimal("1"),
                       category=ProductCategory.AUDIO, owner_id=seller.id))
        db.commit()

        assert [p.name for p in crud.list_available(db)] == ["Cached"]
        cache.invalidate_products()
        assert len(crud.list_available(db)) == 2

    def test_search_by_text_and_category(self, db, seller, make_product):
        make_product(seller, name="iPhone 12", category=ProductCategory.SMARTPHONES)
        make_product(seller, name="Gaming headset", description="Wireless", category=ProductCategory.AUDIO)
        make_product(seller, name="PS5", description="With wireless controller", category=ProductCategory.GAMING)

        assert {p.name for p in crud.search_products(db, text="wireless")} == {"Gaming headset", "PS5"}
        assert [p.name for p in crud.search_products(db, text="wireless", category="GAMING")] == ["PS5"]

    def test_detail_of_deleted_product_is_not_found(self, db, seller, make_product):
        product = make_product(seller, deleted=True)
        with pytest.raises(NotFoundError):
            crud.get_product_detail(db, product.id)

    def test_list_by_owner_includes_sold(self, db, seller, buyer, make_product):
        make_product(seller, name="Mine")
        sold = make_product(seller, name="Sold")
        purchase = Purchase(buyer_id=buyer.id, total=sold.price)
        db.add(purchase)
        db.flush()
        sold.purchase_id = purchase.id
        db.commit()
        make_product(buyer, name="Theirs")

        assert {p.name for p in crud.list_by_owner(db, seller.id)} == {"Mine", "Sold"}


class TestUpdateAndDelete:
    def test_only_owner_can_update(self, db, seller, buyer, make_product):
        product = make_product(seller)
        with pytest.raises(ForbiddenError) as exc:
            crud.update_product(db, product.id, buyer, "X", "Y", "5", "AUDIO")
        assert exc.value.code == "NOT_OWNER"

    def test_update_keeps_image_without_upload(self, db, seller, make_product):
        product = make_product(seller, image="/uploads/products/old.png")

        updated, replaced = crud.update_product(db, product.id, seller, "Renamed", "Desc", "20,5", "AUDIO")

        assert updated.name == "Renamed"
        assert updated.price == Decimal("20.50")
        assert updated.image == "/uploads/products/old.png"
        assert replaced is None

    def test_update_invalidates_detail_cache(self, db, seller, make_product):
        product = make_product(seller, name="Before")
        assert crud.get_product_detail(db, product.id).name == "Before"

        crud.update_product(db, product.id, seller, "After", "Desc", "10", "AUDIO")

        assert crud.get_product_detail(db, product.id).name == "After"

    def test_sold_product_cannot_be_deleted(self, db, seller, buyer, make_product):
        product = make_product(seller)
        purchase = Purchase(buyer_id=buyer.id, total=product.price)
        db.add(purchase)
        db.flush()
        product.purchase_id = purchase.id
        db.commit()

        with pytest.raises(BusinessRuleError) as exc:
            crud.delete_product(db, product.id, seller)
        assert exc.value.code == "CANNOT_DELETE_SOLD"

    def test_admin_can_delete_any_product(self, db, seller, admin, make_product):
        product = make_product(seller)

        deleted = crud.delete_product(db, product.id, admin)

        assert deleted.deleted is True
        assert deleted.deleted_by == str(admin.id)
        assert crud.get_product(db, product.id) is None

    def test_stranger_cannot_delete(self, db, seller, buyer, make_product):
        product = make_product(seller)
        with pytest.raises(ForbiddenError):
            crud.delete_product(db, product.id, buyer)


# =============================================================================
# Routes
# =============================================================================


class TestProductRoutes:
    def test_public_listing(self, client, seller, make_product):
        make_product(seller, name="Camera", price="80.00")

        response = client.get("/products/")

        assert response.status_code == 200
        body = response.json()
        assert body[0]["name"] == "Camera"
        assert body[0]["owner"]["first_name"] == "Sam"
        assert body[0]["is_sold"] is False

    def test_create_requires_login(self, client):
        response = client.post(
            "/products/",
            data={"name": "X", "description": "Y", "price": "1", "category": "AUDIO"},
        )
        assert response.status_code in (401, 403)

    def test_create_with_image_upload(self, client, seller, headers):
        response = client.post(
            "/products/",
            data={"name": "Speaker", "description": "Loud", "price": "35,00", "category": "AUDIO"},
            files={"image": ("speaker.png", b"\x89PNG fake", "image/png")},
            headers=headers(seller),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["price"] in ("35.00", "35.0", 35.0)
        assert body["image_url"].startswith("/uploads/products/")
        assert body["image_url"].endswith(".png")

    def test_create_rejects_bad_extension(self, client, seller, headers):
        response = client.post(
            "/products/",
            data={"name": "Speaker", "description": "Loud", "price": "35", "category": "AUDIO"},
            files={"image": ("speaker.exe", b"MZ", "application/octet-stream")},
            headers=headers(seller),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_DATA"

    def test_create_rejects_huge_price(self, client, seller, headers):
        response = client.post(
            "/products/",
            data={"name": "Yacht", "description": "Big", "price": "1e30", "category": "AUDIO"},
            headers=headers(seller),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_DATA"

    def test_unknown_product_is_404(self, client):
        response = client.get("/products/999")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "PRODUCT_NOT_FOUND"

    def test_update_by_non_owner_is_403(self, client, seller, buyer, make_product, headers):
        product = make_product(seller)
        response = client.put(
            f"/products/{product.id}",
            data={"name": "Mine now", "description": "Y", "price": "1", "category": "AUDIO"},
            headers=headers(buyer),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "NOT_OWNER"

    def test_my_products(self, client, seller, buyer, make_product, headers):
        make_product(seller, name="Mine")
        make_product(buyer, name="Not mine")

        response = client.get("/products/mine", headers=headers(seller))

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Mine"]

    def test_delete_hides_product(self, client, seller, make_product, headers):
        product = make_product(seller)

        assert client.delete(f"/products/{product.id}", headers=headers(seller)).status_code == 200
        assert client.get(f"/products/{product.id}").status_code == 404
