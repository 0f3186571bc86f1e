"""Tests for registration, login, profile management and admin user operations."""

import pytest

from waladaw import config, storage
from waladaw.auth import verify_password
from waladaw.crud import users as crud
from waladaw.errors import BusinessRuleError, ConflictError, NotFoundError, UnauthorizedError, ValidationError
from waladaw.models import Purchase, UserRole
from waladaw.schemas import UserCreate

PASSWORD = "secret123"


class TestRegistration:
    def test_register_and_login(self, client):
        response = client.post(
            "/users/register",
            data={"email": "New@Example.com", "password": "pass", "first_name": "Nina", "last_name": "New"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "new@example.com"
        assert body["role"] == "USER"
        assert body["avatar"].startswith("https://robohash.org/")

        login = client.post("/users/login", data={"email": "new@example.com", "password": "pass"})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["first_name"] == "Nina"

    def test_duplicate_email(self, client, buyer):
        response = client.post(
            "/users/register",
            data={"email": buyer.email, "password": "pass", "first_name": "B", "last_name": "B"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "USER_EXISTS"

    def test_password_too_long(self, client):
        response = client.post(
            "/users/register",
            data={"email": "x@example.com", "password": "ñ" * 40, "first_name": "X", "last_name": "Y"},
        )

        assert response.status_code == 422

    def test_invalid_email(self, client):
        response = client.post(
            "/users/register",
            data={"email": "not-an-email", "password": "pass", "first_name": "X", "last_name": "Y"},
        )

        assert response.status_code == 422

    def test_wrong_password_is_401(self, client, buyer):
        response = client.post("/users/login", data={"email": buyer.email, "password": "wrong"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_deleted_user_cannot_log_in(self, client, db, buyer):
        buyer.deleted = True
        db.commit()

        response = client.post("/users/login", data={"email": buyer.email, "password": PASSWORD})

        assert response.status_code == 401

    def test_create_user_rejects_existing_email_case_insensitively(self, db, buyer):
        with pytest.raises(ConflictError):
            crud.create_user(
                db, UserCreate(email=buyer.email.upper(), password="pass", first_name="A", last_name="B")
            )


class TestProfile:
    def test_update_profile_with_avatar(self, client, buyer, headers):
        response = client.patch(
            "/users/me",
            data={"first_name": "Beatriz", "last_name": "Buyer"},
            files={"avatar": ("me.jpg", b"\xff\xd8jpeg", "image/jpeg")},
            headers=headers(buyer),
        )

        assert response.status_code == 200
        assert response.json()["first_name"] == "Beatriz"
        assert response.json()["avatar"].startswith("/uploads/avatars/")

    def test_rejected_profile_update_discards_uploaded_avatar(
        self, client, buyer, headers, tmp_path, monkeypatch
    ):
        monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))

        response = client.patch(
            "/users/me",
            data={"first_name": "   ", "last_name": "Buyer"},
            files={"avatar": ("me.jpg", b"\xff\xd8jpeg", "image/jpeg")},
            headers=headers(buyer),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_DATA"
        assert list((tmp_path / storage.AVATARS_FOLDER).glob("*")) == []

    def test_delete_avatar_restores_default(self, client, buyer, headers):
        response = client.delete("/users/me/avatar", headers=headers(buyer))

        assert response.status_code == 200
        assert response.json()["avatar"].startswith("https://robohash.org/")

    def test_blank_names_are_rejected(self, db, buyer):
        with pytest.raises(ValidationError):
            crud.update_profile(db, buyer, "  ", "Buyer")

    def test_change_password(self, db, buyer):
        crud.change_password(db, buyer, PASSWORD, "newpass", "newpass")
        assert verify_password("newpass", buyer.hashed_password)

    def test_change_password_checks_current(self, db, buyer):
        with pytest.raises(UnauthorizedError):
            crud.change_password(db, buyer, "nope", "newpass", "newpass")

    def test_change_password_requires_confirmation(self, db, buyer):
        with pytest.raises(ValidationError):
            crud.change_password(db, buyer, PASSWORD, "newpass", "other")

    def test_change_password_min_length(self, db, buyer):
        with pytest.raises(ValidationError):
            crud.change_password(db, buyer, PASSWORD, "abc", "abc")

    def test_invalid_token_is_401(self, client):
        response = client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


class TestAdminUsers:
    def test_soft_delete(self, db, admin, buyer):
        deleted = crud.soft_delete_user(db, buyer.id, admin)

        assert deleted.deleted is True
        assert deleted.deleted_by == str(admin.id)
        assert crud.get_user_by_email(db, buyer.email) is None

    def test_cannot_delete_self(self, db, admin):
        with pytest.raises(BusinessRuleError) as exc:
            crud.soft_delete_user(db, admin.id, admin)
        assert exc.value.code == "CANNOT_DELETE_SELF"

    def test_cannot_delete_user_with_products_for_sale(self, db, admin, seller, make_product):
        make_product(seller)
        with pytest.raises(BusinessRuleError) as exc:
            crud.soft_delete_user(db, seller.id, admin)
        assert exc.value.code == "USER_HAS_ACTIVE_PRODUCTS"

    def test_cannot_delete_user_with_sold_products(self, db, admin, seller, buyer, make_product):
        product = make_product(seller)
        purchase = Purchase(buyer_id=buyer.id, total=product.price)
        db.add(purchase)
        db.flush()
        product.purchase_id = purchase.id
        db.commit()

        with pytest.raises(BusinessRuleError) as exc:
            crud.soft_delete_user(db, seller.id, admin)
        assert exc.value.code == "USER_HAS_SOLD_PRODUCTS"

        with pytest.raises(BusinessRuleError) as exc:
            crud.soft_delete_user(db, buyer.id, admin)
        assert exc.value.code == "USER_HAS_PURCHASES"

    def test_unknown_user(self, db, admin):
        with pytest.raises(NotFoundError):
            crud.soft_delete_user(db, 999, admin)

    def test_change_role(self, db, buyer):
        assert crud.change_role(db, buyer.id, "moderator").role == UserRole.MODERATOR.value
        with pytest.raises(ValidationError) as exc:
            crud.change_role(db, buyer.id, "SUPERUSER")
        assert exc.value.code == "INVALID_ROLE"

    def test_routes_require_admin(self, client, buyer, headers):
        response = client.get("/admin/users", headers=headers(buyer))
        assert response.status_code == 403

    def test_list_and_detail(self, client, admin, seller, make_product, headers):
        make_product(seller)

        listing = client.get("/admin/users", headers=headers(admin)).json()
        assert listing["total"] == 2

        detail = client.get(f"/admin/users/{seller.id}", headers=headers(admin)).json()
        assert detail["product_count"] == 1
        assert detail["purchase_count"] == 0

    def test_delete_route_reports_business_error(self, client, admin, seller, make_product, headers):
        make_product(seller)

        response = client.delete(f"/admin/users/{seller.id}", headers=headers(admin))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "USER_HAS_ACTIVE_PRODUCTS"
