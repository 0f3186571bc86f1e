"""Tests for the admin dashboard, statistics and back-office listings."""

import datetime as dt
from decimal import Decimal

from waladaw.crud import admin as stats
from waladaw.models import ProductCategory, Purchase


def _sell(db, product, buyer, when, total=None):
    purchase = Purchase(buyer_id=buyer.id, total=total or product.price, purchased_at=when)
    db.add(purchase)
    db.flush()
    product.purchase_id = purchase.id
    db.commit()
    return purchase


class TestDashboard:
    def test_counts_and_periods(self, db, seller, buyer, make_product):
        now = dt.datetime(2024, 5, 15, 12, 0, tzinfo=dt.timezone.utc)  # a Wednesday
        make_product(seller, name="Unsold")
        _sell(db, make_product(seller, name="Today", price="10.00"), buyer, now - dt.timedelta(hours=1))
        _sell(db, make_product(seller, name="Monday", price="20.00"), buyer, now - dt.timedelta(days=2))
        _sell(db, make_product(seller, name="May 1st", price="30.00"), buyer, dt.datetime(2024, 5, 1, tzinfo=dt.timezone.utc))
        _sell(db, make_product(seller, name="April", price="40.00"), buyer, dt.datetime(2024, 4, 20, tzinfo=dt.timezone.utc))

        out = stats.dashboard(db, now=now)

        assert out.total_users == 2
        assert out.total_products == 5
        assert out.available_products == 1
        assert out.total_purchases == 4
        assert out.total_sales == Decimal("100.00")
        assert (out.purchases_today, out.sales_today) == (1, Decimal("10.00"))
        assert (out.purchases_week, out.sales_week) == (2, Decimal("30.00"))
        assert (out.purchases_month, out.sales_month) == (3, Decimal("60.00"))


class TestStatistics:
    def test_categories_and_rankings(self, db, seller, buyer, make_user, make_product):
        other_seller = make_user()
        big_spender = make_user()
        now = dt.datetime.now(dt.timezone.utc)
        _sell(db, make_product(seller, category=ProductCategory.AUDIO, price="10.00"), buyer, now)
        _sell(db, make_product(seller, category=ProductCategory.AUDIO, price="10.00"), buyer, now)
        _sell(db, make_product(other_seller, category=ProductCategory.GAMING, price="500.00"), big_spender, now)

        out = stats.statistics(db)

        by_category = {c.category: c.count for c in out.sold_by_category}
        assert by_category == {ProductCategory.AUDIO: 2, ProductCategory.GAMING: 1}
        assert out.top_buyers[0].buyer_id == big_spender.id
        assert out.top_buyers[0].spent == Decimal("500.00")
        assert out.top_buyers[1].purchases == 2
        assert out.top_sellers[0].owner_id == seller.id
        assert out.top_sellers[0].products_sold == 2

    def test_monthly_sales_cover_twelve_months(self, db, seller, buyer, make_product):
        now = dt.datetime(2024, 3, 10, tzinfo=dt.timezone.utc)
        _sell(db, make_product(seller, price="25.00"), buyer, dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc))
        _sell(db, make_product(seller, price="75.00"), buyer, dt.datetime(2023, 4, 30, tzinfo=dt.timezone.utc))
        _sell(db, make_product(seller, price="99.00"), buyer, dt.datetime(2023, 3, 31, tzinfo=dt.timezone.utc))

        months = stats.monthly_sales(db, now=now)

        assert len(months) == 12
        assert (months[0].year, months[0].month) == (2023, 4)
        assert (months[-1].year, months[-1].month) == (2024, 3)
        assert months[0].total == Decimal("75.00")
        assert months[-1].purchases == 1
        assert sum(m.purchases for m in months) == 2


class TestAdminRoutes:
    def test_dashboard_requires_admin(self, client, buyer, headers):
        assert client.get("/admin/dashboard", headers=headers(buyer)).status_code == 403

    def test_dashboard_and_statistics(self, client, admin, headers):
        assert client.get("/admin/dashboard", headers=headers(admin)).status_code == 200
        body = client.get("/admin/statistics", headers=headers(admin)).json()
        assert len(body["monthly_sales"]) == 12

    def test_products_filtered_by_category(self, client, admin, seller, make_product, headers):
        make_product(seller, name="Phone", category=ProductCategory.SMARTPHONES)
        make_product(seller, name="Mouse", category=ProductCategory.ACCESSORIES)

        body = client.get("/admin/products?category=ACCESSORIES", headers=headers(admin)).json()

        assert body["total"] == 1
        assert body["products"][0]["name"] == "Mouse"

    def test_admin_deletes_any_product(self, client, admin, seller, make_product, headers):
        product = make_product(seller)

        response = client.delete(f"/admin/products/{product.id}", headers=headers(admin))

        assert response.status_code == 200
        assert client.get(f"/products/{product.id}").status_code == 404

    def test_sales_alias_filters_by_date(self, client, db, admin, seller, buyer, make_product, headers):
        _sell(db, make_product(seller), buyer, dt.datetime(2024, 6, 1, 18, tzinfo=dt.timezone.utc))
        _sell(db, make_product(seller), buyer, dt.datetime(2024, 6, 3, tzinfo=dt.timezone.utc))

        purchases = client.get("/admin/purchases?start=2024-06-01&end=2024-06-01", headers=headers(admin)).json()
        sales = client.get("/admin/sales?start=2024-06-01&end=2024-06-01", headers=headers(admin)).json()

        assert len(purchases) == 1
        assert purchases == sales

    def test_inverted_range_is_rejected(self, client, admin, headers):
        response = client.get("/admin/sales?start=2024-06-02&end=2024-06-01", headers=headers(admin))
        assert response.status_code == 422
