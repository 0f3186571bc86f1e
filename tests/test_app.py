"""Tests for app-wide behaviour: error translation, error page, health endpoints."""

import pytest
from fastapi.testclient import TestClient

from waladaw.crud import products as product_crud
from waladaw.main import app


@pytest.fixture
def lenient_client(client):
    return TestClient(app, raise_server_exceptions=False)


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy", "service": "waladaw"}


def test_domain_error_body(client):
    response = client.get("/products/4242")

    assert response.status_code == 404
    assert response.json() == {
        "detail": {"error": "PRODUCT_NOT_FOUND", "message": "Product with id 4242 not found"}
    }


def test_unexpected_error_returns_json_for_api_clients(lenient_client, monkeypatch):
    def explode(db):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(product_crud, "list_available", explode)

    response = lenient_client.get("/products/", headers={"Accept": "application/json"})

    assert response.status_code == 500
    assert response.json()["error"] == "INTERNAL_ERROR"


def test_unexpected_error_redirects_browsers_to_error_page(lenient_client, monkeypatch):
    def explode(db):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(product_crud, "list_available", explode)

    response = lenient_client.get("/products/", headers={"Accept": "text/html"}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/error"


def test_error_page(client):
    response = client.get("/error")

    assert response.status_code == 500
    assert "Something went wrong" in response.text
