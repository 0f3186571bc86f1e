"""Shared fixtures: an in-memory database wired into the app, users, products."""

import os
import tempfile
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="waladaw-uploads-"))
os.environ["EMAIL_ENABLED"] = "false"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["BACKGROUND_JOBS_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from waladaw import cache
from waladaw.auth import create_access_token, get_password_hash
from waladaw.database import get_db
from waladaw.main import app
from waladaw.models import Base, Product, ProductCategory, User, UserRole

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_product_cache():
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(email=None, role=UserRole.USER, first_name="Test", last_name="User", password=PASSWORD):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            first_name=first_name,
            last_name=last_name,
            hashed_password=get_password_hash(password),
            role=role.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_product(db):
    def _make(owner, name="Used phone", price="100.00", category=ProductCategory.SMARTPHONES, **fields):
        product = Product(
            name=name,
            description=fields.pop("description", f"{name} in good condition"),
            price=Decimal(price),
            category=category,
            owner_id=owner.id,
            **fields,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def seller(make_user):
    return make_user(email="seller@example.com", first_name="Sam", last_name="Seller")


@pytest.fixture
def buyer(make_user):
    return make_user(email="buyer@example.com", first_name="Bea", last_name="Buyer")


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role=UserRole.ADMIN, first_name="Ada", last_name="Admin")


def auth_headers(user):
    token = create_access_token(data={"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def before_next_flush():
    """Run ``action`` the next time ``session`` flushes.

    Lets a test slip a second session's write in between a request's reads
    and its writes, the way a competing request would.
    """
    def _register(session, action):
        event.listen(session, "before_flush", lambda *args: action(), once=True)

    return _register
