from typing import Generator
import pytest
from sqlalchemy.pool import StaticPool

from storefront import crud
from storefront.config import Settings
from storefront.db import Database
from storefront.main import create_app, get_db


@pytest.fixture(scope="function")
def database() -> Generator:
    # Use in-memory SQLite with a single connection
    db = Database("sqlite://", poolclass=StaticPool)
    db.create_all()
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture(scope="function")
def db_session(database) -> Generator:
    with database.session() as db:
        crud.ensure_categories(db)
        yield db


@pytest.fixture(scope="function")
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        cors_origins=["http://localhost:3000"],
        max_product_images=3,
    )


@pytest.fixture(scope="function")
def client(database, db_session, settings):
    app = create_app(settings=settings, database=database)

    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    from storefront import schemas

    def _make(email="buyer@example.com", password="s3cret"):
        signup = schemas.SignupRequest(email=email, password=password, confirm_password=password)
        return crud.create_user(db_session, signup)
    return _make


@pytest.fixture
def make_product(db_session):
    from decimal import Decimal
    from storefront import schemas

    def _make(title="Desk Lamp", price="19.99", category="home", images=(b"\xff\xd8lamp-front",)):
        product = schemas.ProductCreate(title=title, price=Decimal(price), category=category)
        return crud.create_product(db_session, product, list(images))
    return _make
