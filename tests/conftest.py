import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from logging_config import configure_logging
from main import app
from settings import Settings, get_settings


@pytest.fixture()
def settings():
    return Settings(
        database_name="shop_test",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        token_ttl_seconds=3600,
        write_retries=3,
        log_level="WARNING",
    )


@pytest.fixture()
def db():
    return mongomock.MongoClient()["shop_test"]


@pytest.fixture()
def client(settings, db):
    # no context manager: the startup hook would reach for the real database
    configure_logging(settings)
    ensure_indexes(db)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def signup(client):
    """Register and log in an account, returning its auth headers."""
    counter = {"n": 0}

    def _signup(name="Ana", email=None, phone=None, password="s3cret"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@mail.com"
        phone = phone or f"98765{counter['n']:05d}"
        resp = client.post(
            "/user/signup",
            json={"name": name, "email": email, "password": password, "phone": phone},
        )
        assert resp.status_code == 201, resp.text
        resp = client.post("/user/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        # keep accounts independent; each test passes its headers explicitly
        client.cookies.clear()
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _signup


@pytest.fixture()
def auth(signup):
    return signup()


@pytest.fixture()
def category_id(client):
    resp = client.post("/category/add", json={"category": "Laptops"})
    assert resp.status_code == 201
    return resp.json()["id"]


@pytest.fixture()
def make_product(client, category_id):
    def _make(title="MacBook Air M2", availability=True, price=1099):
        resp = client.post(
            "/product/add",
            json={
                "title": title,
                "price": price,
                "description": "13.6-inch Liquid Retina, M2 chip",
                "availability": availability,
                "category_id": category_id,
                "images": ["https://img.example.org/macbook.png"],
            },
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    return _make


@pytest.fixture()
def product_id(make_product):
    return make_product()
