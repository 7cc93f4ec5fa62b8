"""Tests for the app wiring: health endpoints and error mapping."""

from pymongo.errors import PyMongoError

from database import get_db
from main import app


class BrokenDb:
    def __getitem__(self, name):
        raise PyMongoError("database unreachable")

    def list_collection_names(self):
        raise PyMongoError("database unreachable")


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Welcome To E-Commerce API"}


def test_database_status(client):
    data = client.get("/test").json()
    assert data["backend"] == "✅ Running"
    assert data["connection_status"] == "Connected"
    assert data["database_name"] == "shop_test"


def test_storage_failure_is_reported_as_internal(client):
    app.dependency_overrides[get_db] = lambda: BrokenDb()
    resp = client.get("/category")
    assert resp.status_code == 500
    assert resp.json() == {"message": "database unreachable"}

    status = client.get("/test").json()
    assert status["connection_status"] == "Not Connected"


def test_validation_errors_use_message_body(client):
    resp = client.post("/category/add", json={"name": "wrong field"})
    assert resp.status_code == 400
    assert "category" in resp.json()["message"]
