import os
import tempfile
from datetime import datetime

_db_dir = tempfile.mkdtemp(prefix="giftchoice-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["SEED_CATALOG"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
from main import app  # noqa: E402
from schemas import Product  # noqa: E402


@pytest.fixture(autouse=True)
def clean_tables():
    database.init_db()
    for table in reversed(database.TABLES):
        database.execute(f"DELETE FROM {table}")
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_category(client):
    def _make(name="Water Bottles", **extra):
        resp = client.post("/api/categories", json={"name": name, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make


@pytest.fixture
def make_product(client):
    def _make(name="Steel Bottle", price=499, **extra):
        resp = client.post("/api/products", json={"name": name, "price": price, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make


@pytest.fixture
def catalog_product():
    """Builds in-memory products for search and Gift Buddy tests."""
    def _make(name, price, **extra) -> Product:
        fields = {
            "id": extra.pop("id", name.lower().replace(" ", "-")),
            "name": name,
            "price": price,
            "created_at": datetime(2026, 1, 1),
        }
        fields.update(extra)
        return Product(**fields)

    return _make
