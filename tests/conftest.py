import mongomock
import pytest

import database

# Must run before main/inventory/coupons import `db`
database.db = mongomock.MongoClient()["storefront_test"]

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402

CHECKOUT_BASE = {
    "full_name": "Nguyễn Văn An",
    "phone_number": "0987654321",
    "email": "buyer@gmail.com",
    "address": {
        "street": "12 Lý Thường Kiệt",
        "city": "Hà Nội",
        "state": "Hoàn Kiếm",
        "zip_code": "100000",
        "country": "VN",
    },
}


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def vendor(client):
    res = client.post("/api/vendors", json={
        "shop_name": "Áo Đẹp",
        "bank_id": "VCB",
        "bank_account": "0123456789",
        "bank_account_name": "Trần Thị Bình",
    })
    assert res.status_code == 201
    return res.json()


@pytest.fixture
def tee(client, vendor):
    """Shirt with Size x Color axes, 10 units of M/Red."""
    res = client.post(f"/api/vendor/{vendor['id']}/products", json={
        "name": "Tee",
        "price": 150000,
        "variants": [
            {"name": "Size", "values": ["M", "L"]},
            {"name": "Color", "values": [{"name": "Red", "color": "#FF0000"}, "Blue"]},
        ],
        "variant_stock": {"Size:M,Color:Red": 10, "Color:Blue,Size:L": 2},
    })
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def mug(client, vendor):
    """Plain product, general stock only."""
    res = client.post(f"/api/vendor/{vendor['id']}/products", json={
        "name": "Mug",
        "price": 5000.75,
        "stock": 100,
    })
    assert res.status_code == 201, res.text
    return res.json()


def checkout_body(*items, **extra):
    body = dict(CHECKOUT_BASE, items=list(items))
    body.update(extra)
    return body
