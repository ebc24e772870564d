import uuid
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import ensure_indexes
from main import create_app


class FixedClock:
    """Stands in for the server clock so order ids are predictable."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    name = f"storefront_test_{uuid.uuid4().hex[:8]}"
    database = client[name]
    ensure_indexes(database)
    yield database
    client.drop_database(name)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def settings(upload_dir):
    return Settings(upload_dir=str(upload_dir), log_file=None)


@pytest.fixture
def client(settings, db, clock):
    app = create_app(settings=settings, db=db, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def order_payload():
    return {
        "firstName": "Ana",
        "lastName": "Silva",
        "contactNumber": "0771234567",
        "address1": "12 Lake Road",
        "address2": "Apt 4",
        "city": "Kandy",
        "province": "Central",
        "postalCode": "20000",
        "specialNote": "Ring twice",
        "subtotal": "100.50",
        "deliveryFee": "5.00",
        "discount": "10.05",
        "total": "95.45",
    }
