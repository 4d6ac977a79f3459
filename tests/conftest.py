from datetime import datetime

import pytest

from clinic.app import create_app
from clinic.storage import MemoryStorage
from clinic.store import ClinicStore


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    # local noon, as an aware datetime
    return FakeClock(datetime(2026, 10, 19, 12, 0).astimezone())


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return ClinicStore.load(storage, clock=clock)


@pytest.fixture
def app(clock):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test",
        "CLINIC_CLOCK": clock,
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def receptionist(client):
    resp = client.post("/login", json={"role": "receptionist"})
    assert resp.status_code == 200
    return client
