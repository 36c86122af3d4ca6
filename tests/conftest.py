import os
import tempfile
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="moveeazy-tests-"))

# Configure before importing the app
os.environ["ENV"] = "dev"
os.environ["DB_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-prod")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "true")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
# Keep global rate limit generous; rate limit tests build their own app
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("RATE_LIMIT_LOGIN_PER_MINUTE", "100000")
os.environ.pop("ADMIN_BOOTSTRAP_EMAIL", None)
os.environ.pop("SENTRY_DSN", None)

from fastapi.testclient import TestClient  # noqa: E402

from moveeazy.auth import upsert_admin  # noqa: E402
from moveeazy.database import engine, session_scope  # noqa: E402
from moveeazy.main import app  # noqa: E402
from moveeazy.models import Base  # noqa: E402


PICKUP = {"pickup_location": "Cairo Road, Lusaka, Zambia", "pickup_latitude": -15.4167, "pickup_longitude": 28.2833}
DROPOFF = {"dropoff_location": "Manda Hill, Great East Road, Lusaka", "dropoff_latitude": -15.3982, "dropoff_longitude": 28.3069}


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register_user(client, email="rider@example.com", phone="+260970000001", name="Rider", password="secret123"):
    r = client.post(
        "/api/auth/user/register",
        json={"name": name, "email": email, "phone": phone, "password": password},
    )
    assert r.status_code == 201, r.text
    js = r.json()
    return {"id": js["user"]["id"], "headers": bearer(js["token"])}


def register_driver(client, email="driver@example.com", phone="+260970000101", plate="BAZ 1234",
                    license_number="LIC-0001", password="secret123"):
    r = client.post(
        "/api/auth/driver/register",
        json={
            "name": "Driver",
            "email": email,
            "phone": phone,
            "password": password,
            "license_number": license_number,
            "vehicle_type": "sedan",
            "vehicle_model": "Toyota Corolla",
            "vehicle_plate": plate,
            "vehicle_color": "white",
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["driver"]["id"]


def make_admin(client, email="admin@example.com", password="admin123"):
    with session_scope() as db:
        upsert_admin(db, email=email, password=password, name="Admin")
    r = client.post("/api/auth/admin/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return bearer(r.json()["token"])


def approved_driver(client, admin_headers, **kwargs):
    password = kwargs.get("password", "secret123")
    email = kwargs.get("email", "driver@example.com")
    driver_id = register_driver(client, **kwargs)
    r = client.put(f"/api/admin/drivers/{driver_id}/status", headers=admin_headers, json={"status": "approved"})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/driver/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"id": driver_id, "headers": bearer(r.json()["token"])}


def request_ride(client, headers, **overrides):
    body = {**PICKUP, **DROPOFF, **overrides}
    r = client.post("/api/rides/create", headers=headers, json=body)
    assert r.status_code == 201, r.text
    return r.json()["ride"]


@pytest.fixture()
def admin_headers(client):
    return make_admin(client)


@pytest.fixture()
def rider(client):
    return register_user(client)


@pytest.fixture()
def driver(client, admin_headers):
    return approved_driver(client, admin_headers)
