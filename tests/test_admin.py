from datetime import timedelta

from conftest import register_driver, register_user, request_ride
from moveeazy.database import session_scope
from moveeazy.models import Admin, Driver, Ride, Transaction, User
from moveeazy.utils import utcnow


def _complete(client, driver, user, **kw):
    ride = request_ride(client, user["headers"], **kw)
    client.post(f"/api/rides/accept/{ride['id']}", headers=driver["headers"])
    client.put(f"/api/rides/status/{ride['id']}", headers=driver["headers"], json={"status": "picked_up"})
    client.put(f"/api/rides/status/{ride['id']}", headers=driver["headers"], json={"status": "completed"})
    return ride


def test_admin_routes_require_admin(client):
    r = client.get("/api/admin/dashboard")
    assert r.status_code == 401


def test_dashboard(client, admin_headers, rider, driver):
    register_driver(client, email="p@example.com", phone="+260970009999", plate="PEN 1", license_number="LIC-P")
    _complete(client, driver, rider, distance=10)
    other = register_user(client, email="x@example.com", phone="+260970000077")
    request_ride(client, other["headers"])
    client.post("/api/driver/availability", headers=driver["headers"], json={"is_available": True})

    r = client.get("/api/admin/dashboard", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {
        "users": 2,
        "drivers": 2,
        "pending_drivers": 1,
        "active_drivers": 1,
        "total_rides": 2,
        "completed_rides": 1,
        "active_rides": 1,
        "total_revenue": 9500,
        "today_revenue": 9500,
        "today_rides": 2,
    }


def test_users_and_drivers_listing(client, admin_headers, rider, driver):
    _complete(client, driver, rider)
    register_driver(client, email="p@example.com", phone="+260970009999", plate="PEN 1", license_number="LIC-P")

    users = client.get("/api/admin/users", headers=admin_headers).json()["users"]
    assert [(u["email"], u["total_rides"]) for u in users] == [("rider@example.com", 1)]

    drivers = client.get("/api/admin/drivers", headers=admin_headers).json()["drivers"]
    assert {d["email"]: d["completed_rides"] for d in drivers} == {"driver@example.com": 1, "p@example.com": 0}

    pending = client.get("/api/admin/drivers", params={"status": "pending"}, headers=admin_headers).json()["drivers"]
    assert [d["email"] for d in pending] == ["p@example.com"]


def test_driver_status_changes(client, admin_headers, driver):
    client.post("/api/driver/availability", headers=driver["headers"], json={"is_available": True})
    r = client.put(f"/api/admin/drivers/{driver['id']}/status", headers=admin_headers, json={"status": "rejected"})
    assert r.status_code == 200
    assert r.json()["message"] == "Driver rejected successfully"
    with session_scope() as db:
        drv = db.get(Driver, driver["id"])
        assert drv.status == "rejected"
        assert drv.is_available is False

    r = client.put(f"/api/admin/drivers/{driver['id']}/status", headers=admin_headers, json={"status": "banned"})
    assert r.status_code == 400
    r = client.put("/api/admin/drivers/999/status", headers=admin_headers, json={"status": "approved"})
    assert r.status_code == 404


def test_rides_listing(client, admin_headers, rider, driver):
    _complete(client, driver, rider)
    other = register_user(client, email="x@example.com", phone="+260970000077")
    request_ride(client, other["headers"])

    rides = client.get("/api/admin/rides", headers=admin_headers).json()["rides"]
    assert len(rides) == 2
    assert rides[0]["user_name"] == "Rider"
    assert rides[0]["driver_name"] is None
    assert rides[1]["driver_phone"] == "+260970000101"

    done = client.get("/api/admin/rides", params={"status": "completed"}, headers=admin_headers).json()["rides"]
    assert [r["status"] for r in done] == ["completed"]


def test_revenue_analytics(client, admin_headers, driver):
    users = [register_user(client, email=f"u{i}@example.com", phone=f"+26097500000{i}") for i in range(3)]
    rides = [_complete(client, driver, u, distance=10) for u in users]
    with session_scope() as db:
        db.get(Ride, rides[1]["id"]).completed_at = utcnow() - timedelta(days=1)
        # Outside the daily window but inside the monthly one
        db.get(Ride, rides[2]["id"]).completed_at = utcnow() - timedelta(days=20)

    r = client.get("/api/admin/analytics/revenue", headers=admin_headers)
    assert r.status_code == 200
    js = r.json()
    assert [(b["rides"], b["revenue"]) for b in js["daily"]] == [(1, 9500), (1, 9500)]
    assert js["daily"][0]["date"] > js["daily"][1]["date"]
    assert sum(b["rides"] for b in js["monthly"]) == 3
    assert sum(b["revenue"] for b in js["monthly"]) == 3 * 9500


def test_delete_user_cascades(client, admin_headers, rider, driver):
    ride = _complete(client, driver, rider)
    r = client.delete(f"/api/admin/users/{rider['id']}", headers=admin_headers)
    assert r.status_code == 200
    with session_scope() as db:
        assert db.get(User, rider["id"]) is None
        assert db.get(Ride, ride["id"]) is None
        assert db.query(Transaction).count() == 0
    assert client.delete(f"/api/admin/users/{rider['id']}", headers=admin_headers).status_code == 404


def test_delete_user_with_active_ride(client, admin_headers, rider):
    request_ride(client, rider["headers"])
    r = client.delete(f"/api/admin/users/{rider['id']}", headers=admin_headers)
    assert r.status_code == 409


def test_delete_driver_keeps_rides(client, admin_headers, rider, driver):
    ride = _complete(client, driver, rider)
    r = client.delete(f"/api/admin/drivers/{driver['id']}", headers=admin_headers)
    assert r.status_code == 200
    with session_scope() as db:
        assert db.get(Driver, driver["id"]) is None
        row = db.get(Ride, ride["id"])
        assert row is not None
        assert row.driver_id is None


def test_delete_driver_with_active_ride(client, admin_headers, rider, driver):
    ride = request_ride(client, rider["headers"])
    client.post(f"/api/rides/accept/{ride['id']}", headers=driver["headers"])
    r = client.delete(f"/api/admin/drivers/{driver['id']}", headers=admin_headers)
    assert r.status_code == 409


def test_create_admin(client, admin_headers):
    body = {"name": "Ops", "email": "ops@example.com", "password": "opspass1"}
    r = client.post("/api/admin/create", headers=admin_headers, json=body)
    assert r.status_code == 201
    assert r.json()["message"] == "Admin created successfully"
    r = client.post("/api/admin/create", headers=admin_headers, json=body)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Email already exists"

    with session_scope() as db:
        assert db.query(Admin).filter(Admin.email == "ops@example.com").one().role == "admin"
    r = client.post("/api/auth/admin/login", json={"email": "ops@example.com", "password": "opspass1"})
    assert r.status_code == 200
