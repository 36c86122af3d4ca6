import pytest

from moveeazy.config import env_bool, env_list
from moveeazy.lifecycle import (
    ACCEPTED,
    CANCELLED,
    COMPLETED,
    DRIVER,
    PENDING,
    PICKED_UP,
    RIDER,
    InvalidTransition,
    can_transition,
    transition,
)
from moveeazy.models import Ride
from moveeazy.utils import bounding_box, estimate_fare_cents, format_address, haversine_km


def test_haversine_known_distance():
    # Lusaka to Ndola, roughly 280 km as the crow flies
    d = haversine_km(-15.4167, 28.2833, -12.9587, 28.6366)
    assert 270 < d < 285
    assert haversine_km(-15.4, 28.3, -15.4, 28.3) == 0


def test_fare_estimate():
    assert estimate_fare_cents(0) == 1500
    assert estimate_fare_cents(2.5) == 1500 + 2000
    assert estimate_fare_cents(1.234) == 1500 + 987
    with pytest.raises(ValueError):
        estimate_fare_cents(-1)


def test_format_address():
    assert format_address("Plot 5, Cairo Road, Lusaka, Zambia") == "Plot 5, Cairo Road"
    assert format_address("Lusaka") == "Lusaka"
    assert format_address(None) == ""


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("X_FLAG", "Yes")
    assert env_bool("X_FLAG") is True
    monkeypatch.setenv("X_FLAG", "off")
    assert env_bool("X_FLAG", default=True) is False
    monkeypatch.setenv("X_FLAG", "maybe")
    with pytest.raises(ValueError):
        env_bool("X_FLAG")
    monkeypatch.setenv("X_LIST", "https://a.example, ,https://b.example")
    assert env_list("X_LIST") == ["https://a.example", "https://b.example"]
    monkeypatch.delenv("X_LIST")
    assert env_list("X_LIST", default=["*"]) == ["*"]


@pytest.mark.parametrize(
    "frm,to,actor,ok",
    [
        (PENDING, ACCEPTED, DRIVER, True),
        (PENDING, ACCEPTED, RIDER, False),
        (PENDING, CANCELLED, RIDER, True),
        (PENDING, CANCELLED, DRIVER, False),
        (ACCEPTED, PICKED_UP, DRIVER, True),
        (ACCEPTED, CANCELLED, DRIVER, True),
        (ACCEPTED, COMPLETED, DRIVER, False),
        (PICKED_UP, COMPLETED, DRIVER, True),
        (PICKED_UP, CANCELLED, RIDER, True),
        (PICKED_UP, CANCELLED, DRIVER, False),
        (COMPLETED, CANCELLED, RIDER, False),
        (CANCELLED, PENDING, RIDER, False),
    ],
)
def test_transition_table(frm, to, actor, ok):
    assert can_transition(frm, to, actor) is ok


def test_transition_stamps_fields():
    ride = Ride(id=1, status=ACCEPTED)
    assert transition(ride, CANCELLED, DRIVER) == ACCEPTED
    assert ride.status == CANCELLED
    assert ride.cancelled_by == DRIVER
    assert ride.cancelled_at is not None

    ride = Ride(id=2, status=PICKED_UP)
    transition(ride, COMPLETED, DRIVER)
    assert ride.completed_at is not None
    assert ride.cancelled_by is None


def test_invalid_transition_raises():
    ride = Ride(id=3, status=COMPLETED)
    with pytest.raises(InvalidTransition) as exc:
        transition(ride, CANCELLED, RIDER)
    assert exc.value.status_code == 400
    assert exc.value.details == {"from": COMPLETED, "to": CANCELLED, "actor": RIDER}
    assert ride.status == COMPLETED


def test_bounding_box_encloses_radius():
    lat, lon, radius = -15.4167, 28.2833, 10
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
    assert min_lat < lat < max_lat and min_lon < lon < max_lon
    # Edges of the box touch the circle
    assert haversine_km(lat, lon, max_lat, lon) == pytest.approx(radius, rel=1e-6)
    assert haversine_km(lat, lon, lat, max_lon) == pytest.approx(radius, rel=1e-4)
    assert haversine_km(lat, lon, lat, max_lon - 0.01) < radius


def test_bounding_box_drops_longitude_near_pole_and_antimeridian():
    assert bounding_box(89.99, 0.0, 50)[2:] == (None, None)
    assert bounding_box(0.0, 179.99, 50)[2:] == (None, None)
