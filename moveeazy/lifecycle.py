"""Ride status transitions.

Every status change goes through this module so the allowed moves live in one
table. Accepting a pending ride is done with a conditional UPDATE so that only
one of several concurrent accepts can win.
"""
import logging
from datetime import datetime

from prometheus_client import Counter
from sqlalchemy import update
from sqlalchemy.orm import Session

from .errors import AppError
from .models import Ride
from .utils import utcnow


logger = logging.getLogger("moveeazy.lifecycle")

PENDING = "pending"
ACCEPTED = "accepted"
PICKED_UP = "picked_up"
COMPLETED = "completed"
CANCELLED = "cancelled"

ALL_STATUSES = (PENDING, ACCEPTED, PICKED_UP, COMPLETED, CANCELLED)
ACTIVE_STATUSES = (PENDING, ACCEPTED, PICKED_UP)
DRIVER_ACTIVE_STATUSES = (ACCEPTED, PICKED_UP)
TERMINAL_STATUSES = (COMPLETED, CANCELLED)

RIDER = "rider"
DRIVER = "driver"

TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    (PENDING, ACCEPTED): frozenset({DRIVER}),
    (PENDING, CANCELLED): frozenset({RIDER}),
    (ACCEPTED, PICKED_UP): frozenset({DRIVER}),
    (ACCEPTED, CANCELLED): frozenset({RIDER, DRIVER}),
    (PICKED_UP, COMPLETED): frozenset({DRIVER}),
    (PICKED_UP, CANCELLED): frozenset({RIDER}),
}

_TIMESTAMP_FIELDS = {
    ACCEPTED: "accepted_at",
    PICKED_UP: "picked_up_at",
    COMPLETED: "completed_at",
    CANCELLED: "cancelled_at",
}

STATUS_TRANSITIONS = Counter(
    "moveeazy_ride_status_transitions_total",
    "Ride status transitions",
    ["from", "to"],
)


class InvalidTransition(AppError):
    def __init__(self, frm: str, to: str, actor: str):
        super().__init__(
            400,
            "Invalid status transition",
            code="invalid_transition",
            details={"from": frm, "to": to, "actor": actor},
        )


def can_transition(frm: str, to: str, actor: str) -> bool:
    return actor in TRANSITIONS.get((frm, to), frozenset())


def _count(frm: str, to: str) -> None:
    STATUS_TRANSITIONS.labels(frm, to).inc()


def transition(ride: Ride, to: str, actor: str, *, now: datetime | None = None) -> str:
    """Move ``ride`` to ``to`` in memory; returns the previous status."""
    prev = ride.status
    if not can_transition(prev, to, actor):
        raise InvalidTransition(prev, to, actor)
    ride.status = to
    setattr(ride, _TIMESTAMP_FIELDS[to], now or utcnow())
    if to == CANCELLED:
        ride.cancelled_by = actor
    _count(prev, to)
    logger.info("ride %s: %s -> %s by %s", ride.id, prev, to, actor)
    return prev


def claim_pending(db: Session, ride_id: int, driver_id: int) -> bool:
    """Atomically accept a pending ride for ``driver_id``.

    Returns False when the ride was no longer pending at update time.
    """
    res = db.execute(
        update(Ride)
        .where(Ride.id == ride_id, Ride.status == PENDING)
        .values(status=ACCEPTED, driver_id=driver_id, accepted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return False
    _count(PENDING, ACCEPTED)
    logger.info("ride %s: %s -> %s by driver %s", ride_id, PENDING, ACCEPTED, driver_id)
    return True
