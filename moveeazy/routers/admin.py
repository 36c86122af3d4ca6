import logging
from collections import OrderedDict
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from ..auth import hash_password, require_admin
from ..database import get_db
from ..lifecycle import ACTIVE_STATUSES, COMPLETED, DRIVER_ACTIVE_STATUSES
from ..models import Admin, Driver, Ride, User
from ..schemas import (
    AdminCreateIn,
    AdminDriversOut,
    AdminUserOut,
    AdminUsersOut,
    DashboardOut,
    DriverStatusIn,
    MessageOut,
    RevenueAnalyticsOut,
    RevenueBucketOut,
    RidesListOut,
)
from ..utils import utcnow
from ..ws_manager import event_hub
from .auth import driver_out
from .rides import ride_out


router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger("moveeazy.admin")

DRIVER_DECISIONS = ("approved", "rejected", "suspended")
ROLES = ("admin", "super_admin")


def _fare():
    return func.coalesce(Ride.final_fare_cents, Ride.estimated_fare_cents)


def _start_of_day():
    return utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    today = _start_of_day()
    completed = db.query(Ride).filter(Ride.status == COMPLETED)
    total_revenue = completed.with_entities(func.coalesce(func.sum(_fare()), 0)).scalar()
    today_revenue = (
        completed.filter(Ride.completed_at >= today)
        .with_entities(func.coalesce(func.sum(_fare()), 0))
        .scalar()
    )
    return DashboardOut(
        users=db.query(func.count(User.id)).scalar() or 0,
        drivers=db.query(func.count(Driver.id)).scalar() or 0,
        pending_drivers=db.query(func.count(Driver.id)).filter(Driver.status == "pending").scalar() or 0,
        active_drivers=db.query(func.count(Driver.id))
        .filter(Driver.status == "approved", Driver.is_available.is_(True))
        .scalar() or 0,
        total_rides=db.query(func.count(Ride.id)).scalar() or 0,
        completed_rides=db.query(func.count(Ride.id)).filter(Ride.status == COMPLETED).scalar() or 0,
        active_rides=db.query(func.count(Ride.id)).filter(Ride.status.in_(ACTIVE_STATUSES)).scalar() or 0,
        total_revenue=int(total_revenue or 0),
        today_revenue=int(today_revenue or 0),
        today_rides=db.query(func.count(Ride.id)).filter(Ride.created_at >= today).scalar() or 0,
    )


@router.get("/users", response_model=AdminUsersOut)
def list_users(admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    rows = (
        db.query(User, func.count(Ride.id))
        .outerjoin(Ride, Ride.user_id == User.id)
        .group_by(User.id)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return AdminUsersOut(users=[
        AdminUserOut(id=u.id, name=u.name, email=u.email, phone=u.phone, created_at=u.created_at, total_rides=int(n))
        for u, n in rows
    ])


@router.get("/drivers", response_model=AdminDriversOut)
def list_drivers(
    status_filter: str | None = Query(default=None, alias="status"),
    admin: Admin = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = (
        db.query(Driver, func.count(Ride.id))
        .outerjoin(Ride, and_(Ride.driver_id == Driver.id, Ride.status == COMPLETED))
        .group_by(Driver.id)
    )
    if status_filter:
        q = q.filter(Driver.status == status_filter)
    rows = q.order_by(Driver.created_at.desc(), Driver.id.desc()).all()
    return AdminDriversOut(drivers=[driver_out(d, completed_rides=int(n)) for d, n in rows])


@router.put("/drivers/{driver_id}/status", response_model=MessageOut)
def set_driver_status(
    driver_id: int,
    payload: DriverStatusIn,
    bg: BackgroundTasks,
    admin: Admin = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if payload.status not in DRIVER_DECISIONS:
        raise HTTPException(status_code=400, detail="Invalid status")
    drv = db.get(Driver, driver_id)
    if drv is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    drv.status = payload.status
    if payload.status != "approved":
        drv.is_available = False
    logger.info("admin %s set driver %s status=%s", admin.id, drv.id, drv.status)
    db.commit()
    bg.add_task(
        event_hub.publish,
        f"driver_status_{drv.id}",
        {"status": drv.status},
        f"driver_{drv.id}",
    )
    return MessageOut(message=f"Driver {payload.status} successfully")


@router.get("/rides", response_model=RidesListOut)
def list_rides(
    status_filter: str | None = Query(default=None, alias="status"),
    admin: Admin = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(Ride).options(joinedload(Ride.user), joinedload(Ride.driver))
    if status_filter:
        q = q.filter(Ride.status == status_filter)
    rows = q.order_by(Ride.created_at.desc(), Ride.id.desc()).limit(100).all()
    return RidesListOut(rides=[ride_out(r, rider=True, driver=True) for r in rows])


def _months_back(today, n: int):
    y, m = today.year, today.month - n
    while m <= 0:
        m += 12
        y -= 1
    return today.replace(year=y, month=m, day=1)


@router.get("/analytics/revenue", response_model=RevenueAnalyticsOut)
def revenue_analytics(admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    today = _start_of_day()
    since_month = _months_back(today, 5)
    since_day = today - timedelta(days=6)
    rows = (
        db.query(Ride.completed_at, Ride.created_at, _fare())
        .filter(Ride.status == COMPLETED)
        .filter(func.coalesce(Ride.completed_at, Ride.created_at) >= min(since_month, since_day))
        .all()
    )
    daily: "OrderedDict[str, list[int]]" = OrderedDict()
    monthly: "OrderedDict[str, list[int]]" = OrderedDict()
    for completed_at, created_at, fare in sorted(rows, key=lambda r: r[0] or r[1], reverse=True):
        ts = completed_at or created_at
        if ts >= since_day:
            bucket = daily.setdefault(ts.strftime("%Y-%m-%d"), [0, 0])
            bucket[0] += 1
            bucket[1] += int(fare or 0)
        if ts >= since_month:
            bucket = monthly.setdefault(ts.strftime("%Y-%m"), [0, 0])
            bucket[0] += 1
            bucket[1] += int(fare or 0)
    return RevenueAnalyticsOut(
        daily=[RevenueBucketOut(date=k, rides=v[0], revenue=v[1]) for k, v in daily.items()],
        monthly=[RevenueBucketOut(month=k, rides=v[0], revenue=v[1]) for k, v in monthly.items()],
    )


@router.delete("/users/{user_id}", response_model=MessageOut)
def delete_user(user_id: int, admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    active = db.query(Ride.id).filter(Ride.user_id == user.id, Ride.status.in_(ACTIVE_STATUSES)).first()
    if active is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User has an active ride")
    db.delete(user)
    db.commit()
    logger.info("admin %s deleted user %s", admin.id, user_id)
    return MessageOut(message="User deleted successfully")


@router.delete("/drivers/{driver_id}", response_model=MessageOut)
def delete_driver(driver_id: int, admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    drv = db.get(Driver, driver_id)
    if drv is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    active = (
        db.query(Ride.id)
        .filter(Ride.driver_id == drv.id, Ride.status.in_(DRIVER_ACTIVE_STATUSES))
        .first()
    )
    if active is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Driver has an active ride")
    db.delete(drv)
    db.commit()
    logger.info("admin %s deleted driver %s", admin.id, driver_id)
    return MessageOut(message="Driver deleted successfully")


@router.post("/create", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def create_admin(payload: AdminCreateIn, admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    if db.query(Admin.id).filter(Admin.email == email).first() is not None:
        raise HTTPException(status_code=400, detail="Email already exists")
    role = payload.role or "admin"
    if role not in ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")
    db.add(Admin(name=payload.name.strip(), email=email, password_hash=hash_password(payload.password), role=role))
    db.commit()
    logger.info("admin %s created admin %s", admin.id, email)
    return MessageOut(message="Admin created successfully")
