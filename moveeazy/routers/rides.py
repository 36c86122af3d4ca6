import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..auth import require_driver, require_user
from ..config import settings
from ..database import get_db
from ..lifecycle import (
    ACTIVE_STATUSES,
    CANCELLED,
    COMPLETED,
    DRIVER,
    DRIVER_ACTIVE_STATUSES,
    PENDING,
    RIDER,
    claim_pending,
    transition,
)
from ..models import Driver, Ride, Transaction, User
from ..schemas import (
    CurrentRideOut,
    MessageOut,
    RideCreateIn,
    RideCreatedOut,
    RideOut,
    RideQuoteIn,
    RideQuoteOut,
    RideRatingIn,
    RideStatusIn,
    RideStatusOut,
    RidesListOut,
)
from ..utils import bounding_box, estimate_fare_cents, format_address, haversine_km
from ..ws_manager import event_hub


router = APIRouter(prefix="/api/rides", tags=["rides"])
logger = logging.getLogger("moveeazy.rides")

EARNING_TYPE = "driver_earning"


def ride_out(r: Ride, *, rider: bool = False, driver: bool = False, **extra) -> RideOut:
    data = {c.name: getattr(r, c.name) for c in Ride.__table__.columns}
    if rider and r.user is not None:
        data.update(user_name=r.user.name, user_phone=r.user.phone)
    if driver and r.driver is not None:
        d = r.driver
        data.update(
            driver_name=d.name,
            driver_phone=d.phone,
            vehicle_model=d.vehicle_model,
            vehicle_plate=d.vehicle_plate,
            driver_rating=d.rating,
            driver_latitude=d.current_latitude,
            driver_longitude=d.current_longitude,
        )
    data.update(extra)
    return RideOut(**data)


def _distance_km(payload: RideQuoteIn) -> float:
    if payload.distance is not None:
        return round(float(payload.distance), 2)
    return round(
        haversine_km(payload.pickup_latitude, payload.pickup_longitude, payload.dropoff_latitude, payload.dropoff_longitude),
        2,
    )


def _pickup_box(lat: float, lon: float, radius_km: float) -> list:
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius_km)
    conds = [Ride.pickup_latitude.between(min_lat, max_lat)]
    if min_lon is not None:
        conds.append(Ride.pickup_longitude.between(min_lon, max_lon))
    return conds


def driver_has_active_ride(db: Session, driver_id: int) -> bool:
    return (
        db.query(Ride.id)
        .filter(Ride.driver_id == driver_id, Ride.status.in_(DRIVER_ACTIVE_STATUSES))
        .first()
        is not None
    )


def user_has_active_ride(db: Session, user_id: int) -> bool:
    return (
        db.query(Ride.id)
        .filter(Ride.user_id == user_id, Ride.status.in_(ACTIVE_STATUSES))
        .first()
        is not None
    )


# Rider endpoints

@router.post("/quote", response_model=RideQuoteOut)
def quote(payload: RideQuoteIn, user: User = Depends(require_user)):
    dist = _distance_km(payload)
    return RideQuoteOut(distance_km=dist, estimated_fare_cents=estimate_fare_cents(dist), currency=settings.CURRENCY_CODE)


@router.post("/create", response_model=RideCreatedOut, status_code=status.HTTP_201_CREATED)
def create_ride(
    payload: RideCreateIn,
    bg: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if user_has_active_ride(db, user.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You already have an active ride")
    dist = _distance_km(payload)
    ride = Ride(
        user_id=user.id,
        status=PENDING,
        pickup_location=payload.pickup_location,
        pickup_latitude=payload.pickup_latitude,
        pickup_longitude=payload.pickup_longitude,
        dropoff_location=payload.dropoff_location,
        dropoff_latitude=payload.dropoff_latitude,
        dropoff_longitude=payload.dropoff_longitude,
        distance_km=dist,
        estimated_fare_cents=estimate_fare_cents(dist),
    )
    db.add(ride)
    db.commit()
    logger.info("ride %s requested by user %s (%.2f km)", ride.id, user.id, dist)
    bg.add_task(
        event_hub.publish,
        "new_ride_request",
        {
            "rideId": ride.id,
            "pickup_location": format_address(ride.pickup_location),
            "dropoff_location": format_address(ride.dropoff_location),
            "estimated_fare": ride.estimated_fare_cents,
        },
    )
    return RideCreatedOut(message="Ride requested successfully", ride=ride_out(ride))


@router.get("/user/history", response_model=RidesListOut)
def user_history(user: User = Depends(require_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Ride)
        .options(joinedload(Ride.driver))
        .filter(Ride.user_id == user.id)
        .order_by(Ride.created_at.desc(), Ride.id.desc())
        .all()
    )
    return RidesListOut(rides=[ride_out(r, driver=True) for r in rows])


@router.get("/user/current", response_model=CurrentRideOut)
def user_current(user: User = Depends(require_user), db: Session = Depends(get_db)):
    ride = (
        db.query(Ride)
        .options(joinedload(Ride.driver))
        .filter(Ride.user_id == user.id, Ride.status.in_(ACTIVE_STATUSES))
        .order_by(Ride.created_at.desc(), Ride.id.desc())
        .first()
    )
    return CurrentRideOut(ride=ride_out(ride, driver=True) if ride else None)


@router.put("/cancel/{ride_id}", response_model=MessageOut)
def cancel_ride(
    ride_id: int,
    bg: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    ride = (
        db.query(Ride)
        .filter(Ride.id == ride_id, Ride.user_id == user.id)
        .with_for_update()
        .one_or_none()
    )
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    if ride.status == COMPLETED:
        raise HTTPException(status_code=400, detail="Cannot cancel completed ride")
    if ride.status == CANCELLED:
        raise HTTPException(status_code=400, detail="Ride already cancelled")
    transition(ride, CANCELLED, RIDER)
    if ride.driver_id:
        drv = db.get(Driver, ride.driver_id)
        if drv is not None:
            drv.is_available = True
    db.commit()
    if ride.driver_id:
        bg.add_task(
            event_hub.publish,
            f"ride_cancelled_{ride.driver_id}",
            {"rideId": ride.id},
            f"driver_{ride.driver_id}",
        )
    return MessageOut(message="Ride cancelled successfully")


@router.post("/rate/{ride_id}", response_model=MessageOut)
def rate_ride(
    ride_id: int,
    payload: RideRatingIn,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    ride = (
        db.query(Ride)
        .filter(Ride.id == ride_id, Ride.user_id == user.id, Ride.status == COMPLETED)
        .one_or_none()
    )
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found or not completed")
    ride.rating = payload.rating
    ride.feedback = payload.feedback
    db.flush()
    if ride.driver_id:
        avg = (
            db.query(func.avg(Ride.rating))
            .filter(Ride.driver_id == ride.driver_id, Ride.rating.isnot(None))
            .scalar()
        )
        drv = db.get(Driver, ride.driver_id)
        if drv is not None:
            drv.rating = round(float(avg), 2) if avg is not None else 5.0
    db.commit()
    return MessageOut(message="Rating submitted successfully")


# Driver endpoints

@router.get("/available", response_model=RidesListOut)
def available_rides(
    radius_km: float | None = Query(default=None, ge=0),
    drv: Driver = Depends(require_driver),
    db: Session = Depends(get_db),
):
    radius = settings.AVAILABLE_RIDES_RADIUS_KM if radius_km is None else radius_km
    q = (
        db.query(Ride)
        .options(joinedload(Ride.user))
        .filter(Ride.status == PENDING)
        .order_by(Ride.created_at.desc(), Ride.id.desc())
    )
    has_fix = drv.current_latitude is not None and drv.current_longitude is not None
    if not has_fix:
        rows = q.limit(settings.AVAILABLE_RIDES_LIMIT).all()
        return RidesListOut(rides=[ride_out(r, rider=True) for r in rows])

    if radius > 0:
        q = q.filter(*_pickup_box(drv.current_latitude, drv.current_longitude, radius))
    else:
        q = q.limit(settings.AVAILABLE_RIDES_LIMIT)

    out: list[RideOut] = []
    for r in q.all():
        d = haversine_km(drv.current_latitude, drv.current_longitude, r.pickup_latitude, r.pickup_longitude)
        # Box corners lie outside the circle
        if radius > 0 and d > radius:
            continue
        out.append(ride_out(r, rider=True, distance_to_pickup_km=round(d, 2)))
        if len(out) >= settings.AVAILABLE_RIDES_LIMIT:
            break
    return RidesListOut(rides=out)


@router.post("/accept/{ride_id}", response_model=MessageOut)
def accept_ride(
    ride_id: int,
    bg: BackgroundTasks,
    drv: Driver = Depends(require_driver),
    db: Session = Depends(get_db),
):
    ride = db.get(Ride, ride_id)
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    if ride.status != PENDING:
        raise HTTPException(status_code=400, detail="Ride no longer available")
    if driver_has_active_ride(db, drv.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You already have an active ride")
    if not claim_pending(db, ride.id, drv.id):
        raise HTTPException(status_code=400, detail="Ride no longer available")
    drv.is_available = False
    db.commit()
    db.refresh(ride)
    bg.add_task(
        event_hub.publish,
        f"ride_accepted_{ride.user_id}",
        {"rideId": ride.id, "driverId": drv.id},
        f"user_{ride.user_id}",
    )
    return MessageOut(message="Ride accepted successfully")


@router.put("/status/{ride_id}", response_model=RideStatusOut)
def update_status(
    ride_id: int,
    payload: RideStatusIn,
    bg: BackgroundTasks,
    drv: Driver = Depends(require_driver),
    db: Session = Depends(get_db),
):
    ride = (
        db.query(Ride)
        .filter(Ride.id == ride_id, Ride.driver_id == drv.id)
        .with_for_update()
        .one_or_none()
    )
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    transition(ride, payload.status, DRIVER)
    if ride.status == COMPLETED:
        ride.final_fare_cents = ride.estimated_fare_cents
        drv.is_available = True
        drv.total_rides = (drv.total_rides or 0) + 1
        db.add(Transaction(
            ride_id=ride.id,
            amount_cents=ride.final_fare_cents,
            transaction_type=EARNING_TYPE,
            description=f"Earnings for ride #{ride.id}",
        ))
        logger.info("ride %s completed, driver %s earned %s", ride.id, drv.id, ride.final_fare_cents)
    elif ride.status == CANCELLED:
        drv.is_available = True
    db.commit()
    bg.add_task(
        event_hub.publish,
        f"ride_status_{ride.user_id}",
        {"rideId": ride.id, "status": ride.status},
        f"user_{ride.user_id}",
    )
    return RideStatusOut(message="Ride status updated", status=ride.status)


@router.get("/driver/current", response_model=CurrentRideOut)
def driver_current(drv: Driver = Depends(require_driver), db: Session = Depends(get_db)):
    ride = (
        db.query(Ride)
        .options(joinedload(Ride.user))
        .filter(Ride.driver_id == drv.id, Ride.status.in_(DRIVER_ACTIVE_STATUSES))
        .order_by(Ride.created_at.desc(), Ride.id.desc())
        .first()
    )
    return CurrentRideOut(ride=ride_out(ride, rider=True) if ride else None)
