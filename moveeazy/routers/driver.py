import logging
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..auth import require_driver
from ..config import settings
from ..database import get_db
from ..lifecycle import COMPLETED
from ..models import Driver, Ride
from ..schemas import (
    DriverAvailabilityIn,
    DriverAvailabilityOut,
    DriverLocationIn,
    DriverProfileOut,
    EarningsOut,
    MessageOut,
    RidesListOut,
)
from ..utils import utcnow
from ..ws_manager import event_hub
from .auth import driver_out
from .rides import driver_has_active_ride, ride_out


router = APIRouter(prefix="/api/driver", tags=["driver"])
logger = logging.getLogger("moveeazy.driver")


@router.post("/location", response_model=MessageOut)
def update_location(
    payload: DriverLocationIn,
    bg: BackgroundTasks,
    drv: Driver = Depends(require_driver),
    db: Session = Depends(get_db),
):
    drv.current_latitude = payload.latitude
    drv.current_longitude = payload.longitude
    drv.location_updated_at = utcnow()
    db.commit()
    bg.add_task(
        event_hub.emit,
        f"driver_location_{drv.id}",
        {"latitude": payload.latitude, "longitude": payload.longitude},
    )
    return MessageOut(message="Location updated")


@router.post("/availability", response_model=DriverAvailabilityOut)
def set_availability(
    payload: DriverAvailabilityIn,
    drv: Driver = Depends(require_driver),
    db: Session = Depends(get_db),
):
    if payload.is_available and driver_has_active_ride(db, drv.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Finish your active ride first")
    drv.is_available = payload.is_available
    db.commit()
    return DriverAvailabilityOut(message="Availability updated", is_available=drv.is_available)


@router.get("/profile", response_model=DriverProfileOut)
def profile(drv: Driver = Depends(require_driver)):
    return DriverProfileOut(driver=driver_out(drv))


@router.get("/earnings", response_model=EarningsOut)
def earnings(drv: Driver = Depends(require_driver), db: Session = Depends(get_db)):
    fare = func.coalesce(Ride.final_fare_cents, Ride.estimated_fare_cents)
    base = db.query(func.count(Ride.id), func.coalesce(func.sum(fare), 0)).filter(
        Ride.driver_id == drv.id, Ride.status == COMPLETED
    )
    total_rides, total_earnings = base.one()

    start_of_day = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    rides_today, earnings_today = base.filter(
        Ride.completed_at >= start_of_day,
        Ride.completed_at < start_of_day + timedelta(days=1),
    ).one()

    total_rides = int(total_rides or 0)
    total_earnings = int(total_earnings or 0)
    return EarningsOut(
        total_rides=total_rides,
        total_earnings=total_earnings,
        avg_fare=round(total_earnings / total_rides, 2) if total_rides else 0.0,
        rides_today=int(rides_today or 0),
        earnings_today=int(earnings_today or 0),
        currency=settings.CURRENCY_CODE,
    )


@router.get("/rides", response_model=RidesListOut)
def ride_history(drv: Driver = Depends(require_driver), db: Session = Depends(get_db)):
    rows = (
        db.query(Ride)
        .options(joinedload(Ride.user))
        .filter(Ride.driver_id == drv.id)
        .order_by(Ride.created_at.desc(), Ride.id.desc())
        .limit(50)
        .all()
    )
    return RidesListOut(rides=[ride_out(r, rider=True) for r in rows])
