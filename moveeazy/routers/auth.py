import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth import KIND_ADMIN, KIND_DRIVER, KIND_USER, create_access_token, hash_password, verify_password
from ..database import get_db
from ..models import Admin, Driver, User
from ..schemas import (
    AdminAuthOut,
    AdminOut,
    DriverAuthOut,
    DriverOut,
    DriverRegisterIn,
    DriverRegisteredOut,
    LoginIn,
    UserAuthOut,
    UserOut,
    UserRegisterIn,
)


router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("moveeazy.auth")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def user_out(u: User) -> UserOut:
    return UserOut(id=u.id, name=u.name, email=u.email, phone=u.phone, profile_image=u.profile_image)


def driver_out(d: Driver, completed_rides: int | None = None) -> DriverOut:
    return DriverOut(
        id=d.id,
        name=d.name,
        email=d.email,
        phone=d.phone,
        license_number=d.license_number,
        vehicle_type=d.vehicle_type,
        vehicle_model=d.vehicle_model,
        vehicle_plate=d.vehicle_plate,
        vehicle_color=d.vehicle_color,
        rating=d.rating,
        total_rides=d.total_rides,
        is_available=d.is_available,
        status=d.status,
        current_latitude=d.current_latitude,
        current_longitude=d.current_longitude,
        created_at=d.created_at,
        completed_rides=completed_rides,
    )


@router.post("/user/register", response_model=UserAuthOut, status_code=status.HTTP_201_CREATED)
def register_user(payload: UserRegisterIn, db: Session = Depends(get_db)):
    email = _normalize_email(payload.email)
    phone = payload.phone.strip()
    taken = db.query(User.id).filter(or_(User.email == email, User.phone == phone)).first()
    if taken:
        raise HTTPException(status_code=400, detail="Email or phone already registered")
    user = User(name=payload.name.strip(), email=email, phone=phone, password_hash=hash_password(payload.password))
    db.add(user)
    db.commit()
    logger.info("user registered id=%s", user.id)
    return UserAuthOut(
        message="User registered successfully",
        token=create_access_token(user.id, KIND_USER),
        user=user_out(user),
    )


@router.post("/user/login", response_model=UserAuthOut)
def login_user(payload: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == _normalize_email(payload.email)).one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return UserAuthOut(message="Login successful", token=create_access_token(user.id, KIND_USER), user=user_out(user))


@router.post("/driver/register", response_model=DriverRegisteredOut, status_code=status.HTTP_201_CREATED)
def register_driver(payload: DriverRegisterIn, db: Session = Depends(get_db)):
    email = _normalize_email(payload.email)
    phone = payload.phone.strip()
    taken = (
        db.query(Driver.id)
        .filter(
            or_(
                Driver.email == email,
                Driver.phone == phone,
                Driver.license_number == payload.license_number,
                Driver.vehicle_plate == payload.vehicle_plate,
            )
        )
        .first()
    )
    if taken:
        raise HTTPException(status_code=400, detail="Email, phone, license, or vehicle plate already registered")
    drv = Driver(
        name=payload.name.strip(),
        email=email,
        phone=phone,
        password_hash=hash_password(payload.password),
        license_number=payload.license_number,
        vehicle_type=payload.vehicle_type,
        vehicle_model=payload.vehicle_model,
        vehicle_plate=payload.vehicle_plate,
        vehicle_color=payload.vehicle_color,
        status="pending",
        is_available=False,
    )
    db.add(drv)
    db.commit()
    logger.info("driver registered id=%s, awaiting approval", drv.id)
    return DriverRegisteredOut(
        message="Driver registration submitted. Awaiting admin approval.",
        driver=driver_out(drv),
    )


@router.post("/driver/login", response_model=DriverAuthOut)
def login_driver(payload: LoginIn, db: Session = Depends(get_db)):
    drv = db.query(Driver).filter(Driver.email == _normalize_email(payload.email)).one_or_none()
    if drv is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    # Approval state is reported before the password check
    if drv.status == "pending":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account pending approval")
    if drv.status != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account not active. Contact admin.")
    if not verify_password(payload.password, drv.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return DriverAuthOut(message="Login successful", token=create_access_token(drv.id, KIND_DRIVER), driver=driver_out(drv))


@router.post("/admin/login", response_model=AdminAuthOut)
def login_admin(payload: LoginIn, db: Session = Depends(get_db)):
    admin = db.query(Admin).filter(Admin.email == _normalize_email(payload.email)).one_or_none()
    if admin is None or not verify_password(payload.password, admin.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return AdminAuthOut(
        message="Login successful",
        token=create_access_token(admin.id, KIND_ADMIN),
        admin=AdminOut(id=admin.id, name=admin.name, email=admin.email, role=admin.role),
    )
