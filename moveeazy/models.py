from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, ForeignKey, Float, Index, Text
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow


Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    profile_image = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rides = relationship("Ride", back_populates="user", cascade="all, delete-orphan")


class Driver(Base):
    __tablename__ = "drivers"
    __table_args__ = (Index("ix_drivers_status_available", "status", "is_available"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    license_number = Column(String(64), nullable=False, unique=True)
    vehicle_type = Column(String(32), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    vehicle_plate = Column(String(32), nullable=False, unique=True)
    vehicle_color = Column(String(32), nullable=True)
    rating = Column(Float, nullable=False, default=5.0)
    total_rides = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="pending")  # pending|approved|rejected|suspended
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rides = relationship("Ride", back_populates="driver")


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="admin")  # admin|super_admin
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Ride(Base):
    __tablename__ = "rides"
    __table_args__ = (
        Index("ix_rides_created", "created_at"),
        Index("ix_rides_status", "status"),
        Index("ix_rides_user", "user_id"),
        Index("ix_rides_driver", "driver_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(16), nullable=False, default="pending")  # pending|accepted|picked_up|completed|cancelled
    pickup_location = Column(String(255), nullable=False)
    pickup_latitude = Column(Float, nullable=False)
    pickup_longitude = Column(Float, nullable=False)
    dropoff_location = Column(String(255), nullable=False)
    dropoff_latitude = Column(Float, nullable=False)
    dropoff_longitude = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    estimated_fare_cents = Column(Integer, nullable=False)
    final_fare_cents = Column(Integer, nullable=True)
    rating = Column(Integer, nullable=True)  # 1..5
    feedback = Column(Text, nullable=True)
    cancelled_by = Column(String(16), nullable=True)  # rider|driver
    accepted_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="rides")
    driver = relationship("Driver", back_populates="rides")
    transactions = relationship("Transaction", back_populates="ride", cascade="all, delete-orphan")


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_ride", "ride_id"),
        Index("ix_transactions_type_created", "transaction_type", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    transaction_type = Column(String(32), nullable=False)  # driver_earning
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    ride = relationship("Ride", back_populates="transactions")
