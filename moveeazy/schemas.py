from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class UserRegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str = Field(min_length=5, max_length=32)
    password: str = Field(min_length=6, max_length=72)


class LoginIn(BaseModel):
    email: str
    password: str


class DriverRegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str = Field(min_length=5, max_length=32)
    password: str = Field(min_length=6, max_length=72)
    license_number: str = Field(min_length=1, max_length=64)
    vehicle_type: Optional[str] = Field(default=None, max_length=32)
    vehicle_model: Optional[str] = Field(default=None, max_length=64)
    vehicle_plate: str = Field(min_length=1, max_length=32)
    vehicle_color: Optional[str] = Field(default=None, max_length=32)


class AdminCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=72)
    role: Optional[str] = Field(default=None, description="admin|super_admin")


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    profile_image: Optional[str] = None


class DriverOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    license_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_color: Optional[str] = None
    rating: Optional[float] = None
    total_rides: Optional[int] = None
    is_available: Optional[bool] = None
    status: str
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    created_at: Optional[datetime] = None
    completed_rides: Optional[int] = None


class AdminOut(BaseModel):
    id: int
    name: str
    email: str
    role: str


class UserAuthOut(BaseModel):
    message: str
    token: str
    user: UserOut


class DriverAuthOut(BaseModel):
    message: str
    token: str
    driver: DriverOut


class DriverRegisteredOut(BaseModel):
    message: str
    driver: DriverOut


class AdminAuthOut(BaseModel):
    message: str
    token: str
    admin: AdminOut


class MessageOut(BaseModel):
    message: str


class RideQuoteIn(BaseModel):
    pickup_latitude: float = Field(ge=-90, le=90)
    pickup_longitude: float = Field(ge=-180, le=180)
    dropoff_latitude: float = Field(ge=-90, le=90)
    dropoff_longitude: float = Field(ge=-180, le=180)
    # Client-side route distance (e.g. from a maps SDK); Haversine when omitted
    distance: Optional[float] = Field(default=None, ge=0, le=5000)


class RideQuoteOut(BaseModel):
    distance_km: float
    estimated_fare_cents: int
    currency: str


class RideCreateIn(RideQuoteIn):
    pickup_location: str = Field(min_length=1, max_length=255)
    dropoff_location: str = Field(min_length=1, max_length=255)


class RideStatusIn(BaseModel):
    status: str  # picked_up|completed|cancelled


class RideRatingIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=2000)


class RideOut(BaseModel):
    id: int
    status: str
    user_id: int
    driver_id: Optional[int] = None
    pickup_location: str
    pickup_latitude: float
    pickup_longitude: float
    dropoff_location: str
    dropoff_latitude: float
    dropoff_longitude: float
    distance_km: float
    estimated_fare_cents: int
    final_fare_cents: Optional[int] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    # Joined rider/driver details, filled per endpoint
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    driver_rating: Optional[float] = None
    driver_latitude: Optional[float] = None
    driver_longitude: Optional[float] = None
    distance_to_pickup_km: Optional[float] = None


class RideCreatedOut(BaseModel):
    message: str
    ride: RideOut


class RidesListOut(BaseModel):
    rides: List[RideOut]


class CurrentRideOut(BaseModel):
    ride: Optional[RideOut] = None


class RideStatusOut(BaseModel):
    message: str
    status: str


class DriverLocationIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class DriverAvailabilityIn(BaseModel):
    is_available: bool


class DriverAvailabilityOut(BaseModel):
    message: str
    is_available: bool


class DriverProfileOut(BaseModel):
    driver: DriverOut


class EarningsOut(BaseModel):
    total_rides: int
    total_earnings: int
    avg_fare: float
    rides_today: int
    earnings_today: int
    currency: str


class DriverStatusIn(BaseModel):
    status: str  # approved|rejected|suspended


class DashboardOut(BaseModel):
    users: int
    drivers: int
    pending_drivers: int
    active_drivers: int
    total_rides: int
    completed_rides: int
    active_rides: int
    total_revenue: int
    today_revenue: int
    today_rides: int


class AdminUserOut(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    created_at: Optional[datetime] = None
    total_rides: int


class AdminUsersOut(BaseModel):
    users: List[AdminUserOut]


class AdminDriversOut(BaseModel):
    drivers: List[DriverOut]


class RevenueBucketOut(BaseModel):
    date: Optional[str] = None
    month: Optional[str] = None
    rides: int
    revenue: int


class RevenueAnalyticsOut(BaseModel):
    daily: List[RevenueBucketOut]
    monthly: List[RevenueBucketOut]
