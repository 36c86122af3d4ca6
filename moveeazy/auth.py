import datetime as dt

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .models import Admin, Driver, User


bearer_scheme = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

KIND_USER = "user"
KIND_DRIVER = "driver"
KIND_ADMIN = "admin"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Malformed or foreign hash in the row
        return False


def create_access_token(principal_id: int, kind: str) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": str(principal_id),
        "type": kind,
        "iat": int(now.timestamp()),
        "exp": int((now + settings.jwt_expires_delta).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raises jwt.InvalidTokenError."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])


def _claims(creds: HTTPAuthorizationCredentials | None, kind: str) -> int:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    try:
        payload = decode_access_token(creds.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if payload.get("type") != kind:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Access denied. {kind.capitalize()} only.")
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")


def require_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, _claims(creds, KIND_USER))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_driver(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Driver:
    drv = db.get(Driver, _claims(creds, KIND_DRIVER))
    if drv is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Driver not found")
    # Tokens outlive approval; re-check on every call
    if drv.status != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account not active. Contact admin.")
    return drv


def require_admin(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Admin:
    admin = db.get(Admin, _claims(creds, KIND_ADMIN))
    if admin is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not found")
    return admin


def upsert_admin(db: Session, *, email: str, password: str, name: str | None = None, role: str = "admin") -> Admin:
    """Create an admin, or reset the password of an existing one."""
    admin = db.query(Admin).filter(Admin.email == email).one_or_none()
    if admin is None:
        admin = Admin(email=email, name=name or "Administrator", role=role, password_hash=hash_password(password))
        db.add(admin)
    else:
        admin.password_hash = hash_password(password)
        if name:
            admin.name = name
        admin.role = role or admin.role
    db.flush()
    return admin
