import os
from datetime import timedelta

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    """Read a boolean flag; unparseable values are a startup error."""
    value = os.getenv(name)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name!r}: {value!r}")


def env_list(name: str, *, default: list[str] | None = None) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    ENV: str = os.getenv("ENV", "dev")
    DEV_MODE: bool = ENV.lower() == "dev"
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "5000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DB_URL: str = os.getenv("DB_URL", "sqlite:///./moveeazy.db")
    DB_ECHO: bool = env_bool("DB_ECHO", default=False)
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change_me_in_prod")
    JWT_EXPIRES_MINUTES: int = int(os.getenv("JWT_EXPIRES_MINUTES", "10080"))
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "10"))
    ALLOWED_ORIGINS: list[str] = env_list(
        "ALLOWED_ORIGINS",
        default=["*"] if DEV_MODE else [],
    )
    AUTO_CREATE_SCHEMA: bool = env_bool("AUTO_CREATE_SCHEMA", default=DEV_MODE)
    # Fare: base + per-km, in minor units (K15 + K8/km)
    BASE_FARE_CENTS: int = int(os.getenv("BASE_FARE_CENTS", "1500"))
    PER_KM_CENTS: int = int(os.getenv("PER_KM_CENTS", "800"))
    CURRENCY_CODE: str = os.getenv("CURRENCY_CODE", "ZMW")
    # Driver ride feed
    AVAILABLE_RIDES_LIMIT: int = int(os.getenv("AVAILABLE_RIDES_LIMIT", "20"))
    AVAILABLE_RIDES_RADIUS_KM: float = float(os.getenv("AVAILABLE_RIDES_RADIUS_KM", "0"))
    # Live events: per-principal events go only to the principal's room when enabled
    EVENTS_TARGETED: bool = env_bool("EVENTS_TARGETED", default=False)
    # Rate limiting
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory")  # memory|redis
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))
    RATE_LIMIT_AUTH_BOOST: int = int(os.getenv("RATE_LIMIT_AUTH_BOOST", "2"))
    RATE_LIMIT_LOGIN_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_LOGIN_PER_MINUTE", "20"))
    RATE_LIMIT_REDIS_PREFIX: str = os.getenv("RATE_LIMIT_REDIS_PREFIX", "rl_moveeazy")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    # Observability
    SENTRY_DSN: str = os.getenv("SENTRY_DSN", "").strip()
    SENTRY_TRACES_SAMPLE_RATE: float = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))
    # Optional first admin, created at startup when both are set
    ADMIN_BOOTSTRAP_EMAIL: str = os.getenv("ADMIN_BOOTSTRAP_EMAIL", "")
    ADMIN_BOOTSTRAP_PASSWORD: str = os.getenv("ADMIN_BOOTSTRAP_PASSWORD", "")
    ADMIN_BOOTSTRAP_NAME: str = os.getenv("ADMIN_BOOTSTRAP_NAME", "Administrator")

    @property
    def jwt_expires_delta(self) -> timedelta:
        return timedelta(minutes=self.JWT_EXPIRES_MINUTES)


settings = Settings()

# Harden secrets for non-dev environments
if not settings.DEV_MODE:
    if not settings.ALLOWED_ORIGINS or "*" in settings.ALLOWED_ORIGINS:
        raise RuntimeError("ALLOWED_ORIGINS must list explicit origins when ENV!=dev")
    if settings.AUTO_CREATE_SCHEMA:
        raise RuntimeError("AUTO_CREATE_SCHEMA cannot be enabled when ENV!=dev")
    if settings.JWT_SECRET in ("", "change_me_in_prod"):
        raise RuntimeError("Provide a secure JWT_SECRET when ENV!=dev")
    if len(settings.JWT_SECRET) < 16:
        raise RuntimeError("JWT_SECRET must be at least 16 characters long")
    if settings.RATE_LIMIT_BACKEND.lower() != "redis":
        raise RuntimeError("RATE_LIMIT_BACKEND must be 'redis' when ENV!=dev")
    if not settings.REDIS_URL.startswith(("redis://", "rediss://")):
        raise RuntimeError("REDIS_URL must be set to a redis:// URL when ENV!=dev")
