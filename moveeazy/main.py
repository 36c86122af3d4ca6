import logging
import time

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import upsert_admin
from .config import settings
from .database import engine, session_scope
from .errors import http_exception_handler, unhandled_exception_handler, validation_exception_handler
from .logging_config import configure_logging
from .middleware_rate_limit import RedisRateLimiter, SlidingWindowLimiter
from .middleware_request_id import RequestIDMiddleware
from .models import Base
from .routers import admin as admin_router
from .routers import auth as auth_router
from .routers import driver as driver_router
from .routers import rides as rides_router
from .routers import ws as ws_router


logger = logging.getLogger("moveeazy.main")

REQ = Counter("http_requests_total", "HTTP requests", ["method", "path", "status"])
REQ_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)


def _bootstrap_admin() -> None:
    if not (settings.ADMIN_BOOTSTRAP_EMAIL and settings.ADMIN_BOOTSTRAP_PASSWORD):
        return
    with session_scope() as db:
        upsert_admin(
            db,
            email=settings.ADMIN_BOOTSTRAP_EMAIL.strip().lower(),
            password=settings.ADMIN_BOOTSTRAP_PASSWORD,
            name=settings.ADMIN_BOOTSTRAP_NAME,
        )
    logger.info("bootstrap admin ensured: %s", settings.ADMIN_BOOTSTRAP_EMAIL)


def create_app() -> FastAPI:
    configure_logging()
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE)
    app = FastAPI(title="MoveEazy API", version="0.1.0")

    # Added innermost first: limiter, then request ID, then CORS outermost
    if settings.RATE_LIMIT_BACKEND.lower() == "redis":
        app.add_middleware(
            RedisRateLimiter,
            redis_url=settings.REDIS_URL,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            login_limit=settings.RATE_LIMIT_LOGIN_PER_MINUTE,
            prefix=settings.RATE_LIMIT_REDIS_PREFIX,
        )
    else:
        app.add_middleware(
            SlidingWindowLimiter,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            login_limit=settings.RATE_LIMIT_LOGIN_PER_MINUTE,
        )

    # Request ID + JSON logs
    app.add_middleware(RequestIDMiddleware)

    allowed_origins = settings.ALLOWED_ORIGINS or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials="*" not in allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    if settings.AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)
    _bootstrap_admin()

    @app.get("/api/health")
    def health():
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        return {"status": "OK", "message": "MoveEazy API is running"}

    app.add_api_route("/health", health, methods=["GET"], include_in_schema=False)

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        route = getattr(request.scope.get("route"), "path", None) or "unmatched"
        REQ.labels(request.method, route, str(response.status_code)).inc()
        REQ_DURATION.labels(request.method, route).observe(duration)
        return response

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router.router)
    app.include_router(rides_router.router)
    app.include_router(driver_router.router)
    app.include_router(admin_router.router)
    app.include_router(ws_router.router)
    return app


app = create_app()
