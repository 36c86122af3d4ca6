import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger("moveeazy.errors")

GENERIC_ERROR_MESSAGE = "Something went wrong!"

_STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
}


class AppError(HTTPException):
    """HTTPException with a stable machine-readable code."""

    def __init__(self, status_code: int, message: str, code: str | None = None, details: Any = None):
        super().__init__(status_code=status_code, detail=message)
        self.code = code or _STATUS_CODES.get(status_code, "error")
        self.details = details


def error_body(
    status_code: int,
    message: str,
    code: str | None = None,
    details: Any = None,
    request_id: str | None = None,
) -> dict:
    err: dict[str, Any] = {
        "code": code or _STATUS_CODES.get(status_code, "error"),
        "message": message,
    }
    if details is not None:
        err["details"] = details
    if request_id:
        err["request_id"] = request_id
    return {"error": err}


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None)
    detail = exc.detail
    if isinstance(detail, dict):
        code = detail.get("code", code)
        message = str(detail.get("message") or code or "")
        rest = {k: v for k, v in detail.items() if k not in ("code", "message")}
        details = rest or details
    else:
        message = str(detail)
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message, code, details, request_id_of(request)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body(
            422, "Invalid request", details=jsonable_encoder(exc.errors()), request_id=request_id_of(request)
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    req_id = request_id_of(request)
    logger.exception(
        "Unhandled error on %s %s (request_id=%s)", request.method, request.url.path, req_id, exc_info=exc
    )
    return JSONResponse(status_code=500, content=error_body(500, GENERIC_ERROR_MESSAGE, request_id=req_id))
