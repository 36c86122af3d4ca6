import json
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger("moveeazy.request")

# Client-supplied ids end up in logs and error bodies
_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def request_id_for(request: Request) -> str:
    supplied = request.headers.get("X-Request-ID", "")
    if _VALID_ID.match(supplied):
        return supplied
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (request.state.request_id) and logs it.

    The id is echoed in the X-Request-ID header and in error envelopes.
    """

    async def dispatch(self, request: Request, call_next):
        req_id = request_id_for(request)
        request.state.request_id = req_id
        start = time.perf_counter()
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        record = {
            "request_id": req_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 1),
        }
        if response.status_code >= 500:
            logger.error(json.dumps(record))
        else:
            logger.info(json.dumps(record))
        return response
