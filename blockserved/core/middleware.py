import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Caller-supplied ids end up in audit rows; anything else is replaced.
SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id (echoed in `header_name`). Access attempts,
    views and admin log rows copy it from `request.state.request_id`.
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(self.header_name)
        rid = incoming if incoming and SAFE_REQUEST_ID.match(incoming) else uuid.uuid4().hex
        request.state.request_id = rid

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[self.header_name] = rid
        logger.info(
            "[request] %s %s status=%s rid=%s ms=%.1f",
            request.method, request.url.path, response.status_code, rid, (time.perf_counter() - started) * 1000,
        )
        return response
