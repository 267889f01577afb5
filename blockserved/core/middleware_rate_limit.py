from __future__ import annotations

from typing import Iterable, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from blockserved.core.rate_limit import InMemoryRateLimiter


class AccessRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Throttles the document access endpoints per client IP so recipient
    checks cannot be used to enumerate wallets.

    `routes` are (METHOD, path prefix) pairs.
    """

    def __init__(self, app, *, routes: Iterable[Tuple[str, str]], per_minute: int = 30):
        super().__init__(app)
        self.routes = tuple((m.upper(), p) for m, p in routes)
        self.limiter = InMemoryRateLimiter.per_minute(per_minute)

    async def dispatch(self, request: Request, call_next):
        method = request.method.upper()
        path = request.url.path

        for route_method, prefix in self.routes:
            if method == route_method and path.startswith(prefix):
                client = request.client.host if request.client else "unknown"
                if not self.limiter.allow(client, f"{route_method}:{prefix}"):
                    return JSONResponse(
                        status_code=429,
                        content={"detail": "Too many access requests. Try again shortly."},
                        headers={"Retry-After": "60"},
                    )
                break
        return await call_next(request)
