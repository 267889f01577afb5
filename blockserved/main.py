from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from blockserved.api.v1.router import v1_router
from blockserved.core.config import Settings, get_settings
from blockserved.core.errors import ChainUnavailable
from blockserved.core.logging import configure_logging
from blockserved.core.middleware import RequestIdMiddleware
from blockserved.core.middleware_rate_limit import AccessRateLimitMiddleware
from blockserved.db.session import dispose_engine, init_engine
from blockserved.services.chain_client import TronGridClient

import logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    init_engine(settings.database_url)

    # Chain reads are optional; without a contract the repair endpoints refuse
    try:
        app.state.chain = TronGridClient.from_settings(settings)
    except ChainUnavailable:
        logger.info("[startup] no contract configured; chain client disabled")
        app.state.chain = None

    # Middleware: access throttling (inner), then Request ID (outer)
    app.add_middleware(
        AccessRateLimitMiddleware,
        routes=[
            ("POST", f"{settings.api_prefix}/access/verify-recipient"),
            ("GET", f"{settings.api_prefix}/access/document/"),
        ],
        per_minute=settings.access_rate_limit_per_minute,
    )
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app
