"""Check runner FastAPI application — request logging + check routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from check_runner import __version__
from check_runner.api.middleware import RequestLoggingMiddleware
from check_runner.api.routes import router
from check_runner.runner import Runner

logger = logging.getLogger(__name__)


def normalize_base_uri(base_uri: str) -> str:
    """Turn a user supplied base URI into a router prefix ("" or "/foo")."""
    base = base_uri.strip().rstrip("/")
    if base and not base.startswith("/"):
        base = "/" + base
    return base


def create_app(runner: Runner, base_uri: str = "") -> FastAPI:
    """Create the check runner FastAPI application serving ``runner``."""
    prefix = normalize_base_uri(base_uri)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Check runner API ready: role=%s base_uri=%r", runner.role, prefix or "/"
        )
        yield

    app = FastAPI(
        title="DC/OS Check Runner",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.runner = runner

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(router, prefix=prefix)

    return app
