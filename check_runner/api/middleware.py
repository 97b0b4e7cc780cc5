"""Request logging middleware — a per-request logger plus request/response log lines."""

from __future__ import annotations

import logging
import time
from collections.abc import MutableMapping
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger(__name__)


class RequestLogger(logging.LoggerAdapter):
    """Logger adapter that appends the request fields to every message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"{msg} [{fields}]", kwargs

    def with_fields(self, **fields: Any) -> RequestLogger:
        return RequestLogger(self.logger, {**self.extra, **fields})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach a RequestLogger to ``request.state.logger`` and log each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client = request.client
        req_logger = RequestLogger(
            logger,
            {
                "remote_addr": f"{client.host}:{client.port}" if client else "",
                "user_agent": request.headers.get("user-agent", ""),
                "method": request.method,
                "uri": request.url.path + (f"?{request.url.query}" if request.url.query else ""),
            },
        )
        request.state.logger = req_logger

        req_logger.info("Received request")
        t0 = time.perf_counter()
        response = await call_next(request)
        req_logger.with_fields(
            status_code=response.status_code,
            duration=f"{(time.perf_counter() - t0) * 1000:.1f}ms",
        ).info("Handled request")
        return response


def request_logger(request: Request) -> RequestLogger:
    """Return the logger attached by RequestLoggingMiddleware."""
    req_logger = getattr(request.state, "logger", None)
    if req_logger is None:
        raise RuntimeError("no request logger attached; is RequestLoggingMiddleware installed?")
    return req_logger
