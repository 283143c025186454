"""Shared FastAPI middleware."""

from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """
    Reject requests with bodies larger than MAX_REQUEST_BODY_BYTES.

    Batch requests carry at most a few hundred ids, so anything larger is
    refused before it reaches a handler.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        limit = int(get_settings().MAX_REQUEST_BODY_BYTES)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    return JSONResponse({"detail": "Payload too large."}, status_code=413)
            except ValueError:
                return JSONResponse({"detail": "Invalid Content-Length header."}, status_code=400)

        # Chunked bodies: Starlette caches request.body() for downstream handlers.
        body = await request.body()
        if body and len(body) > limit:
            return JSONResponse({"detail": "Payload too large."}, status_code=413)

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency of every HTTP request."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        return response
