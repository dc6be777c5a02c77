"""API middleware — correlation IDs and caller identity."""

from __future__ import annotations

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Correlation-Id to every request/response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response


class IdentityMiddleware(BaseHTTPMiddleware):
    """Read the caller's identity from the header set by the authenticating proxy.

    Sets request.state.user to the trimmed header value, or None when the
    header is absent or blank. Rejection is left to the routes that need
    an identity, so /health stays open.
    """

    def __init__(self, app: ASGIApp, header: str = "X-Auth-Request-Email") -> None:
        super().__init__(app)
        self.header = header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        user = (request.headers.get(self.header) or "").strip()
        request.state.user = user or None
        return await call_next(request)
