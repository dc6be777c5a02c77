"""API dependency injection — shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from native_secrets.exceptions import Unauthorized
from native_secrets.metadata.engine import MetadataEngine


def get_current_user(request: Request) -> str:
    """Caller identity from request state (set by IdentityMiddleware).

    Raises Unauthorized when the proxy supplied none.
    """
    user = getattr(request.state, "user", None)
    if not user:
        raise Unauthorized("Unauthorized")
    return user


def get_engine(request: Request) -> MetadataEngine:
    return request.app.state.engine
