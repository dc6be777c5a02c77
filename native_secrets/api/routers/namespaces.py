"""Namespace discovery routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from native_secrets.api.deps import get_current_user, get_engine
from native_secrets.metadata.engine import MetadataEngine

router = APIRouter(prefix="/api/namespaces", tags=["namespaces"])


@router.get("")
async def api_list_namespaces(
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    return {"namespaces": await asyncio.to_thread(engine.list_namespaces)}
