"""Secret value routes — list, create/update, delete."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from native_secrets.api.deps import get_current_user, get_engine
from native_secrets.api.models import UpsertSecretRequest
from native_secrets.metadata.engine import MetadataEngine

router = APIRouter(prefix="/api/namespaces/{namespace}/secrets", tags=["secrets"])


@router.get("")
async def api_list_secrets(
    namespace: str,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    return await asyncio.to_thread(engine.list_secrets, namespace, user)


@router.post("")
async def api_upsert_secret(
    namespace: str,
    body: UpsertSecretRequest,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not body.key or not body.value:
        return JSONResponse({"error": "Key and value are required"}, status_code=400)
    await asyncio.to_thread(engine.upsert_secret, namespace, body.key, body.value, user)
    return {"success": True}


@router.delete("")
async def api_delete_secret(
    namespace: str,
    key: str = Query(""),
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not key:
        return JSONResponse({"error": "Key is required"}, status_code=400)
    await asyncio.to_thread(engine.delete_secret, namespace, key, user)
    return {"success": True}
