"""Sharing routes — direct shares, access requests and ownership transfer."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from native_secrets.api.deps import get_current_user, get_engine
from native_secrets.api.models import (
    AccessRequestCreate,
    AccessRequestResponse,
    ReassignOwnerRequest,
    ShareSecretRequest,
)
from native_secrets.metadata.engine import MetadataEngine

router = APIRouter(prefix="/api/namespaces/{namespace}", tags=["sharing"])


@router.post("/share")
async def api_share_secret(
    namespace: str,
    body: ShareSecretRequest,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not body.key or not body.sharedTo:
        return JSONResponse({"error": "Key and sharedTo are required"}, status_code=400)
    await asyncio.to_thread(engine.share_secret, namespace, body.key, user, body.sharedTo)
    return {"success": True}


@router.post("/access-request")
async def api_request_access(
    namespace: str,
    body: AccessRequestCreate,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not body.key:
        return JSONResponse({"error": "Key is required"}, status_code=400)
    await asyncio.to_thread(engine.request_access, namespace, body.key, user)
    return {"success": True}


@router.put("/access-request")
async def api_respond_to_access_request(
    namespace: str,
    body: AccessRequestResponse,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not body.key or not body.requestedBy or body.approved is None:
        return JSONResponse(
            {"error": "Key, requestedBy, and approved are required"},
            status_code=400,
        )
    await asyncio.to_thread(
        engine.respond_to_access_request,
        namespace,
        body.key,
        body.requestedBy,
        body.approved,
        user,
    )
    return {"success": True}


@router.post("/reassign")
async def api_reassign_owner(
    namespace: str,
    body: ReassignOwnerRequest,
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    if not body.key or not body.newOwner:
        return JSONResponse({"error": "Key and newOwner are required"}, status_code=400)
    await asyncio.to_thread(engine.reassign_owner, namespace, body.key, body.newOwner, user)
    return {"success": True}
