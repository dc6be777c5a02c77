"""Audit trail route."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Query

from native_secrets.api.deps import get_current_user, get_engine
from native_secrets.metadata.audit import project, project_key
from native_secrets.metadata.engine import MetadataEngine

router = APIRouter(prefix="/api/namespaces/{namespace}/audit", tags=["audit"])


@router.get("")
async def api_audit_trail(
    namespace: str,
    key: str | None = Query(None),
    user: str = Depends(get_current_user),
    engine: MetadataEngine = Depends(get_engine),
):
    metadata = await asyncio.to_thread(engine.get_metadata, namespace)
    entries = project_key(metadata, key) if key else project(metadata)
    return {
        "entries": [
            e.model_dump(by_alias=True, mode="json", exclude_none=True) for e in entries
        ]
    }
