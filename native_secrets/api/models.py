"""Pydantic request models for the native-secrets API.

Field names follow the JSON the web client sends (camelCase). Required
fields default to empty so the routes can answer a missing field with a
plain 400 and an explanatory message.
"""

from __future__ import annotations

from pydantic import BaseModel


class UpsertSecretRequest(BaseModel):
    key: str = ""
    value: str = ""


class ShareSecretRequest(BaseModel):
    key: str = ""
    sharedTo: str = ""


class AccessRequestCreate(BaseModel):
    key: str = ""


class AccessRequestResponse(BaseModel):
    key: str = ""
    requestedBy: str = ""
    approved: bool | None = None


class ReassignOwnerRequest(BaseModel):
    key: str = ""
    newOwner: str = ""
