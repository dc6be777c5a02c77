"""
Metadata document models.

One NamespaceMetadata document per namespace is the single source of truth
for ownership, sharing, access requests and the derived audit trail.
The persisted JSON uses camelCase keys. Documents written before the
fingerprint rename carry ``valueHash``; it is accepted on input.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string (millisecond precision, ``Z`` suffix)."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp. Naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccessStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class ShareGrant(_Document):
    """Grant of read access, valid only while the secret's fingerprint is unchanged."""

    key: str
    fingerprint: str = Field(
        validation_alias=AliasChoices("fingerprint", "fingerprintAtShareTime", "valueHash")
    )
    shared_by: str
    shared_to: str
    shared_at: str = Field(default_factory=utcnow_iso)
    approved: bool = True


class AccessRequest(_Document):
    key: str
    requested_by: str
    requested_at: str = Field(default_factory=utcnow_iso)
    status: AccessStatus = AccessStatus.PENDING


class SecretMetadata(_Document):
    owner: str
    created_at: str = Field(default_factory=utcnow_iso)
    updated_at: str = Field(default_factory=utcnow_iso)
    fingerprint: str = Field(validation_alias=AliasChoices("fingerprint", "valueHash"))
    shared_with: list[ShareGrant] = Field(default_factory=list)
    access_requests: list[AccessRequest] = Field(default_factory=list)

    def pending_request(self, requested_by: str) -> AccessRequest | None:
        """Return the pending request of ``requested_by``, if any."""
        for request in self.access_requests:
            if request.requested_by == requested_by and request.status == AccessStatus.PENDING:
                return request
        return None


class NamespaceMetadata(_Document):
    namespace: str
    secrets: dict[str, SecretMetadata] = Field(default_factory=dict)

    @classmethod
    def empty(cls, namespace: str) -> NamespaceMetadata:
        return cls(namespace=namespace)

    @classmethod
    def from_json(cls, raw: str, namespace: str) -> NamespaceMetadata:
        """Parse a stored document. A missing ``namespace`` field defaults to ``namespace``."""
        data = json.loads(raw) if raw else {}
        if not isinstance(data, dict):
            raise ValueError(f"metadata for {namespace!r} is not a JSON object")
        data.setdefault("namespace", namespace)
        data.setdefault("secrets", {})
        return cls.model_validate(data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class AuditAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    SHARE = "share"
    REQUEST = "request"
    APPROVE = "approve"
    DENY = "deny"


class AuditEntry(_Document):
    """One derived audit event. Never persisted."""

    timestamp: str
    action: AuditAction
    user: str
    namespace: str
    key: str
    fingerprint: str | None = None
    target_user: str | None = None
