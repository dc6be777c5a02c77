"""
Audit projection — derives the audit trail from a metadata document.

Nothing is persisted: the trail is recomputed on every read, so its
retention is exactly the retention of the document. Deleting a secret
deletes its history.
"""

from __future__ import annotations

from native_secrets.metadata.models import (
    AccessStatus,
    AuditAction,
    AuditEntry,
    NamespaceMetadata,
    parse_timestamp,
)

SYSTEM_ACTOR = "system"


def project(metadata: NamespaceMetadata) -> list[AuditEntry]:
    """Return the audit trail for every secret in ``metadata``, most recent first."""
    entries: list[AuditEntry] = []
    ns = metadata.namespace

    for key, secret in metadata.secrets.items():
        entries.append(
            AuditEntry(
                timestamp=secret.created_at,
                action=AuditAction.CREATE,
                user=secret.owner,
                namespace=ns,
                key=key,
                fingerprint=secret.fingerprint,
            )
        )
        if secret.updated_at != secret.created_at:
            entries.append(
                AuditEntry(
                    timestamp=secret.updated_at,
                    action=AuditAction.UPDATE,
                    user=secret.owner,
                    namespace=ns,
                    key=key,
                    fingerprint=secret.fingerprint,
                )
            )

        for grant in secret.shared_with:
            entries.append(
                AuditEntry(
                    timestamp=grant.shared_at,
                    action=AuditAction.SHARE,
                    user=grant.shared_by,
                    namespace=ns,
                    key=key,
                    fingerprint=grant.fingerprint,
                    target_user=grant.shared_to,
                )
            )

        for request in secret.access_requests:
            entries.append(
                AuditEntry(
                    timestamp=request.requested_at,
                    action=AuditAction.REQUEST,
                    user=request.requested_by,
                    namespace=ns,
                    key=key,
                )
            )
            # The document keeps no decision time; the decision reuses requestedAt.
            if request.status != AccessStatus.PENDING:
                entries.append(
                    AuditEntry(
                        timestamp=request.requested_at,
                        action=(
                            AuditAction.APPROVE
                            if request.status == AccessStatus.APPROVED
                            else AuditAction.DENY
                        ),
                        user=SYSTEM_ACTOR,
                        namespace=ns,
                        key=key,
                        target_user=request.requested_by,
                    )
                )

    # sorted() is stable, ties keep insertion order
    return sorted(entries, key=lambda e: parse_timestamp(e.timestamp), reverse=True)


def project_key(metadata: NamespaceMetadata, key: str) -> list[AuditEntry]:
    """Audit trail restricted to one secret."""
    return [entry for entry in project(metadata) if entry.key == key]
