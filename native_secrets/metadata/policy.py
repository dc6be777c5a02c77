"""
Access policy — pure predicates over a NamespaceMetadata document.

A user can read a secret's value when they own it, or when a grant
names them and was issued against the secret's current fingerprint.
Changing the value therefore revokes every earlier grant without
touching the grant records.
"""

from __future__ import annotations

from native_secrets.metadata.models import NamespaceMetadata


def is_owner(metadata: NamespaceMetadata, key: str, user: str) -> bool:
    secret = metadata.secrets.get(key)
    return secret is not None and secret.owner == user


def has_access(metadata: NamespaceMetadata, key: str, user: str) -> bool:
    """Owner, or holder of a grant pinned to the current fingerprint."""
    secret = metadata.secrets.get(key)
    if secret is None:
        return False
    if secret.owner == user:
        return True
    return any(
        grant.shared_to == user and grant.fingerprint == secret.fingerprint
        for grant in secret.shared_with
    )


def can_approve(metadata: NamespaceMetadata, key: str, user: str) -> bool:
    """Any current accessor may approve requests for the key, not only the owner."""
    return has_access(metadata, key, user)
