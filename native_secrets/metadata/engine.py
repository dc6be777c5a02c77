"""
Metadata engine — every mutation of a namespace's metadata document.

Each operation is one read-modify-write cycle of the whole document:

    load (with version) → authorize → mutate → persist (compare-and-swap) → notify

Operations on the same namespace are serialized in-process by a lock.
Across processes the store's version check catches concurrent writers;
the whole cycle is then retried, up to ``max_retries`` attempts, before
``Conflict`` is raised.

Value writes always precede the metadata write. If the metadata write
cannot be completed the previous value is restored, so a failed
operation leaves both objects as they were.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from native_secrets.events.notifier import ChangeNotifier
from native_secrets.exceptions import (
    Conflict,
    Forbidden,
    InvalidInput,
    NativeSecretsError,
    NotFound,
    StoreUnavailable,
)
from native_secrets.metadata.models import (
    AccessRequest,
    AccessStatus,
    NamespaceMetadata,
    SecretMetadata,
    ShareGrant,
    utcnow_iso,
)
from native_secrets.metadata.policy import can_approve, has_access
from native_secrets.store.base import SecretStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5

# Secret data keys and object names accepted by the API server
_KEY_RE = re.compile(r"^[-._a-zA-Z0-9]+$")
_NAMESPACE_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def fingerprint(value: bytes | str) -> str:
    """Deterministic digest of a secret value. Identical values give identical fingerprints."""
    data = value.encode("utf-8") if isinstance(value, str) else value
    return "sha256:" + hashlib.sha256(data).hexdigest()


def validate_namespace(namespace: str) -> None:
    if not namespace or len(namespace) > 63 or not _NAMESPACE_RE.match(namespace):
        raise InvalidInput(f"invalid namespace name: {namespace!r}", namespace=namespace)


def validate_key(namespace: str, key: str) -> None:
    if not key or len(key) > 253 or not _KEY_RE.match(key):
        raise InvalidInput(
            "key must consist of alphanumerics, '-', '_' or '.'", namespace=namespace, key=key
        )


class MetadataEngine:
    """Load → authorize → mutate → persist → notify, per namespace."""

    def __init__(
        self,
        store: SecretStore,
        notifier: ChangeNotifier | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.max_retries = max(1, max_retries)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _namespace_lock(self, namespace: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(namespace)
            if lock is None:
                lock = self._locks[namespace] = threading.Lock()
            return lock

    # ── Read paths ────────────────────────────────────────────────────

    def list_namespaces(self) -> list[str]:
        return self.store.list_namespaces()

    def get_metadata(self, namespace: str) -> NamespaceMetadata:
        validate_namespace(namespace)
        return self.store.read_metadata(namespace).metadata

    def list_secrets(self, namespace: str, user: str) -> dict[str, Any]:
        """Every key in the value bucket, with the value only where ``user`` has access.

        Callers without access see the owner and nothing else of the
        secret's metadata.
        """
        validate_namespace(namespace)
        values = self.store.read_values(namespace).values
        metadata = self.store.read_metadata(namespace).metadata

        secrets: dict[str, Any] = {}
        for key, raw in values.items():
            secret = metadata.secrets.get(key)
            if has_access(metadata, key, user):
                secrets[key] = {
                    "value": raw.decode("utf-8", errors="replace"),
                    "hasAccess": True,
                    "metadata": secret.model_dump(by_alias=True, mode="json"),
                }
            else:
                secrets[key] = {
                    "value": None,
                    "hasAccess": False,
                    "metadata": {"owner": secret.owner if secret else None, "hasAccess": False},
                }
        return {"secrets": secrets, "metadata": metadata.to_dict()}

    # ── Mutations ─────────────────────────────────────────────────────

    def upsert_secret(self, namespace: str, key: str, value: str | bytes, actor: str) -> NamespaceMetadata:
        """Write a value. New keys are owned by ``actor``; existing keys require ownership.

        The new fingerprint revokes every earlier grant for the key.
        """
        validate_namespace(namespace)
        validate_key(namespace, key)
        data = value.encode("utf-8") if isinstance(value, str) else value
        digest = fingerprint(data)
        undo = _ValueUndo(namespace, key)

        def attempt() -> NamespaceMetadata:
            state = self.store.read_metadata(namespace)
            doc = state.metadata
            secret = doc.secrets.get(key)
            if secret is not None and secret.owner != actor:
                raise Forbidden(
                    "only the owner can update a secret", namespace=namespace, key=key, actor=actor
                )

            undo.record(self._put_value(namespace, key, data))

            now = utcnow_iso()
            if secret is None:
                doc.secrets[key] = SecretMetadata(
                    owner=actor, created_at=now, updated_at=now, fingerprint=digest
                )
            else:
                secret.updated_at = now
                secret.fingerprint = digest
            self._persist_after_value_write(namespace, doc, state.version, key)
            return doc

        with self._namespace_lock(namespace):
            try:
                doc = self._retrying("upsert", namespace, key, actor, attempt)
            except NativeSecretsError:
                self._restore_value(undo)
                raise
        logger.info("Secret %s/%s written by %s", namespace, key, actor)
        self._notify(namespace, doc, actor)
        return doc

    def delete_secret(self, namespace: str, key: str, actor: str | None = None) -> NamespaceMetadata:
        """Remove the value and its metadata entry, history included.

        With ``actor`` the caller must own the secret. An emptied value
        bucket is removed entirely.
        """
        validate_namespace(namespace)
        validate_key(namespace, key)
        undo = _ValueUndo(namespace, key)

        def attempt() -> NamespaceMetadata:
            state = self.store.read_metadata(namespace)
            doc = state.metadata
            secret = doc.secrets.get(key)
            values = self.store.read_values(namespace)

            if secret is None and (actor is not None or key not in values.values):
                raise NotFound("secret not found", namespace=namespace, key=key, actor=actor)
            if actor is not None and secret.owner != actor:
                raise Forbidden(
                    "only the owner can delete a secret", namespace=namespace, key=key, actor=actor
                )

            if key in values.values:
                previous = values.values.pop(key)
                self.store.write_values(namespace, values.values, values.version)
                undo.record(previous)

            if secret is not None:
                del doc.secrets[key]
                self._persist_after_value_write(namespace, doc, state.version, key)
            return doc

        with self._namespace_lock(namespace):
            try:
                doc = self._retrying("delete", namespace, key, actor, attempt)
            except NativeSecretsError:
                self._restore_value(undo)
                raise
        logger.info("Secret %s/%s deleted by %s", namespace, key, actor or "system")
        self._notify(namespace, doc, actor)
        return doc

    def share_secret(self, namespace: str, key: str, shared_by: str, shared_to: str) -> NamespaceMetadata:
        """Grant ``shared_to`` access pinned to the current fingerprint."""
        validate_namespace(namespace)

        def mutate(doc: NamespaceMetadata) -> bool:
            secret = self._require_secret(doc, namespace, key, shared_by)
            if not has_access(doc, key, shared_by):
                raise Forbidden(
                    "no access to share this secret", namespace=namespace, key=key, actor=shared_by
                )
            secret.shared_with.append(
                ShareGrant(
                    key=key,
                    fingerprint=secret.fingerprint,
                    shared_by=shared_by,
                    shared_to=shared_to,
                    shared_at=utcnow_iso(),
                    approved=True,
                )
            )
            return True

        doc = self._mutate("share", namespace, key, shared_by, mutate)
        logger.info("Secret %s/%s shared by %s with %s", namespace, key, shared_by, shared_to)
        return doc

    def request_access(self, namespace: str, key: str, requested_by: str) -> NamespaceMetadata:
        """Append a pending request. A request already pending is left alone."""
        validate_namespace(namespace)

        def mutate(doc: NamespaceMetadata) -> bool:
            secret = self._require_secret(doc, namespace, key, requested_by)
            if secret.pending_request(requested_by) is not None:
                logger.debug("Access request for %s/%s by %s already pending", namespace, key, requested_by)
                return False
            secret.access_requests.append(
                AccessRequest(key=key, requested_by=requested_by, requested_at=utcnow_iso())
            )
            return True

        return self._mutate("request", namespace, key, requested_by, mutate)

    def respond_to_access_request(
        self,
        namespace: str,
        key: str,
        requested_by: str,
        approved: bool,
        approver: str,
    ) -> NamespaceMetadata:
        """Approve or deny the pending request of ``requested_by``.

        Approval appends a grant exactly as ``share_secret`` would, with
        ``approver`` as the sharer.
        """
        validate_namespace(namespace)

        def mutate(doc: NamespaceMetadata) -> bool:
            secret = self._require_secret(doc, namespace, key, approver)
            if not can_approve(doc, key, approver):
                raise Forbidden(
                    "not allowed to approve requests for this secret",
                    namespace=namespace, key=key, actor=approver,
                )
            request = secret.pending_request(requested_by)
            if request is None:
                raise NotFound(
                    f"no pending access request from {requested_by}",
                    namespace=namespace, key=key, actor=approver,
                )
            request.status = AccessStatus.APPROVED if approved else AccessStatus.DENIED
            if approved:
                secret.shared_with.append(
                    ShareGrant(
                        key=key,
                        fingerprint=secret.fingerprint,
                        shared_by=approver,
                        shared_to=requested_by,
                        shared_at=utcnow_iso(),
                        approved=True,
                    )
                )
            return True

        doc = self._mutate("respond", namespace, key, approver, mutate)
        logger.info(
            "Access request for %s/%s by %s %s by %s",
            namespace, key, requested_by, "approved" if approved else "denied", approver,
        )
        return doc

    def reassign_owner(
        self, namespace: str, key: str, new_owner: str, actor: str | None = None
    ) -> NamespaceMetadata:
        """Hand the secret to ``new_owner``. Grants are untouched."""
        validate_namespace(namespace)

        def mutate(doc: NamespaceMetadata) -> bool:
            secret = self._require_secret(doc, namespace, key, actor)
            if actor is not None and secret.owner != actor:
                raise Forbidden(
                    "only the owner can reassign a secret", namespace=namespace, key=key, actor=actor
                )
            if secret.owner == new_owner:
                return False
            secret.owner = new_owner
            return True

        doc = self._mutate("reassign", namespace, key, actor, mutate)
        logger.info("Secret %s/%s reassigned to %s", namespace, key, new_owner)
        return doc

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    def _require_secret(
        doc: NamespaceMetadata, namespace: str, key: str, actor: str | None
    ) -> SecretMetadata:
        secret = doc.secrets.get(key)
        if secret is None:
            raise NotFound("secret not found", namespace=namespace, key=key, actor=actor)
        return secret

    def _mutate(
        self,
        op: str,
        namespace: str,
        key: str,
        actor: str | None,
        mutate: Callable[[NamespaceMetadata], bool],
    ) -> NamespaceMetadata:
        """Metadata-only cycle. ``mutate`` returns False for a no-op (nothing written, no event)."""
        changed = False

        def attempt() -> NamespaceMetadata:
            nonlocal changed
            state = self.store.read_metadata(namespace)
            doc = state.metadata
            changed = mutate(doc)
            if changed:
                self.store.write_metadata(namespace, doc, state.version)
            return doc

        with self._namespace_lock(namespace):
            doc = self._retrying(op, namespace, key, actor, attempt)
        if changed:
            self._notify(namespace, doc, actor)
        return doc

    def _retrying(
        self,
        op: str,
        namespace: str,
        key: str,
        actor: str | None,
        attempt: Callable[[], T],
    ) -> T:
        last: Conflict | None = None
        for n in range(1, self.max_retries + 1):
            try:
                return attempt()
            except Conflict as e:
                last = e
                logger.info(
                    "Write conflict on %s %s/%s (attempt %d/%d): %s",
                    op, namespace, key, n, self.max_retries, e,
                )
        raise Conflict(
            f"{op} gave up after {self.max_retries} conflicting attempts",
            namespace=namespace, key=key, actor=actor,
        ) from last

    def _put_value(self, namespace: str, key: str, data: bytes) -> bytes | None:
        """Set one key in the bucket. Returns the value it replaced."""
        current = self.store.read_values(namespace)
        previous = current.values.get(key)
        current.values[key] = data
        self.store.write_values(namespace, current.values, current.version)
        return previous

    def _persist_after_value_write(
        self, namespace: str, doc: NamespaceMetadata, version: str | None, key: str
    ) -> None:
        # The value is already written; a failed metadata write must be retried, not reported as success
        try:
            self.store.write_metadata(namespace, doc, version)
        except StoreUnavailable as e:
            raise Conflict(
                f"metadata write failed after value write: {e.message}", namespace=namespace, key=key
            ) from e

    def _restore_value(self, undo: _ValueUndo) -> None:
        """Best-effort rollback of a value written by a failed operation."""
        if not undo.touched:
            return
        for _ in range(self.max_retries):
            try:
                current = self.store.read_values(undo.namespace)
                if undo.original is None:
                    current.values.pop(undo.key, None)
                else:
                    current.values[undo.key] = undo.original
                self.store.write_values(undo.namespace, current.values, current.version)
                logger.warning("Restored previous value of %s/%s", undo.namespace, undo.key)
                return
            except Conflict:
                continue
            except StoreUnavailable as e:
                logger.error("Could not restore value of %s/%s: %s", undo.namespace, undo.key, e)
                return
        logger.error("Could not restore value of %s/%s: too many conflicts", undo.namespace, undo.key)

    def _notify(self, namespace: str, doc: NamespaceMetadata, actor: str | None) -> None:
        if self.notifier is not None:
            self.notifier.notify(namespace, doc, source="engine", actor=actor or "system")


class _ValueUndo:
    """The value a key held before this operation first wrote it."""

    def __init__(self, namespace: str, key: str) -> None:
        self.namespace = namespace
        self.key = key
        self.touched = False
        self.original: bytes | None = None

    def record(self, previous: bytes | None) -> None:
        if not self.touched:
            self.touched = True
            self.original = previous
