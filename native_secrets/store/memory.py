"""In-memory store with the same versioning and watch semantics as the Kubernetes store."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable

from native_secrets.exceptions import Conflict
from native_secrets.metadata.models import NamespaceMetadata
from native_secrets.store.base import (
    MetadataChange,
    VersionedMetadata,
    VersionedValues,
    WatchEventType,
    parse_document,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Thread-safe value buckets and metadata documents keyed by namespace."""

    def __init__(self, namespaces: list[str] | None = None) -> None:
        self._lock = threading.Condition()
        self._versions = itertools.count(1)
        self._values: dict[str, tuple[dict[str, bytes], str]] = {}
        self._documents: dict[str, tuple[str, str]] = {}
        self._changes: list[MetadataChange] = []
        self.namespaces = list(namespaces or [])

    def _next_version(self) -> str:
        return str(next(self._versions))

    # ── Values ────────────────────────────────────────────────────────

    def read_values(self, namespace: str) -> VersionedValues:
        with self._lock:
            entry = self._values.get(namespace)
            if entry is None:
                return VersionedValues()
            values, version = entry
            return VersionedValues(values=dict(values), version=version)

    def write_values(
        self, namespace: str, values: dict[str, bytes], expected_version: str | None
    ) -> str | None:
        with self._lock:
            current = self._values.get(namespace)
            current_version = current[1] if current else None
            if current_version != expected_version:
                raise Conflict(
                    f"value bucket changed (expected {expected_version}, found {current_version})",
                    namespace=namespace,
                )
            if not values:
                self._values.pop(namespace, None)
                return None
            version = self._next_version()
            self._values[namespace] = (dict(values), version)
            return version

    # ── Metadata ──────────────────────────────────────────────────────

    def read_metadata(self, namespace: str) -> VersionedMetadata:
        with self._lock:
            entry = self._documents.get(namespace)
        if entry is None:
            return VersionedMetadata(metadata=NamespaceMetadata.empty(namespace))
        raw, version = entry
        return VersionedMetadata(
            metadata=parse_document(raw, namespace), version=version
        )

    def write_metadata(
        self, namespace: str, metadata: NamespaceMetadata, expected_version: str | None
    ) -> str:
        raw = metadata.to_json()
        with self._lock:
            current = self._documents.get(namespace)
            current_version = current[1] if current else None
            if current_version != expected_version:
                raise Conflict(
                    f"metadata changed (expected {expected_version}, found {current_version})",
                    namespace=namespace,
                )
            version = self._next_version()
            self._documents[namespace] = (raw, version)
            change_type = WatchEventType.ADDED if current is None else WatchEventType.MODIFIED
            self._changes.append(MetadataChange(change_type, namespace, raw))
            self._lock.notify_all()
            return version

    def put_raw_metadata(self, namespace: str, raw: str) -> str:
        """Replace a document without a version check, as an outside editor would."""
        with self._lock:
            existed = namespace in self._documents
            version = self._next_version()
            self._documents[namespace] = (raw, version)
            change_type = WatchEventType.MODIFIED if existed else WatchEventType.ADDED
            self._changes.append(MetadataChange(change_type, namespace, raw))
            self._lock.notify_all()
            return version

    def delete_metadata(self, namespace: str) -> None:
        with self._lock:
            if self._documents.pop(namespace, None) is not None:
                self._changes.append(MetadataChange(WatchEventType.DELETED, namespace, None))
                self._lock.notify_all()

    def list_namespaces(self) -> list[str]:
        return list(self.namespaces)

    def watch_metadata(
        self,
        handler: Callable[[MetadataChange], None],
        *,
        timeout_seconds: int,
        should_stop: Callable[[], bool],
    ) -> None:
        """Deliver changes recorded after the call starts."""
        with self._lock:
            cursor = len(self._changes)
        waited = 0.0
        while not should_stop() and waited < timeout_seconds:
            with self._lock:
                if cursor >= len(self._changes):
                    self._lock.wait(timeout=0.1)
                    waited += 0.1
                pending = self._changes[cursor:]
                cursor = len(self._changes)
            for change in pending:
                handler(change)

    def ping(self) -> bool:
        return True
