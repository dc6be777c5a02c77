"""
Store interfaces — the value bucket and the metadata document per namespace.

Both stores are whole-object read / compare-and-swap replace. ``version`` is
the backing object's resource version; ``None`` means the object does not
exist yet. A write whose ``expected_version`` no longer matches raises
``Conflict``; transport failures and timeouts raise ``StoreUnavailable``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from native_secrets.exceptions import StoreUnavailable
from native_secrets.metadata.models import NamespaceMetadata


@dataclass
class VersionedValues:
    values: dict[str, bytes] = field(default_factory=dict)
    version: str | None = None


@dataclass
class VersionedMetadata:
    metadata: NamespaceMetadata
    version: str | None = None


def parse_document(raw: str, namespace: str) -> NamespaceMetadata:
    """Parse a stored metadata document. An unreadable one is a store failure."""
    try:
        return NamespaceMetadata.from_json(raw, namespace)
    except ValueError as e:
        raise StoreUnavailable(
            f"metadata document for {namespace} is unreadable: {e}", namespace=namespace
        ) from e


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class MetadataChange:
    """A change to a metadata document observed by a watch."""

    type: WatchEventType
    namespace: str
    raw: str | None


class ValueStore(Protocol):
    def read_values(self, namespace: str) -> VersionedValues: ...

    def write_values(
        self, namespace: str, values: dict[str, bytes], expected_version: str | None
    ) -> str | None:
        """Replace the bucket. An empty ``values`` deletes it and returns ``None``."""
        ...


class MetadataStore(Protocol):
    def read_metadata(self, namespace: str) -> VersionedMetadata: ...

    def write_metadata(
        self, namespace: str, metadata: NamespaceMetadata, expected_version: str | None
    ) -> str: ...

    def list_namespaces(self) -> list[str]: ...

    def watch_metadata(
        self,
        handler: Callable[[MetadataChange], None],
        *,
        timeout_seconds: int,
        should_stop: Callable[[], bool],
    ) -> None:
        """Stream changes to ``handler`` until the server closes the stream or ``should_stop()``."""
        ...

    def ping(self) -> bool: ...


class SecretStore(ValueStore, MetadataStore, Protocol):
    """A backend providing both halves."""
