"""
Change notifier — fans metadata changes out to live subscribers.

Every event is the full document for one namespace; subscribers replace
their cached copy instead of applying deltas. Delivery is best-effort and
at-least-once: a change made by this process is delivered once by the
engine and may be delivered again when the watch observes the write.

``notify`` is safe to call from worker threads; events are handed to each
subscriber's event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from native_secrets.events.bus import publish
from native_secrets.metadata.models import NamespaceMetadata

logger = logging.getLogger(__name__)

EVENT_NAME = "metadata-update"


@dataclass(frozen=True)
class ChangeEvent:
    namespace: str
    metadata: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        return {"event": EVENT_NAME, "namespace": self.namespace, "metadata": self.metadata}


@dataclass(eq=False)
class Subscription:
    """One live client. ``queue`` receives ChangeEvents for ``namespaces``."""

    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue[ChangeEvent] = field(default_factory=asyncio.Queue)
    namespaces: set[str] = field(default_factory=set)


class ChangeNotifier:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: set[Subscription] = set()

    def open(self) -> Subscription:
        """Register a subscriber bound to the running event loop."""
        sub = Subscription(loop=asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.add(sub)
        return sub

    def close(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(sub)

    def subscribe(self, sub: Subscription, namespace: str) -> None:
        with self._lock:
            sub.namespaces.add(namespace)
        logger.info("Subscriber %x joined namespace:%s", id(sub), namespace)

    def unsubscribe(self, sub: Subscription, namespace: str) -> None:
        with self._lock:
            sub.namespaces.discard(namespace)
        logger.info("Subscriber %x left namespace:%s", id(sub), namespace)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def notify(
        self,
        namespace: str,
        metadata: NamespaceMetadata,
        *,
        source: str = "engine",
        actor: str = "system",
    ) -> int:
        """Deliver the document to every subscriber of ``namespace``. Returns the delivery count."""
        event = ChangeEvent(namespace=namespace, metadata=metadata.to_dict())
        with self._lock:
            targets = [s for s in self._subscriptions if namespace in s.namespaces]

        delivered = 0
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub.queue.put_nowait, event)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the client is gone
                logger.debug("Dropping subscriber %x with closed loop", id(sub))
                self.close(sub)

        publish(
            "metadata",
            "metadata.updated",
            event.metadata,
            namespace=namespace,
            source=source,
            actor=actor,
        )
        return delivered
