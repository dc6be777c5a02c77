"""
Metadata watcher — follows metadata documents edited outside this process.

Runs the store's blocking watch on a daemon thread and forwards every
observed change to the ChangeNotifier. When the stream fails it waits a
fixed delay and reconnects, indefinitely, until stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading

from pydantic import ValidationError

from native_secrets.events.notifier import ChangeNotifier
from native_secrets.metadata.models import NamespaceMetadata
from native_secrets.store.base import MetadataChange, MetadataStore, WatchEventType

logger = logging.getLogger(__name__)


class MetadataWatcher:
    def __init__(
        self,
        store: MetadataStore,
        notifier: ChangeNotifier,
        *,
        timeout_seconds: int = 300,
        retry_delay: float = 5.0,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay
        self._stop = threading.Event()
        self.restarts = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        logger.info("Metadata watch started")
        while not self._stop.is_set():
            try:
                await self._watch_once()
            except asyncio.CancelledError:
                self._stop.set()
                raise
            except Exception as e:
                self.restarts += 1
                logger.error(
                    "Metadata watch error: %s (restarting in %.1fs)", e, self.retry_delay
                )
                await asyncio.sleep(self.retry_delay)
        logger.info("Metadata watch stopped")

    async def _watch_once(self) -> None:
        """Run one blocking watch stream on a daemon thread and wait for it to end.

        The thread is never joined: a stream idling inside the client only
        notices the stop flag on its next event or timeout, and shutdown must
        not wait for that.
        """
        loop = asyncio.get_running_loop()
        done: asyncio.Future[None] = loop.create_future()

        def settle(error: BaseException | None) -> None:
            if done.done():
                return
            if error is None:
                done.set_result(None)
            else:
                done.set_exception(error)

        def target() -> None:
            error: BaseException | None = None
            try:
                self.store.watch_metadata(
                    self.handle_change,
                    timeout_seconds=self.timeout_seconds,
                    should_stop=self._stop.is_set,
                )
            except Exception as e:
                error = e
            # The loop may already be closed once the app has shut down.
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(settle, error)

        threading.Thread(target=target, name="metadata-watch", daemon=True).start()
        await done

    def handle_change(self, change: MetadataChange) -> None:
        """Parse one observed change and broadcast it."""
        if change.type == WatchEventType.DELETED:
            metadata = NamespaceMetadata.empty(change.namespace)
        else:
            try:
                metadata = NamespaceMetadata.from_json(change.raw or "", change.namespace)
            except (ValueError, ValidationError) as e:
                logger.warning("Skipping unparseable metadata for %s: %s", change.namespace, e)
                return
        self.notifier.notify(change.namespace, metadata, source="watch")
