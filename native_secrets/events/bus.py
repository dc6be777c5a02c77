"""
Event bus — best-effort Redis Streams publication of metadata changes.

Lets processes outside this service follow namespace changes without
watching the cluster. Disabled unless NATIVE_SECRETS_EVENT_BUS_ENABLED is set.

Streams:
  native-secrets:events:metadata  — full metadata document after every change

Envelope format:
  {
    "timestamp": "ISO 8601",
    "type": "<event_type>",
    "source": "<producing component>",
    "actor": "<user or system>",
    "namespace": "<logical namespace>",
    "payload": "<JSON string>"
  }

Usage:
    from native_secrets.events.bus import publish
    publish("metadata", "metadata.updated", doc, namespace="team-a", source="engine")
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from native_secrets.config import get_config

logger = logging.getLogger(__name__)

STREAM_PREFIX = "native-secrets:events:"

# Max stream length per stream (circular buffer)
MAXLEN = 10000

# Redis connection singleton
_redis_client = None


def _get_redis():
    """Get or create Redis connection. Returns None on failure."""
    global _redis_client
    if _redis_client is not None:
        try:
            _redis_client.ping()
            return _redis_client
        except Exception:
            _redis_client = None

    try:
        import redis

        _redis_client = redis.Redis.from_url(get_config().redis.url, decode_responses=True)
        _redis_client.ping()
        return _redis_client
    except Exception as e:
        logger.warning("Event bus: Redis connection failed: %s", e)
        _redis_client = None
        return None


def set_redis_client(client):
    """Override Redis client for testing."""
    global _redis_client
    _redis_client = client


def reset_client():
    """Reset the Redis client singleton."""
    global _redis_client
    _redis_client = None


def _stream_key(stream: str) -> str:
    return f"{STREAM_PREFIX}{stream}"


def _make_envelope(
    event_type: str,
    payload: dict,
    *,
    namespace: str,
    source: str = "unknown",
    actor: str = "system",
) -> dict[str, str]:
    """Create a standardized event envelope for Redis Streams."""
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "type": event_type,
        "source": source,
        "actor": actor,
        "namespace": namespace,
        "payload": json.dumps(payload),
    }


def publish(
    stream: str,
    event_type: str,
    payload: dict,
    *,
    namespace: str,
    source: str = "unknown",
    actor: str = "system",
) -> str | None:
    """Publish an event to a Redis Stream.

    Returns the stream message ID on success, None when disabled or on failure.
    Never raises: failures are logged and the caller carries on.
    """
    if not get_config().redis.event_bus_enabled:
        return None

    try:
        r = _get_redis()
        if r is None:
            return None
        envelope = _make_envelope(
            event_type, payload, namespace=namespace, source=source, actor=actor
        )
        msg_id: str | None = r.xadd(_stream_key(stream), envelope, maxlen=MAXLEN, approximate=True)
        return msg_id
    except Exception as e:
        logger.warning("Event bus publish failed: %s", e)
        return None
