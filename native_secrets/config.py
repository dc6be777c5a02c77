"""
Centralized configuration for native-secrets.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from native_secrets.config import get_config
    cfg = get_config()
    print(cfg.kubernetes.secrets_namespace)   # "native-secrets"
    print(cfg.port)                           # 3000
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

ANNOTATION_KEY = "secrets.oleksiyp.dev/native-secrets"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class KubernetesConfig:
    """Where the metadata ConfigMaps and value Secrets live."""

    secrets_namespace: str = "native-secrets"
    annotation_key: str = ANNOTATION_KEY
    in_cluster: bool = False
    request_timeout: float = 10.0  # seconds, applied to every API call

    # Watch loop
    watch_enabled: bool = False
    watch_timeout: int = 300
    watch_retry_delay: float = 5.0


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection used by the event bus."""

    url: str = "redis://localhost:6379/0"
    event_bus_enabled: bool = False


@dataclass(frozen=True)
class Config:
    """Top-level native-secrets configuration."""

    host: str = "127.0.0.1"
    port: int = 3000

    # "kubernetes" or "memory"
    store: str = "kubernetes"
    max_retries: int = 5

    # Header set by the authenticating proxy in front of the service
    identity_header: str = "X-Auth-Request-Email"
    cors_origin: str = ""
    log_level: str = "INFO"

    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    in_cluster = bool(os.environ.get("KUBERNETES_SERVICE_HOST"))

    kube = KubernetesConfig(
        secrets_namespace=os.environ.get(
            "NATIVE_SECRETS_SECRETS_NAMESPACE",
            os.environ.get("SECRETS_NAMESPACE", "native-secrets"),
        ),
        annotation_key=os.environ.get("NATIVE_SECRETS_NAMESPACE_ANNOTATION", ANNOTATION_KEY),
        in_cluster=in_cluster,
        request_timeout=float(os.environ.get("NATIVE_SECRETS_REQUEST_TIMEOUT", "10")),
        watch_enabled=_env_bool("NATIVE_SECRETS_WATCH_ENABLED", in_cluster),
        watch_timeout=int(os.environ.get("NATIVE_SECRETS_WATCH_TIMEOUT", "300")),
        watch_retry_delay=float(os.environ.get("NATIVE_SECRETS_WATCH_RETRY_DELAY", "5")),
    )

    redis_cfg = RedisConfig(
        url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        event_bus_enabled=_env_bool("NATIVE_SECRETS_EVENT_BUS_ENABLED", False),
    )

    return Config(
        host=os.environ.get("NATIVE_SECRETS_HOST", "127.0.0.1"),
        port=int(os.environ.get("NATIVE_SECRETS_PORT", os.environ.get("PORT", "3000"))),
        store=os.environ.get("NATIVE_SECRETS_STORE", "kubernetes"),
        max_retries=int(os.environ.get("NATIVE_SECRETS_MAX_RETRIES", "5")),
        identity_header=os.environ.get("NATIVE_SECRETS_IDENTITY_HEADER", "X-Auth-Request-Email"),
        cors_origin=os.environ.get("NATIVE_SECRETS_CORS_ORIGIN", ""),
        log_level=os.environ.get("NATIVE_SECRETS_LOG_LEVEL", "INFO"),
        kubernetes=kube,
        redis=redis_cfg,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
