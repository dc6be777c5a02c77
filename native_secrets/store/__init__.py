"""Store backends for value buckets and metadata documents."""

from __future__ import annotations

from native_secrets.config import Config
from native_secrets.store.base import SecretStore
from native_secrets.store.memory import InMemoryStore


def create_store(cfg: Config) -> SecretStore:
    """Build the backend named by ``cfg.store``."""
    if cfg.store == "memory":
        return InMemoryStore()
    if cfg.store == "kubernetes":
        from native_secrets.store.kubernetes import KubernetesStore

        return KubernetesStore.from_config(cfg.kubernetes)
    raise ValueError(f"Unknown store backend: {cfg.store!r}")


__all__ = ["InMemoryStore", "SecretStore", "create_store"]
