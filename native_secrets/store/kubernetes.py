"""
Kubernetes-backed store.

Layout, all inside the secrets namespace (``native-secrets`` by default):
  Secret    <namespace>   — one data key per secret value
  ConfigMap <namespace>   — ``data.metadata`` holds the JSON metadata document

Every write is a compare-and-swap on ``metadata.resourceVersion``; the API
server answers 409 when the object moved on, which surfaces as ``Conflict``.
Every call carries ``_request_timeout``.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from native_secrets.config import KubernetesConfig
from native_secrets.exceptions import Conflict, StoreUnavailable
from native_secrets.metadata.models import NamespaceMetadata
from native_secrets.store.base import (
    MetadataChange,
    VersionedMetadata,
    VersionedValues,
    WatchEventType,
    parse_document,
)

logger = logging.getLogger(__name__)

METADATA_DATA_KEY = "metadata"


def load_core_api(cfg: KubernetesConfig) -> client.CoreV1Api:
    """In-cluster config when running in a pod, kubeconfig otherwise."""
    if cfg.in_cluster:
        config.load_incluster_config()
    else:
        config.load_kube_config()
    return client.CoreV1Api()


def _unavailable(exc: Exception, what: str, namespace: str | None = None) -> StoreUnavailable:
    return StoreUnavailable(f"{what} failed: {exc}", namespace=namespace)


class KubernetesStore:
    """ValueStore + MetadataStore over CoreV1Api."""

    def __init__(self, core_api: Any, cfg: KubernetesConfig) -> None:
        self.core = core_api
        self.cfg = cfg
        self.secrets_namespace = cfg.secrets_namespace

    @classmethod
    def from_config(cls, cfg: KubernetesConfig) -> KubernetesStore:
        return cls(load_core_api(cfg), cfg)

    @property
    def _timeout(self) -> float:
        return self.cfg.request_timeout

    def _call(self, what: str, namespace: str | None, fn: Callable[..., Any], *args, **kwargs):
        """Invoke the API, mapping 409 to Conflict and transport/5xx failures to StoreUnavailable.

        404 is re-raised as ApiException for the caller to interpret.
        """
        try:
            return fn(*args, _request_timeout=self._timeout, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise
            if e.status == 409:
                raise Conflict(f"{what}: {e.reason}", namespace=namespace) from e
            raise _unavailable(e, what, namespace) from e
        except urllib3.exceptions.HTTPError as e:
            raise _unavailable(e, what, namespace) from e

    # ── Values (Secret) ───────────────────────────────────────────────

    def read_values(self, namespace: str) -> VersionedValues:
        try:
            secret = self._call(
                "read secret", namespace,
                self.core.read_namespaced_secret, namespace, self.secrets_namespace,
            )
        except ApiException:
            return VersionedValues()

        values = {
            k: base64.b64decode(v) for k, v in (secret.data or {}).items()
        }
        return VersionedValues(values=values, version=secret.metadata.resource_version)

    def write_values(
        self, namespace: str, values: dict[str, bytes], expected_version: str | None
    ) -> str | None:
        if not values:
            self._delete_secret(namespace, expected_version)
            return None

        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=namespace, resource_version=expected_version),
            type="Opaque",
            data={k: base64.b64encode(v).decode("ascii") for k, v in values.items()},
        )
        try:
            if expected_version is None:
                result = self._call(
                    "create secret", namespace,
                    self.core.create_namespaced_secret, self.secrets_namespace, body,
                )
            else:
                result = self._call(
                    "replace secret", namespace,
                    self.core.replace_namespaced_secret, namespace, self.secrets_namespace, body,
                )
        except ApiException as e:
            raise Conflict("secret disappeared during update", namespace=namespace) from e
        return result.metadata.resource_version

    def _delete_secret(self, namespace: str, expected_version: str | None) -> None:
        if expected_version is None:
            return
        options = client.V1DeleteOptions(
            preconditions=client.V1Preconditions(resource_version=expected_version)
        )
        try:
            self._call(
                "delete secret", namespace,
                self.core.delete_namespaced_secret, namespace, self.secrets_namespace,
                body=options,
            )
        except ApiException:
            logger.debug("Secret %s already deleted", namespace)

    # ── Metadata (ConfigMap) ──────────────────────────────────────────

    def read_metadata(self, namespace: str) -> VersionedMetadata:
        try:
            cm = self._call(
                "read configmap", namespace,
                self.core.read_namespaced_config_map, namespace, self.secrets_namespace,
            )
        except ApiException:
            return VersionedMetadata(metadata=NamespaceMetadata.empty(namespace))

        raw = (cm.data or {}).get(METADATA_DATA_KEY)
        version = cm.metadata.resource_version
        if not raw:
            return VersionedMetadata(metadata=NamespaceMetadata.empty(namespace), version=version)
        return VersionedMetadata(
            metadata=parse_document(raw, namespace), version=version
        )

    def write_metadata(
        self, namespace: str, metadata: NamespaceMetadata, expected_version: str | None
    ) -> str:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=namespace, resource_version=expected_version),
            data={METADATA_DATA_KEY: metadata.to_json()},
        )
        try:
            if expected_version is None:
                result = self._call(
                    "create configmap", namespace,
                    self.core.create_namespaced_config_map, self.secrets_namespace, body,
                )
            else:
                result = self._call(
                    "replace configmap", namespace,
                    self.core.replace_namespaced_config_map, namespace, self.secrets_namespace, body,
                )
        except ApiException as e:
            raise Conflict("configmap disappeared during update", namespace=namespace) from e
        return result.metadata.resource_version

    # ── Discovery / watch ─────────────────────────────────────────────

    def list_namespaces(self) -> list[str]:
        """Cluster namespaces annotated ``<annotation_key>: "true"``."""
        try:
            response = self._call("list namespaces", None, self.core.list_namespace)
        except ApiException as e:
            raise _unavailable(e, "list namespaces") from e
        names = []
        for ns in response.items:
            annotations = ns.metadata.annotations or {}
            if annotations.get(self.cfg.annotation_key) == "true" and ns.metadata.name:
                names.append(ns.metadata.name)
        return names

    def watch_metadata(
        self,
        handler: Callable[[MetadataChange], None],
        *,
        timeout_seconds: int,
        should_stop: Callable[[], bool],
    ) -> None:
        w = watch.Watch()
        try:
            for event in w.stream(
                self.core.list_namespaced_config_map,
                self.secrets_namespace,
                timeout_seconds=timeout_seconds,
            ):
                if should_stop():
                    break
                if event["type"] == "ERROR":
                    # e.g. 410 Gone when the resource version expired; caller reconnects
                    raise StoreUnavailable(f"watch error: {event.get('raw_object')}")
                try:
                    change_type = WatchEventType(event["type"])
                except ValueError:
                    logger.debug("Ignoring watch event type %s", event["type"])
                    continue
                cm = event["object"]
                name = cm.metadata.name if cm.metadata else None
                if not name:
                    continue
                raw = (cm.data or {}).get(METADATA_DATA_KEY)
                if change_type != WatchEventType.DELETED and not raw:
                    continue
                handler(MetadataChange(change_type, name, raw))
        finally:
            w.stop()

    def ping(self) -> bool:
        try:
            self._call(
                "ping", None,
                self.core.list_namespaced_config_map, self.secrets_namespace, limit=1,
            )
            return True
        except Exception as e:
            logger.warning("Kubernetes store ping failed: %s", e)
            return False
