"""
Error taxonomy shared by the engine, the stores and the API.

Every error carries a stable HTTP status and optional context
(namespace, key, actor) so a failed operation can be reconstructed
from the server log.
"""

from __future__ import annotations


class NativeSecretsError(Exception):
    """Base class for all native-secrets errors."""

    status_code = 500
    retriable = False

    def __init__(
        self,
        message: str,
        *,
        namespace: str | None = None,
        key: str | None = None,
        actor: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.namespace = namespace
        self.key = key
        self.actor = actor

    @property
    def context(self) -> dict[str, str | None]:
        return {"namespace": self.namespace, "key": self.key, "actor": self.actor}


class Unauthorized(NativeSecretsError):
    """No caller identity, or an invalid one."""

    status_code = 401


class Forbidden(NativeSecretsError):
    """Caller is authenticated but lacks the specific permission."""

    status_code = 403


class NotFound(NativeSecretsError):
    """Secret, pending request or namespace document is absent."""

    status_code = 404


class InvalidInput(NativeSecretsError):
    status_code = 400


class Conflict(NativeSecretsError):
    """A concurrent writer changed the document between read and write."""

    status_code = 409
    retriable = True


class StoreUnavailable(NativeSecretsError):
    """The backing store failed or timed out."""

    status_code = 503
    retriable = True
