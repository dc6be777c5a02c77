"""
native-secrets API — FastAPI app factory.

Routes:
  /api/namespaces                         eligible namespaces
  /api/namespaces/{ns}/secrets            list / create-update / delete values
  /api/namespaces/{ns}/share              direct share
  /api/namespaces/{ns}/access-request     request (POST) and respond (PUT)
  /api/namespaces/{ns}/reassign           ownership transfer
  /api/namespaces/{ns}/audit              derived audit trail
  /api/socket                             live metadata updates (WebSocket)
  /health                                 liveness + store reachability

Start:
  native-secrets serve
  # or
  uvicorn native_secrets.api.app:create_app --factory --port 3000
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from native_secrets import __version__
from native_secrets.api.middleware import CorrelationMiddleware, IdentityMiddleware
from native_secrets.api.routers import audit, live, namespaces, secrets, sharing
from native_secrets.config import Config, get_config
from native_secrets.events.notifier import ChangeNotifier
from native_secrets.events.watcher import MetadataWatcher
from native_secrets.exceptions import NativeSecretsError
from native_secrets.metadata.engine import MetadataEngine
from native_secrets.store import SecretStore, create_store

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    store: SecretStore | None = None,
    notifier: ChangeNotifier | None = None,
    engine: MetadataEngine | None = None,
) -> FastAPI:
    """Build the API app. Missing collaborators are created from ``config``."""
    cfg = config or get_config()
    notifier = notifier or ChangeNotifier()
    if engine is None:
        store = store or create_store(cfg)
        engine = MetadataEngine(store, notifier, max_retries=cfg.max_retries)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        watcher: MetadataWatcher | None = None
        task: asyncio.Task | None = None
        if cfg.kubernetes.watch_enabled:
            watcher = MetadataWatcher(
                engine.store,
                notifier,
                timeout_seconds=cfg.kubernetes.watch_timeout,
                retry_delay=cfg.kubernetes.watch_retry_delay,
            )
            task = asyncio.create_task(watcher.run())
        app.state.watcher = watcher
        logger.info("native-secrets %s ready (store=%s)", __version__, cfg.store)
        yield
        if watcher is not None and task is not None:
            watcher.stop()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="native-secrets", version=__version__, lifespan=lifespan)
    app.state.config = cfg
    app.state.engine = engine
    app.state.notifier = notifier
    app.state.watcher = None

    app.add_middleware(IdentityMiddleware, header=cfg.identity_header)
    app.add_middleware(CorrelationMiddleware)
    if cfg.cors_origin:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[cfg.cors_origin],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(NativeSecretsError)
    async def native_secrets_error(request: Request, exc: NativeSecretsError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "%s %s -> %d %s: %s (namespace=%s key=%s actor=%s correlation=%s)",
            request.method,
            request.url.path,
            exc.status_code,
            type(exc).__name__,
            exc.message,
            exc.namespace,
            exc.key,
            exc.actor or getattr(request.state, "user", None),
            getattr(request.state, "correlation_id", None),
        )
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning(
            "%s %s -> 400 InvalidInput: %s (actor=%s correlation=%s)",
            request.method,
            request.url.path,
            message,
            getattr(request.state, "user", None),
            getattr(request.state, "correlation_id", None),
        )
        return JSONResponse({"error": message}, status_code=400)

    @app.get("/health")
    async def health():
        reachable = await asyncio.to_thread(engine.store.ping)
        return {
            "status": "ok" if reachable else "degraded",
            "store": "ok" if reachable else "unreachable",
        }

    app.include_router(namespaces.router)
    app.include_router(secrets.router)
    app.include_router(sharing.router)
    app.include_router(audit.router)
    app.include_router(live.router)

    return app


def _validation_message(exc: RequestValidationError) -> str:
    """One-line summary of a rejected request: the offending field names, or the body itself."""
    fields: list[str] = []
    for error in exc.errors():
        loc = [part for part in error.get("loc", ()) if isinstance(part, str)]
        if len(loc) > 1 and loc[-1] not in fields:
            fields.append(loc[-1])
    if fields:
        return f"{', '.join(fields)} required"
    return "Request body must be a JSON object"
