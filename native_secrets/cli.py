"""
native-secrets CLI — entry point for all operations.

Usage:
    native-secrets serve                  # Start the API server
    native-secrets namespaces             # List namespaces eligible for secrets
    native-secrets audit <namespace>      # Print a namespace's audit trail
    native-secrets version                # Show version
"""

from __future__ import annotations

import argparse
import json
import logging

from native_secrets.exceptions import NativeSecretsError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="native-secrets",
        description="native-secrets — owner-controlled secret sharing on Kubernetes.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: config)")

    # namespaces
    subparsers.add_parser("namespaces", help="List namespaces eligible for secrets")

    # audit
    audit_parser = subparsers.add_parser("audit", help="Print a namespace's audit trail")
    audit_parser.add_argument("namespace", help="Logical namespace")
    audit_parser.add_argument("--key", default=None, help="Only entries for this secret")
    audit_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from native_secrets import __version__

        print(f"native-secrets {__version__}")
        return 0

    if args.command == "serve":
        return _cmd_serve(args)
    elif args.command == "namespaces":
        return _cmd_namespaces()
    elif args.command == "audit":
        return _cmd_audit(args)

    parser.print_help()
    return 0


def _build_engine():
    from native_secrets.config import get_config
    from native_secrets.metadata.engine import MetadataEngine
    from native_secrets.store import create_store

    cfg = get_config()
    return MetadataEngine(create_store(cfg), max_retries=cfg.max_retries)


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from native_secrets.api.app import create_app
    from native_secrets.config import get_config

    cfg = get_config()
    host = args.host or cfg.host
    port = args.port or cfg.port

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    print(f"Starting native-secrets on {host}:{port} (store={cfg.store})...")
    uvicorn.run(create_app(cfg), host=host, port=port, log_config=None)
    return 0


def _cmd_namespaces() -> int:
    try:
        namespaces = _build_engine().list_namespaces()
    except NativeSecretsError as e:
        print(f"Error: {e.message}")
        return 1

    for name in namespaces:
        print(name)
    return 0


def _cmd_audit(args: argparse.Namespace) -> int:
    from native_secrets.metadata.audit import project, project_key

    try:
        metadata = _build_engine().get_metadata(args.namespace)
    except NativeSecretsError as e:
        print(f"Error: {e.message}")
        return 1

    entries = project_key(metadata, args.key) if args.key else project(metadata)

    if args.json:
        print(
            json.dumps(
                [e.model_dump(by_alias=True, mode="json", exclude_none=True) for e in entries],
                indent=2,
            )
        )
        return 0

    if not entries:
        print(f"No audit entries for {args.namespace}")
        return 0
    for entry in entries:
        line = f"{entry.timestamp}  {entry.action.value:<8} {entry.user}  {entry.key}"
        if entry.target_user:
            line += f" -> {entry.target_user}"
        print(line)
    return 0
