#!/usr/bin/env python3
"""
Container entry point: release phase, then gunicorn.

Environment:
  PORT               listen port (default 8080)
  WEB_CONCURRENCY    gunicorn worker count (default 2)
  GUNICORN_TIMEOUT   worker timeout in seconds (default 60)

Usage:
    python scripts/start.py [--skip-release]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080
WSGI_TARGET = "app.wsgi:app"


def resolve_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        return DEFAULT_PORT
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ValueError(f"port {port} out of range 1-65535")
    return port


def _positive_int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < 1:
        raise ValueError(f"{name} must be >= 1")
    return value


def gunicorn_argv(port: int, *, workers: int = 2, timeout: int = 60) -> list[str]:
    return [
        "gunicorn",
        WSGI_TARGET,
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    parser = argparse.ArgumentParser(description="Run migrations, then serve customer-manager with gunicorn.")
    parser.add_argument("--skip-release", action="store_true", help="Start gunicorn without migrating/seeding")
    args = parser.parse_args()

    try:
        port = resolve_port(os.environ.get("PORT"))
        workers = _positive_int_env("WEB_CONCURRENCY", 2)
        timeout = _positive_int_env("GUNICORN_TIMEOUT", 60)
    except ValueError as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)

    if not args.skip_release:
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    argv = gunicorn_argv(port, workers=workers, timeout=timeout)
    print(f"Serving {WSGI_TARGET} on :{port} ({workers} workers)", flush=True)
    # gunicorn takes over this PID so it receives container signals directly.
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
