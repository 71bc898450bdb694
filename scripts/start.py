#!/usr/bin/env python3
"""
Production entrypoint for the property management API.

Runs the release phase (migrations + seed), optionally forks the emergency
escalation worker, then replaces itself with gunicorn serving app.wsgi:app.

Environment:
  PORT                          listen port (default 8080)
  WEB_CONCURRENCY               gunicorn workers (default 2)
  GUNICORN_TIMEOUT              worker timeout in seconds (default 120)
  RUN_ESCALATION_WORKER=1       also run scripts/process_escalations.py in the background
  ESCALATION_INTERVAL_SECONDS   worker interval (default 300)

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _env_int(name: str, default: int, *, low: int = 1, high: int = 65535) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = -1
    if not low <= value <= high:
        print(f"ERROR: Invalid {name} value '{raw}'. Must be integer {low}-{high}.", flush=True)
        sys.exit(1)
    return value


def _start_escalation_worker() -> None:
    interval = _env_int("ESCALATION_INTERVAL_SECONDS", 300, high=86400)
    cmd = [sys.executable, str(ROOT / "scripts" / "process_escalations.py"), "--interval", str(interval)]
    proc = subprocess.Popen(cmd, cwd=str(ROOT))
    print(f"Escalation worker started (pid={proc.pid}, interval={interval}s)", flush=True)


def gunicorn_argv(port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _env_int("PORT", 8080)
    workers = _env_int("WEB_CONCURRENCY", 2, high=64)
    timeout = _env_int("GUNICORN_TIMEOUT", 120, high=3600)

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    if (os.environ.get("RUN_ESCALATION_WORKER") or "").strip() == "1":
        _start_escalation_worker()

    argv = gunicorn_argv(port, workers, timeout)
    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    # exec so gunicorn receives signals directly
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
