"""
Emergency work-order escalation worker.

Runs one escalation pass and exits, or keeps running every --interval seconds.

Usage:
  python scripts/process_escalations.py
  python scripts/process_escalations.py --interval 300
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("pms.escalations")


def run_once(app) -> dict:
    from app.pms.db import session_scope
    from app.pms.modules.maintenance.escalation import process_emergency_escalations

    with session_scope(app) as s:
        result = process_emergency_escalations(s, app.config)
    logger.info("escalation pass: %s", result)
    return result


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Escalate unacknowledged emergency work orders.")
    parser.add_argument(
        "--interval",
        type=int,
        default=0,
        help="Seconds between passes; 0 runs a single pass (default).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from app.pms import create_app

    app = create_app()
    if args.interval <= 0:
        run_once(app)
        return 0

    logger.info("escalation worker started (interval=%ss)", args.interval)
    while True:
        try:
            run_once(app)
        except Exception:
            # keep the worker alive; the next pass retries
            logger.exception("escalation pass failed")
        time.sleep(args.interval)


if __name__ == "__main__":
    raise SystemExit(main())
