"""
Late fee job: one pass over every active lease for the current rent month.

Meant for a daily cron entry after the usual grace period.

Usage:
  python scripts/apply_late_fees.py
  python scripts/apply_late_fees.py --dry-run
  python scripts/apply_late_fees.py --property-id 12
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("pms.late_fees")


def run_once(app, *, property_id: int | None = None, dry_run: bool = False) -> dict:
    from app.pms.db import session_scope
    from app.pms.modules.payments.late_fees import check_and_apply_late_fees

    with session_scope(app) as s:
        result = check_and_apply_late_fees(s, app.config, property_id=property_id, dry_run=dry_run)
    logger.info("late fee pass: checked=%s applied=%s", result["checked_count"], result["applied_count"])
    return result


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply late fees to leases with unpaid rent past the grace period.")
    parser.add_argument("--dry-run", action="store_true", help="Report the fees without applying them.")
    parser.add_argument("--property-id", type=int, default=None, help="Only check leases on this property.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from app.pms import create_app

    run_once(create_app(), property_id=args.property_id, dry_run=args.dry_run)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
