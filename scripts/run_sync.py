#!/usr/bin/env python3
"""
Run one sales sync pass (and optionally retention cleanup) from cron.

Usage:
  python scripts/run_sync.py                 # sync every unsynced sale
  python scripts/run_sync.py --limit 100     # sync at most 100 sales
  python scripts/run_sync.py --cleanup       # also purge old refunded/failed sales

Exits non-zero when any sale failed to sync so cron mail picks it up.
"""

from __future__ import annotations

import argparse
import sys

from splitpay.core.config import settings
from splitpay.core.database import Base, SessionLocal, engine
from splitpay.core.logging import setup_logging
from splitpay.services.container import get_container

import splitpay.models  # noqa: F401


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync settled sales to merchant ledgers")
    parser.add_argument("--limit", type=int, default=None, help="max sales to sync")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help=f"delete refunded/failed sales older than {settings.sale_retention_days} days",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)

    container = get_container()
    db = SessionLocal()
    try:
        reconciliation = container.reconciliation(db)
        summary = reconciliation.sync_all(limit=args.limit)
        print(
            f"Sync: processed={summary.processed} synced={summary.synced} "
            f"failed={summary.failed} skipped={summary.skipped}"
        )
        if args.cleanup:
            deleted = reconciliation.cleanup()
            print(f"Cleanup: deleted={deleted}")
    finally:
        db.close()
        container.gateway.close()

    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
