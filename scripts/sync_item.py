#!/usr/bin/env python3
"""Reconcile one aggregator item into the backing tables.

Usage
-----
::

    export PLAID_CLIENT_ID="..."
    export PLAID_SECRET="..."
    python scripts/sync_item.py ITEM_ID

    # First run for a newly linked item:
    python scripts/sync_item.py ITEM_ID --user USER_ID --access-token access-sandbox-...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from budgetsync import BudgetClient, BudgetSyncError, SyncConfig  # noqa: E402


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run one delta-feed reconciliation for an item.")
    parser.add_argument("item_id", help="Aggregator item id")
    parser.add_argument("--user", help="Owner to register the item under")
    parser.add_argument("--access-token", help="Access token to register with the item")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print the report as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if bool(args.user) != bool(args.access_token):
        parser.error("--user and --access-token must be given together")

    async with BudgetClient(SyncConfig.from_env()) as client:
        if args.user:
            client.register_item(args.item_id, args.user, args.access_token)
        try:
            report = await client.sync_item(args.item_id)
        except BudgetSyncError as exc:
            print(f"Sync failed: {exc}", file=sys.stderr)
            return 1

    if args.json_mode:
        print(json.dumps({**report.as_dict(), "cursor": report.cursor}, indent=2))
    else:
        print(
            f"item {report.item_id}: {report.pages} page(s), {report.accounts} account(s), "
            f"{report.upserts} upsert(s), {report.removed} removal(s)"
        )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
