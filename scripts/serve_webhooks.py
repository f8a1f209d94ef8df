#!/usr/bin/env python3
"""Serve the aggregator webhook and link-token endpoints.

Usage
-----
Set environment variables and run::

    export PLAID_CLIENT_ID="..."
    export PLAID_SECRET="..."
    export DATABASE_URL="sqlite+pysqlite:///budgetsync.db"
    python scripts/serve_webhooks.py --port 8080

Endpoints::

    POST /sync          aggregator webhook ({"webhook_code", "item_id"})
    POST /plaid-token   {"user": "..."} -> {"token": "..."}
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from aiohttp import web

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from budgetsync import BudgetClient, SyncConfig  # noqa: E402

_logger = logging.getLogger("serve_webhooks")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Serve budgetsync webhook endpoints.")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Port to bind (default: 8080)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = SyncConfig.from_env()
    async with BudgetClient(config) as client:
        runner = web.AppRunner(client.webhook_app())
        await runner.setup()
        site = web.TCPSite(runner, args.host, args.port)
        await site.start()
        _logger.info("Listening on http://%s:%d (%s)", args.host, args.port, config.api_base_url)
        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
