#!/usr/bin/env python3
"""CLI script to run the period due check, for system cron or ad hoc use."""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import orjson
import structlog

from scheduler_worker.tasks.due_checks import check_shops
from upsell_service.config import get_settings
from upsell_service.logging_config import configure_logging

logger = structlog.get_logger()


def main() -> None:
    parser = argparse.ArgumentParser(description="Process the current period for shops where it is due")
    parser.add_argument("shops", nargs="*", help="Shop domains (default: SCHEDULED_SHOPS)")
    parser.add_argument("--reference", type=datetime.fromisoformat, default=None, help="ISO reference date")
    parser.add_argument("--trigger", default="cli")
    args = parser.parse_args()

    configure_logging()
    shops = args.shops or get_settings().scheduled_shop_list
    if not shops:
        parser.error("no shops given and SCHEDULED_SHOPS is empty")

    results = asyncio.run(check_shops(shops, trigger=args.trigger, reference=args.reference))
    print(orjson.dumps(results, option=orjson.OPT_INDENT_2).decode())
    sys.exit(0 if all(r.get("success") for r in results.values()) else 1)


if __name__ == "__main__":
    main()
