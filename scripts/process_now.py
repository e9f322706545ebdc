#!/usr/bin/env python3
"""CLI script to run the recommendation pipeline for a shop immediately."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import orjson
import structlog

from upsell_service.infrastructure.database.connection import dispose_engine, get_db_session
from upsell_service.logging_config import configure_logging
from upsell_service.services.processing import ProcessingService

logger = structlog.get_logger()


async def run(shop: str, months: int | None) -> dict:
    try:
        async with get_db_session() as session:
            return await ProcessingService(session).process_now(shop, period_months=months)
    finally:
        await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate upsell recommendations for a shop now")
    parser.add_argument("shop", help="Shop domain, e.g. my-store.myshopify.com")
    parser.add_argument("--months", type=int, default=None, help="Months of order history (default: stored setting)")
    args = parser.parse_args()

    configure_logging()
    logger.info("Starting manual processing", shop=args.shop, months=args.months)
    result = asyncio.run(run(args.shop, args.months))
    print(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())
    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
