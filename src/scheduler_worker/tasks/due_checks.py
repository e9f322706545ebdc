"""Periodic due-check tasks."""

import asyncio
from datetime import datetime
from typing import Any

import structlog
from celery import shared_task

from upsell_service.config import get_settings
from upsell_service.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
)
from upsell_service.services.processing import ProcessingService

logger = structlog.get_logger()


async def check_shops(
    shops: list[str],
    trigger: str,
    reference: datetime | None = None,
) -> dict[str, Any]:
    """Run the due check for each shop in turn on a task-local engine."""
    engine = get_async_engine()
    session_factory = get_async_session_factory(engine)
    results: dict[str, Any] = {}
    try:
        for shop in shops:
            async with session_factory() as session:
                service = ProcessingService(session)
                results[shop] = await service.run_due_check(shop, reference=reference, trigger=trigger)
    finally:
        await engine.dispose()
    return results


def _summarize(results: dict[str, Any]) -> dict[str, int]:
    return {
        "shops_checked": len(results),
        "shops_processed": sum(1 for r in results.values() if r.get("processed")),
        "errors": sum(1 for r in results.values() if not r.get("success")),
    }


@shared_task(bind=True, max_retries=0)
def run_due_checks(self) -> dict:
    """
    Run the due check for every configured shop.

    Scheduled hourly by beat. Shops whose period is not due, already
    recorded or claimed elsewhere are skipped by the check itself.

    Returns:
        dict: Counts plus the per-shop results
    """
    shops = get_settings().scheduled_shop_list
    if not shops:
        logger.info("No scheduled shops configured")
        return {"shops_checked": 0, "shops_processed": 0, "errors": 0, "results": {}}

    logger.info("Running due checks", shops=len(shops))
    results = asyncio.run(check_shops(shops, trigger="beat"))
    summary = _summarize(results)
    logger.info("Due checks finished", **summary)
    return {**summary, "results": results}


@shared_task(bind=True, max_retries=0)
def run_due_check_for_shop(self, shop: str, reference: str | None = None, trigger: str = "task") -> dict:
    """
    Run the due check for one shop.

    Args:
        shop: Shop domain
        reference: Optional ISO reference date
        trigger: Label stored on the period record
    """
    reference_date = datetime.fromisoformat(reference) if reference else None
    results = asyncio.run(check_shops([shop], trigger=trigger, reference=reference_date))
    return results[shop]
