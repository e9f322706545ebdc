"""Persists the latest recommendations into the shop's single upsell_config metaobject."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import orjson
import structlog

from shared.constants import UPSELL_CONFIG_TYPE
from upsell_service.exceptions import ShopifyAPIError, StoreError
from upsell_service.infrastructure.shopify.metaobjects import (
    UPSELL_CONFIG_DEFINITION,
    MetaobjectRepository,
)
from upsell_service.services.recommendation_generator import RecommendationSet

logger = structlog.get_logger()

PERIOD_LABELS = {1: "1_month", 3: "3_months", 6: "6_months", 12: "1_year"}


def data_period_label(months: int) -> str:
    return PERIOD_LABELS.get(months, f"{months}_months")


def _json(value: Any) -> str:
    return orjson.dumps(value).decode()


def build_recommendation_fields(
    recommendations: RecommendationSet,
    trending_products: list[dict[str, Any]],
    period_months: int,
    confidence_threshold: float,
    alternative_upsells: list[dict[str, Any]] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Flat field mapping for the upsell_config metaobject."""
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "upsell_json_data": _json(recommendations.upsell_recommendations),
        "alternative_upsells": _json(alternative_upsells or []),
        "trending_products": _json(trending_products),
        "total_pairs_found": len(recommendations.upsell_recommendations),
        "total_trending_products": len(trending_products),
        "confidence_threshold": confidence_threshold,
        "analysis_date": timestamp,
        "data_period": data_period_label(period_months),
        "data_period_months": period_months,
        "fallback_used": recommendations.fallback_used,
        "last_updated": timestamp,
    }


@dataclass
class StoreResult:
    success: bool
    action: str
    metaobject_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "action": self.action, "metaobject_id": self.metaobject_id}


class RecommendationStore:
    """Find-or-create upsert over one metaobject per shop."""

    def __init__(self, metaobjects: MetaobjectRepository):
        self.metaobjects = metaobjects

    async def upsert_shop_recommendation(self, shop: str, fields: dict[str, Any]) -> StoreResult:
        """
        Update the existing record in place, or create it when absent.

        Raises:
            StoreError: on transport failure or GraphQL user errors.
        """
        try:
            existing = await self.metaobjects.find_first(UPSELL_CONFIG_TYPE)
            if existing:
                updated = await self.metaobjects.update(existing["id"], fields)
                result = StoreResult(True, "updated", updated.get("id") or existing["id"])
            else:
                await self.metaobjects.ensure_definition(UPSELL_CONFIG_DEFINITION)
                created = await self.metaobjects.create(UPSELL_CONFIG_TYPE, fields)
                result = StoreResult(True, "created", created.get("id", ""))
        except ShopifyAPIError as e:
            logger.error("Storing recommendations failed", shop=shop, error=str(e))
            raise StoreError(f"Could not store recommendations for {shop}: {e}") from e

        logger.info(
            "Stored recommendations",
            shop=shop,
            action=result.action,
            metaobject_id=result.metaobject_id,
        )
        return result
