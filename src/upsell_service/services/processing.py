"""Processing pipeline: fetch, aggregate, generate, store.

``run_due_check`` is the single entry point every trigger calls (beat tick,
orders/create webhook, cron webhook, API). It wraps ``process_now`` in the
period claim so a period is processed at most once.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.constants import DAYS_PER_MONTH
from upsell_service.config import Settings, get_settings, normalize_shop_domain
from upsell_service.exceptions import (
    ConfigurationError,
    StoreError,
    UpsellServiceError,
    UpstreamFetchError,
)
from upsell_service.infrastructure.llm.client import TextGenerationClient
from upsell_service.infrastructure.shopify.client import (
    ShopifyGraphQLClient,
    create_shopify_client,
)
from upsell_service.infrastructure.shopify.metaobjects import MetaobjectRepository
from upsell_service.services.config_store import ConfigStore, StoredConfig, ensure_definitions
from upsell_service.services.order_fetcher import OrderFetcher
from upsell_service.services.period_scheduler import (
    DueDecision,
    PeriodScheduler,
    ScheduleState,
)
from upsell_service.services.recommendation_generator import RecommendationGenerator
from upsell_service.services.result_store import RecommendationStore, build_recommendation_fields
from upsell_service.services.statistics import aggregate_orders, summarize_orders

logger = structlog.get_logger()

ClientFactory = Callable[[str], ShopifyGraphQLClient]

# Errors that end an attempt and mark its period failed
ATTEMPT_ERRORS = (UpstreamFetchError, StoreError, ConfigurationError)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=0)


def _failure(error: Exception) -> dict[str, Any]:
    return {"success": False, "error": str(error), "error_type": type(error).__name__}


class ProcessingService:
    """Runs the recommendation pipeline for one shop at a time."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
        generator: RecommendationGenerator | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.client_factory = client_factory or (
            lambda shop: create_shopify_client(shop, self.settings)
        )
        self._generator = generator
        self.scheduler = PeriodScheduler(
            session,
            processing_window_days=self.settings.processing_window_days,
            claim_lease_seconds=self.settings.claim_lease_seconds,
        )

    @property
    def generator(self) -> RecommendationGenerator:
        if self._generator is None:
            self._generator = RecommendationGenerator(
                TextGenerationClient.from_settings(self.settings),
                max_tokens=self.settings.openai_max_tokens,
                temperature=self.settings.openai_temperature,
                top_n=self.settings.prompt_top_n,
                threshold=self.settings.co_purchase_threshold,
            )
        return self._generator

    def _config_store(self, metaobjects: MetaobjectRepository) -> ConfigStore:
        return ConfigStore(
            metaobjects,
            StoredConfig(
                data_period=self.settings.default_data_period_months,
                schedule=self.settings.default_schedule_frequency,
            ),
        )

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run_pipeline(
        self,
        shop: str,
        client: ShopifyGraphQLClient,
        config: StoredConfig,
        period_months: int | None,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> dict[str, Any]:
        months = period_months or config.data_period
        end = _as_utc(end_date or _now())
        start = _as_utc(start_date or end - timedelta(days=months * DAYS_PER_MONTH))

        fetcher = OrderFetcher(
            client,
            page_size=self.settings.order_page_size,
            batch_delay_seconds=self.settings.order_batch_delay_seconds,
        )
        fetched = await fetcher.fetch_orders(start, end, max_batches=config.max_batches)

        if not fetched.orders:
            logger.info("No orders in window, nothing stored", shop=shop, months=months)
            return {
                "success": True,
                "message": "No orders found in the selected period",
                "processed_orders": 0,
                "recommendations": None,
                "store_result": None,
                "timestamp": _now().isoformat(),
                "has_more": False,
                "fallback_used": False,
                "summary": None,
            }

        stats = aggregate_orders(fetched.orders)
        summary = summarize_orders(fetched.orders, top_n=self.settings.prompt_top_n)
        logger.info(
            "Aggregated orders",
            shop=shop,
            orders=stats.orders_count,
            pairs=len(stats.co_purchases),
            products=len(stats.product_frequency),
        )

        recommendations = await self.generator.generate(stats, config.ai_provider)

        fields = build_recommendation_fields(
            recommendations,
            trending_products=summary.top_products,
            period_months=months,
            confidence_threshold=config.confidence_threshold,
        )
        store_result = await RecommendationStore(MetaobjectRepository(client)).upsert_shop_recommendation(
            shop, fields
        )

        return {
            "success": True,
            "processed_orders": stats.orders_count,
            "recommendations": recommendations.upsell_recommendations,
            "store_result": store_result.to_dict(),
            "timestamp": _now().isoformat(),
            "has_more": fetched.has_more,
            "fallback_used": recommendations.fallback_used,
            "summary": summary.to_dict(),
        }

    async def process_now(
        self,
        shop: str,
        period_months: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Run the pipeline immediately, outside the period claim.

        Returns a ``{"success": ...}`` mapping; pipeline errors are reported
        in it rather than raised.
        """
        shop = normalize_shop_domain(shop)
        try:
            async with self.client_factory(shop) as client:
                config = await self._config_store(MetaobjectRepository(client)).load(shop)
                return await self._run_pipeline(
                    shop, client, config, period_months, start_date, end_date
                )
        except UpsellServiceError as e:
            logger.error("Processing failed", shop=shop, error=str(e), error_type=type(e).__name__)
            return _failure(e)

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    async def run_due_check(
        self,
        shop: str,
        reference: datetime | None = None,
        trigger: str = "manual",
    ) -> dict[str, Any]:
        """Evaluate, claim, process and record the current period if it is due."""
        shop = normalize_shop_domain(shop)
        log = logger.bind(shop=shop, trigger=trigger)
        try:
            async with self.client_factory(shop) as client:
                config = await self._config_store(MetaobjectRepository(client)).load(shop)
                decision = await self.scheduler.evaluate(shop, reference, config.schedule)
                if not decision.due:
                    log.info("Processing not due", state=decision.state.value, reason=decision.message)
                    return {"success": True, "processed": False, "decision": decision.to_dict()}

                period = decision.period
                if not await self.scheduler.claim(period, trigger):
                    lost = DueDecision(
                        due=False,
                        state=ScheduleState.PROCESSING,
                        message=f"Period {period.label} was claimed by another trigger",
                        period=period,
                        next_processing_date=decision.next_processing_date,
                    )
                    return {"success": True, "processed": False, "decision": lost.to_dict()}

                log.info("Processing period", period=period.label)
                try:
                    result = await self._run_pipeline(shop, client, config, None, None, None)
                except ATTEMPT_ERRORS as e:
                    await self.scheduler.record_outcome(period, False, error_message=str(e))
                    raise
                except Exception as e:
                    log.exception("Unexpected pipeline error", period=period.label)
                    await self.scheduler.record_outcome(
                        period, False, error_message=f"{type(e).__name__}: {e}"
                    )
                    return _failure(e)

                record = await self.scheduler.record_outcome(
                    period, True, order_count=result["processed_orders"]
                )
                decision.state = ScheduleState.RECORDED
                decision.message = f"Period {period.label} processed"
                return {
                    "success": True,
                    "processed": True,
                    "decision": decision.to_dict(),
                    "period_status": record.status.value,
                    "result": result,
                }
        except UpsellServiceError as e:
            log.error("Due check failed", error=str(e), error_type=type(e).__name__)
            return _failure(e)

    async def schedule_status(self, shop: str, reference: datetime | None = None) -> dict[str, Any]:
        """Due evaluation without claiming or processing."""
        shop = normalize_shop_domain(shop)
        try:
            async with self.client_factory(shop) as client:
                config = await self._config_store(MetaobjectRepository(client)).load(shop)
        except UpsellServiceError as e:
            return _failure(e)

        decision = await self.scheduler.evaluate(shop, reference, config.schedule)
        return {"success": True, "shop": shop, "frequency": config.schedule, **decision.to_dict()}

    # -------------------------------------------------------------------------
    # Settings and definitions
    # -------------------------------------------------------------------------

    async def get_config(self, shop: str) -> StoredConfig:
        shop = normalize_shop_domain(shop)
        async with self.client_factory(shop) as client:
            return await self._config_store(MetaobjectRepository(client)).load(shop)

    async def update_config(self, shop: str, changes: dict[str, Any]) -> StoredConfig:
        """Merge ``changes`` into the stored settings and save them."""
        shop = normalize_shop_domain(shop)
        async with self.client_factory(shop) as client:
            store = self._config_store(MetaobjectRepository(client))
            current = await store.load(shop)
            merged = StoredConfig(**{**current.to_dict(), **changes})
            return await store.save(shop, merged)

    async def ensure_definitions(self, shop: str) -> dict[str, bool]:
        async with self.client_factory(normalize_shop_domain(shop)) as client:
            return await ensure_definitions(MetaobjectRepository(client))

    async def test_generation(self) -> dict[str, Any]:
        return await self.generator.test_generation()
