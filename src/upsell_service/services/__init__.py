"""Business logic services."""

from upsell_service.services.config_store import ConfigStore, StoredConfig
from upsell_service.services.order_fetcher import FetchResult, OrderFetcher
from upsell_service.services.period_scheduler import PeriodScheduler, ScheduleState
from upsell_service.services.processing import ProcessingService
from upsell_service.services.recommendation_generator import (
    RecommendationGenerator,
    RecommendationSet,
)
from upsell_service.services.result_store import RecommendationStore

__all__ = [
    "ConfigStore",
    "StoredConfig",
    "FetchResult",
    "OrderFetcher",
    "PeriodScheduler",
    "ScheduleState",
    "ProcessingService",
    "RecommendationGenerator",
    "RecommendationSet",
    "RecommendationStore",
]
