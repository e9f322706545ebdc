"""Per-shop automation settings kept in the upsell_config_settings metaobject."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

import structlog

from shared.constants import (
    AI_PROVIDERS,
    DEFAULT_MAX_BATCHES,
    PERIOD_START_MONTHS,
    UPSELL_SETTINGS_TYPE,
)
from upsell_service.exceptions import ShopifyAPIError, StoreError
from upsell_service.infrastructure.shopify.metaobjects import (
    UPSELL_CONFIG_DEFINITION,
    UPSELL_SETTINGS_DEFINITION,
    MetaobjectRepository,
    fields_to_dict,
)

logger = structlog.get_logger()


def _in_range(key: str, value: float) -> bool:
    if key == "confidence_threshold":
        return 0 <= value <= 1
    return value > 0


@dataclass
class StoredConfig:
    data_period: int = 3
    schedule: str = "quarterly"
    ai_provider: str = "openai"
    confidence_threshold: float = 0.7
    max_batches: int = DEFAULT_MAX_BATCHES
    enable_notifications: bool = True
    last_updated: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_fields(cls, fields: dict[str, str], defaults: "StoredConfig | None" = None) -> "StoredConfig":
        """Parse metaobject string values; unusable values keep the default."""
        base = defaults or cls()
        values = asdict(base)

        for key, cast in (
            ("data_period", int),
            ("confidence_threshold", float),
            ("max_batches", int),
        ):
            raw = fields.get(key)
            if raw in (None, ""):
                continue
            try:
                value = cast(raw)
            except ValueError:
                logger.warning("Ignoring invalid stored setting", key=key, value=raw)
                continue
            if not _in_range(key, value):
                logger.warning("Ignoring out-of-range stored setting", key=key, value=raw)
                continue
            values[key] = value

        schedule = fields.get("schedule")
        if schedule in PERIOD_START_MONTHS:
            values["schedule"] = schedule
        elif schedule:
            logger.warning("Unsupported stored schedule, using default", schedule=schedule)

        provider = fields.get("ai_provider")
        if provider in AI_PROVIDERS:
            values["ai_provider"] = provider
        elif provider:
            logger.warning("Unsupported stored AI provider, using default", ai_provider=provider)

        if fields.get("enable_notifications") in ("true", "false"):
            values["enable_notifications"] = fields["enable_notifications"] == "true"
        if fields.get("last_updated"):
            values["last_updated"] = fields["last_updated"]

        return cls(**values)

    def to_fields(self) -> dict[str, Any]:
        return asdict(self)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def ensure_definitions(metaobjects: MetaobjectRepository) -> dict[str, bool]:
    """Create both metaobject definitions where missing.

    Returns a mapping of type to whether it was created.
    """
    try:
        return {
            definition["type"]: await metaobjects.ensure_definition(definition)
            for definition in (UPSELL_CONFIG_DEFINITION, UPSELL_SETTINGS_DEFINITION)
        }
    except ShopifyAPIError as e:
        raise StoreError(f"Could not create metaobject definitions: {e}") from e


class ConfigStore:
    """Load and save one settings record per shop."""

    def __init__(self, metaobjects: MetaobjectRepository, defaults: StoredConfig | None = None):
        self.metaobjects = metaobjects
        self.defaults = defaults or StoredConfig()

    async def load(self, shop: str) -> StoredConfig:
        """Current settings, creating the record with defaults on first use."""
        try:
            existing = await self.metaobjects.find_first(UPSELL_SETTINGS_TYPE)
            if existing:
                return StoredConfig.from_fields(fields_to_dict(existing), self.defaults)

            await self.metaobjects.ensure_definition(UPSELL_SETTINGS_DEFINITION)
            config = replace(self.defaults, last_updated=datetime.now(timezone.utc).isoformat())
            await self.metaobjects.create(UPSELL_SETTINGS_TYPE, config.to_fields())
        except ShopifyAPIError as e:
            raise StoreError(f"Could not load settings for {shop}: {e}") from e

        logger.info("Created default settings", shop=shop)
        return config

    async def save(self, shop: str, config: StoredConfig) -> StoredConfig:
        config = replace(config, last_updated=datetime.now(timezone.utc).isoformat())
        try:
            existing = await self.metaobjects.find_first(UPSELL_SETTINGS_TYPE)
            if existing:
                await self.metaobjects.update(existing["id"], config.to_fields())
            else:
                await self.metaobjects.ensure_definition(UPSELL_SETTINGS_DEFINITION)
                await self.metaobjects.create(UPSELL_SETTINGS_TYPE, config.to_fields())
        except ShopifyAPIError as e:
            raise StoreError(f"Could not save settings for {shop}: {e}") from e

        logger.info("Saved settings", shop=shop, schedule=config.schedule, ai_provider=config.ai_provider)
        return config
