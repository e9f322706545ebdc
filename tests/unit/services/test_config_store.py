"""Unit tests for per-shop settings."""

import pytest

from upsell_service.exceptions import StoreError
from upsell_service.infrastructure.shopify.metaobjects import MetaobjectRepository
from upsell_service.services.config_store import ConfigStore, StoredConfig, ensure_definitions

SHOP = "test-shop.myshopify.com"


class TestStoredConfig:
    def test_parses_metaobject_strings(self) -> None:
        config = StoredConfig.from_fields(
            {
                "data_period": "6",
                "schedule": "monthly",
                "ai_provider": "rules",
                "confidence_threshold": "0.5",
                "max_batches": "5",
                "enable_notifications": "false",
                "last_updated": "2026-10-01T00:00:00+00:00",
            }
        )

        assert config.data_period == 6
        assert config.schedule == "monthly"
        assert config.ai_provider == "rules"
        assert config.confidence_threshold == 0.5
        assert config.max_batches == 5
        assert config.enable_notifications is False

    def test_invalid_values_keep_defaults(self) -> None:
        config = StoredConfig.from_fields(
            {"data_period": "three", "schedule": "weekly", "ai_provider": "gemini", "max_batches": ""}
        )

        assert config.data_period == 3
        assert config.schedule == "quarterly"
        assert config.ai_provider == "openai"
        assert config.max_batches == 20

    @pytest.mark.parametrize(
        "fields",
        [
            {"max_batches": "0"},
            {"max_batches": "-3"},
            {"data_period": "0"},
            {"confidence_threshold": "1.5"},
        ],
    )
    def test_out_of_range_values_keep_defaults(self, fields: dict[str, str]) -> None:
        config = StoredConfig.from_fields(fields)

        assert config.max_batches == 20
        assert config.data_period == 3
        assert config.confidence_threshold == 0.7

    def test_fields_round_trip(self) -> None:
        config = StoredConfig(data_period=12, schedule="annual")
        assert StoredConfig.from_fields({k: str(v) for k, v in config.to_fields().items()}).data_period == 12


class TestConfigStore:
    @pytest.mark.asyncio
    async def test_first_load_creates_defaults(self, fake_shopify) -> None:
        store = ConfigStore(MetaobjectRepository(fake_shopify.client()))

        config = await store.load(SHOP)

        assert config.schedule == "quarterly"
        assert config.data_period == 3
        assert "upsell_config_settings" in fake_shopify.definitions
        assert fake_shopify.fields("upsell_config_settings")["enable_notifications"] == "true"

    @pytest.mark.asyncio
    async def test_load_existing(self, fake_shopify) -> None:
        store = ConfigStore(MetaobjectRepository(fake_shopify.client()))
        await store.save(SHOP, StoredConfig(schedule="monthly", ai_provider="rules"))

        config = await store.load(SHOP)

        assert config.schedule == "monthly"
        assert config.ai_provider == "rules"
        assert fake_shopify.count("createMetaobject") == 1

    @pytest.mark.asyncio
    async def test_save_updates_in_place(self, fake_shopify) -> None:
        store = ConfigStore(MetaobjectRepository(fake_shopify.client()))
        await store.load(SHOP)

        await store.save(SHOP, StoredConfig(data_period=6))

        assert fake_shopify.count("updateMetaobject") == 1
        assert fake_shopify.fields("upsell_config_settings")["data_period"] == "6"

    @pytest.mark.asyncio
    async def test_failure_raises_store_error(self, fake_shopify) -> None:
        fake_shopify.failing.add("findMetaobject")
        store = ConfigStore(MetaobjectRepository(fake_shopify.client()))

        with pytest.raises(StoreError):
            await store.load(SHOP)


@pytest.mark.asyncio
async def test_ensure_definitions(fake_shopify) -> None:
    repository = MetaobjectRepository(fake_shopify.client())

    first = await ensure_definitions(repository)
    second = await ensure_definitions(repository)

    assert first == {"upsell_config": True, "upsell_config_settings": True}
    assert second == {"upsell_config": False, "upsell_config_settings": False}
