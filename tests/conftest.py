"""Pytest configuration and fixtures."""

import re
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import orjson
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from upsell_service.api.v1.automation import get_processing_service
from upsell_service.config import Settings, get_settings
from upsell_service.infrastructure.database.models import SCHEMA, Base
from upsell_service.infrastructure.llm.client import TextGenerationClient
from upsell_service.infrastructure.shopify.client import ShopifyGraphQLClient
from upsell_service.main import create_app
from upsell_service.services.config_store import StoredConfig

SHOP = "test-shop.myshopify.com"


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        shopify_access_token="shpat_test",
        shopify_api_secret="",
        openai_api_key="",
        order_batch_delay_seconds=0,
        webhook_secret="cron-secret",
        postgres_host="localhost",
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
    )


@pytest.fixture
def app(test_settings: Settings) -> Any:
    """Create test application."""
    def get_test_settings() -> Settings:
        return test_settings

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with the service schema mapped away."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        execution_options={"schema_translate_map": {SCHEMA: None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


# =============================================================================
# Shopify Admin API fake
# =============================================================================


def order_node(
    order_id: int,
    product_ids: list[str],
    created_at: str = "2026-09-15T10:00:00Z",
    customer_id: str | None = "1001",
    quantity: int = 1,
    price: str = "10.00",
) -> dict[str, Any]:
    """GraphQL order node with one line per product id."""
    return {
        "id": f"gid://shopify/Order/{order_id}",
        "name": f"#{order_id}",
        "createdAt": created_at,
        "displayFinancialStatus": "PAID",
        "displayFulfillmentStatus": "FULFILLED",
        "totalPriceSet": {
            "shopMoney": {"amount": str(float(price) * quantity * len(product_ids)), "currencyCode": "USD"}
        },
        "customer": (
            {"id": f"gid://shopify/Customer/{customer_id}", "firstName": "Ada", "lastName": "L", "email": "a@x.io"}
            if customer_id
            else None
        ),
        "lineItems": {
            "edges": [
                {
                    "node": {
                        "id": f"gid://shopify/LineItem/{order_id}{i}",
                        "name": f"Product {pid}",
                        "quantity": quantity,
                        "sku": f"SKU-{pid}",
                        "variantTitle": "Default",
                        "originalUnitPriceSet": {"shopMoney": {"amount": price, "currencyCode": "USD"}},
                        "product": (
                            {
                                "id": f"gid://shopify/Product/{pid}",
                                "title": f"Product {pid}",
                                "handle": f"product-{pid}",
                                "productType": "Widget",
                                "vendor": "Acme",
                                "tags": ["tag"],
                            }
                            if pid
                            else None
                        ),
                        "variant": {"id": f"gid://shopify/ProductVariant/{pid}1", "title": "Default", "sku": "", "barcode": ""},
                    }
                }
                for i, pid in enumerate(product_ids)
            ]
        },
    }


class FakeShopify:
    """In-memory Admin GraphQL endpoint served through ``httpx.MockTransport``."""

    def __init__(self, orders: list[dict[str, Any]] | None = None):
        self.orders = orders or []
        self.metaobjects: dict[str, dict[str, Any]] = {}
        self.definitions: set[str] = set()
        self.operations: list[tuple[str, dict[str, Any]]] = []
        self.failing: set[str] = set()
        self.user_errors: dict[str, list[dict[str, Any]]] = {}
        self.drop_page_info = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = orjson.loads(request.content)
        operation = re.search(r"(?:query|mutation)\s+(\w+)", body["query"]).group(1)
        variables = body.get("variables") or {}
        self.operations.append((operation, variables))
        if operation in self.failing:
            return httpx.Response(500, json={"errors": [{"message": "boom"}]})
        return httpx.Response(200, json={"data": getattr(self, f"_{operation}")(variables)})

    def client(self, shop: str = SHOP) -> ShopifyGraphQLClient:
        transport = httpx.MockTransport(self.handler)
        return ShopifyGraphQLClient(shop, "shpat_test", http_client=httpx.AsyncClient(transport=transport))

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.operations if name == operation)

    def fields(self, metaobject_type: str) -> dict[str, str]:
        obj = self.metaobjects[metaobject_type]
        return {f["key"]: f["value"] for f in obj["fields"]}

    def _getOrdersForAutomation(self, variables: dict[str, Any]) -> dict[str, Any]:
        start = int(variables.get("after") or 0)
        page = self.orders[start : start + variables["first"]]
        end = start + len(page)
        return {
            "orders": {
                "edges": [{"node": node} for node in page],
                "pageInfo": (
                    None
                    if self.drop_page_info
                    else {"hasNextPage": end < len(self.orders), "endCursor": str(end)}
                ),
            }
        }

    def _findMetaobject(self, variables: dict[str, Any]) -> dict[str, Any]:
        obj = self.metaobjects.get(variables["type"])
        return {"metaobjects": {"edges": [{"node": obj}] if obj else []}}

    def _createMetaobject(self, variables: dict[str, Any]) -> dict[str, Any]:
        errors = self.user_errors.get("createMetaobject", [])
        if errors:
            return {"metaobjectCreate": {"metaobject": None, "userErrors": errors}}
        data = variables["metaobject"]
        obj = {
            "id": f"gid://shopify/Metaobject/{len(self.metaobjects) + 1}",
            "handle": data["type"],
            "type": data["type"],
            "fields": list(data["fields"]),
        }
        self.metaobjects[data["type"]] = obj
        return {"metaobjectCreate": {"metaobject": obj, "userErrors": []}}

    def _updateMetaobject(self, variables: dict[str, Any]) -> dict[str, Any]:
        obj = next(o for o in self.metaobjects.values() if o["id"] == variables["id"])
        merged = {f["key"]: f["value"] for f in obj["fields"]}
        merged.update({f["key"]: f["value"] for f in variables["metaobject"]["fields"]})
        obj["fields"] = [{"key": k, "value": v} for k, v in merged.items()]
        return {"metaobjectUpdate": {"metaobject": obj, "userErrors": []}}

    def _findMetaobjectDefinition(self, variables: dict[str, Any]) -> dict[str, Any]:
        found = variables["type"] in self.definitions
        return {"metaobjectDefinitionByType": {"id": "gid://shopify/MetaobjectDefinition/1", "type": variables["type"]} if found else None}

    def _createMetaobjectDefinition(self, variables: dict[str, Any]) -> dict[str, Any]:
        definition = variables["definition"]
        self.definitions.add(definition["type"])
        return {
            "metaobjectDefinitionCreate": {
                "metaobjectDefinition": {"id": "gid://shopify/MetaobjectDefinition/1", "name": definition["name"], "type": definition["type"]},
                "userErrors": [],
            }
        }


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def make_order() -> Callable[..., dict[str, Any]]:
    return order_node


# =============================================================================
# Text generation fake
# =============================================================================


def llm_client(content: str | None = None, status_code: int = 200) -> TextGenerationClient:
    """Generation client whose endpoint answers with ``content``."""
    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code, json={"error": {"message": "unavailable"}})
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})

    return TextGenerationClient(
        api_key="sk-test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def make_llm_client() -> Callable[..., TextGenerationClient]:
    return llm_client


# =============================================================================
# Processing service stub for endpoint tests
# =============================================================================


class StubProcessingService:
    """Records calls and returns canned results."""

    def __init__(self):
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.result: dict[str, Any] = {"success": True, "processed": False}
        self.config = StoredConfig()
        self.error: Exception | None = None

    async def process_now(self, shop: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("process_now", shop, kwargs))
        return self.result

    async def run_due_check(self, shop: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("run_due_check", shop, kwargs))
        return self.result

    async def schedule_status(self, shop: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("schedule_status", shop, kwargs))
        return self.result

    async def get_config(self, shop: str) -> StoredConfig:
        if self.error:
            raise self.error
        return self.config

    async def update_config(self, shop: str, changes: dict[str, Any]) -> StoredConfig:
        if self.error:
            raise self.error
        self.calls.append(("update_config", shop, changes))
        self.config = StoredConfig(**{**self.config.to_dict(), **changes})
        return self.config

    async def ensure_definitions(self, shop: str) -> dict[str, bool]:
        if self.error:
            raise self.error
        return {"upsell_config": True, "upsell_config_settings": False}

    async def test_generation(self) -> dict[str, Any]:
        return {"test_data": {}, "ai_results": {"upsell_recommendations": [], "fallback_used": True}}


@pytest.fixture
def stub_service(app: Any) -> StubProcessingService:
    stub = StubProcessingService()
    app.dependency_overrides[get_processing_service] = lambda: stub
    return stub
