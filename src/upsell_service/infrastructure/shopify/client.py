"""Async client for the Shopify Admin GraphQL API."""

from typing import Any

import httpx
import structlog

from upsell_service.config import Settings, get_settings, normalize_shop_domain
from upsell_service.exceptions import ConfigurationError, ShopifyAPIError

logger = structlog.get_logger()


class ShopifyGraphQLClient:
    """Thin GraphQL transport bound to a single shop.

    Single attempt per call; no retries. Failures surface as ``ShopifyAPIError``
    and callers decide which pipeline error they become.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2025-07",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.shop_domain = normalize_shop_domain(shop_domain)
        if not self.shop_domain:
            raise ConfigurationError("Shop domain is required")
        if not access_token:
            raise ConfigurationError(f"No access token configured for shop {self.shop_domain}")
        self.api_version = api_version
        self._headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a query or mutation and return its ``data`` object."""
        payload = {"query": query, "variables": variables or {}}
        try:
            response = await self._client.post(self.endpoint, headers=self._headers, json=payload)
        except httpx.HTTPError as e:
            raise ShopifyAPIError(f"Request to {self.shop_domain} failed: {e}") from e

        if response.status_code >= 400:
            raise ShopifyAPIError(
                f"Admin API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ShopifyAPIError("Admin API returned a non-JSON body") from e

        if body.get("errors"):
            logger.error("GraphQL errors", shop=self.shop_domain, errors=body["errors"])
            raise ShopifyAPIError("GraphQL query failed", errors=body["errors"])

        data = body.get("data")
        if data is None:
            raise ShopifyAPIError("GraphQL response has no data")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ShopifyGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def create_shopify_client(shop: str, settings: Settings | None = None) -> ShopifyGraphQLClient:
    """Build a client for ``shop`` from settings.

    A single offline access token is used for every configured shop.
    """
    settings = settings or get_settings()
    return ShopifyGraphQLClient(
        shop_domain=shop,
        access_token=settings.shopify_access_token,
        api_version=settings.shopify_api_version,
        timeout=settings.shopify_api_timeout,
    )
