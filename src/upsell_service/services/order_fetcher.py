"""Paginated order export from the Admin GraphQL API."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from shared.constants import (
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_MAX_BATCHES,
    LINE_ITEMS_PER_ORDER,
    ORDER_PAGE_SIZE,
)
from upsell_service.domain import Order
from upsell_service.exceptions import ShopifyAPIError, UpstreamFetchError
from upsell_service.infrastructure.shopify.client import ShopifyGraphQLClient

logger = structlog.get_logger()

ORDERS_QUERY = f"""
query getOrdersForAutomation($query: String!, $first: Int!, $after: String) {{
  orders(query: $query, first: $first, after: $after) {{
    edges {{
      node {{
        id
        name
        createdAt
        displayFinancialStatus
        displayFulfillmentStatus
        totalPriceSet {{ shopMoney {{ amount currencyCode }} }}
        customer {{ id firstName lastName email }}
        lineItems(first: {LINE_ITEMS_PER_ORDER}) {{
          edges {{
            node {{
              id
              name
              quantity
              sku
              variantTitle
              originalUnitPriceSet {{ shopMoney {{ amount currencyCode }} }}
              product {{ id title handle productType vendor tags }}
              variant {{ id title sku barcode }}
            }}
          }}
        }}
      }}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""


@dataclass
class FetchResult:
    """Orders in the window plus whether the batch cap cut the export short."""

    orders: list[Order] = field(default_factory=list)
    has_more: bool = False
    batches: int = 0


def build_search_query(start_date: datetime, end_date: datetime) -> str:
    return f"created_at:>={start_date.isoformat()} created_at:<={end_date.isoformat()}"


class OrderFetcher:
    """Cursor-paginated order export with a hard batch cap."""

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        page_size: int = ORDER_PAGE_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
    ):
        self.client = client
        self.page_size = page_size
        self.batch_delay_seconds = batch_delay_seconds

    async def fetch_orders(
        self,
        start_date: datetime,
        end_date: datetime,
        max_batches: int = DEFAULT_MAX_BATCHES,
    ) -> FetchResult:
        """
        Fetch every order created within ``[start_date, end_date]``.

        Stops when the API reports no further page or after ``max_batches``
        pages. Truncation is not an error; it is reported via ``has_more``.

        Raises:
            UpstreamFetchError: if any page request fails.
        """
        result = FetchResult()
        cursor: str | None = None
        has_next_page = True
        query = build_search_query(start_date, end_date)

        logger.info(
            "Exporting orders",
            shop=self.client.shop_domain,
            start=start_date.isoformat(),
            end=end_date.isoformat(),
            max_batches=max_batches,
        )

        while has_next_page and result.batches < max_batches:
            variables = {"query": query, "first": self.page_size}
            if cursor:
                variables["after"] = cursor

            try:
                data = await self.client.execute(ORDERS_QUERY, variables)
                connection = data["orders"]
                edges = connection["edges"]
                page_info = connection["pageInfo"]
                next_page = bool(page_info["hasNextPage"])
                next_cursor = page_info.get("endCursor")
                orders = [Order.from_graphql(edge["node"]) for edge in edges]
            except ShopifyAPIError as e:
                raise UpstreamFetchError(f"Order page {result.batches + 1} failed: {e}") from e
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamFetchError(
                    f"Order page {result.batches + 1} has an unexpected shape: {e}"
                ) from e

            result.orders.extend(orders)
            result.batches += 1
            has_next_page = next_page
            cursor = next_cursor

            logger.debug(
                "Order batch fetched",
                batch=result.batches,
                batch_size=len(orders),
                total=len(result.orders),
            )

            if has_next_page and result.batches < max_batches:
                await asyncio.sleep(self.batch_delay_seconds)

        result.has_more = has_next_page
        if result.has_more:
            logger.warning(
                "Order export truncated by batch cap",
                shop=self.client.shop_domain,
                batches=result.batches,
                orders=len(result.orders),
            )
        else:
            logger.info("Order export completed", orders=len(result.orders), batches=result.batches)
        return result
