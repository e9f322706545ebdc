"""Unit tests for the paginated order export."""

from datetime import datetime, timezone

import pytest

from upsell_service.exceptions import UpstreamFetchError
from upsell_service.services.order_fetcher import OrderFetcher, build_search_query

START = datetime(2026, 7, 1, tzinfo=timezone.utc)
END = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.fixture
def shopify_510(fake_shopify, make_order):
    fake_shopify.orders = [make_order(i, ["A", "B"]) for i in range(510)]
    return fake_shopify


def test_search_query_bounds() -> None:
    assert build_search_query(START, END) == (
        "created_at:>=2026-07-01T00:00:00+00:00 created_at:<=2026-10-01T00:00:00+00:00"
    )


@pytest.mark.asyncio
async def test_fetches_all_pages(shopify_510) -> None:
    fetcher = OrderFetcher(shopify_510.client(), batch_delay_seconds=0)

    result = await fetcher.fetch_orders(START, END, max_batches=20)

    assert len(result.orders) == 510
    assert result.has_more is False
    assert result.batches == 3
    assert shopify_510.count("getOrdersForAutomation") == 3


@pytest.mark.asyncio
async def test_batch_cap_reports_truncation(shopify_510) -> None:
    fetcher = OrderFetcher(shopify_510.client(), batch_delay_seconds=0)

    result = await fetcher.fetch_orders(START, END, max_batches=2)

    assert len(result.orders) == 500
    assert result.has_more is True
    assert result.batches == 2


@pytest.mark.asyncio
async def test_cursor_and_query_are_sent(shopify_510) -> None:
    fetcher = OrderFetcher(shopify_510.client(), batch_delay_seconds=0)
    await fetcher.fetch_orders(START, END)

    variables = [v for name, v in shopify_510.operations if name == "getOrdersForAutomation"]
    assert "after" not in variables[0]
    assert variables[1]["after"] == "250"
    assert all(v["query"] == build_search_query(START, END) for v in variables)
    assert all(v["first"] == 250 for v in variables)


@pytest.mark.asyncio
async def test_orders_are_normalised(fake_shopify, make_order) -> None:
    fake_shopify.orders = [make_order(7, ["111", "222"])]
    result = await OrderFetcher(fake_shopify.client()).fetch_orders(START, END)

    order = result.orders[0]
    assert order.order_id == "7"
    assert [item.product_id for item in order.line_items] == ["111", "222"]
    assert order.customer.id == "1001"


@pytest.mark.asyncio
async def test_page_failure_raises(fake_shopify) -> None:
    fake_shopify.failing.add("getOrdersForAutomation")
    fetcher = OrderFetcher(fake_shopify.client(), batch_delay_seconds=0)

    with pytest.raises(UpstreamFetchError):
        await fetcher.fetch_orders(START, END)


@pytest.mark.asyncio
async def test_empty_window(fake_shopify) -> None:
    result = await OrderFetcher(fake_shopify.client()).fetch_orders(START, END)

    assert result.orders == []
    assert result.has_more is False
    assert result.batches == 1


@pytest.mark.asyncio
async def test_missing_page_info_raises(fake_shopify, make_order) -> None:
    fake_shopify.orders = [make_order(1, ["111"])]
    fake_shopify.drop_page_info = True

    with pytest.raises(UpstreamFetchError):
        await OrderFetcher(fake_shopify.client()).fetch_orders(START, END)
