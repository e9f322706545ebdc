"""Co-purchase statistics over an exported order window.

Everything in this module is pure: no I/O, deterministic for a given input
ordering.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Any, Iterable, Sequence

from shared.constants import PROMPT_TOP_N
from upsell_service.domain import Order

ProductPair = tuple[str, str]


def canonical_pair(a: str, b: str) -> ProductPair:
    """Order-independent key for two product ids."""
    return (a, b) if a <= b else (b, a)


def pair_key(pair: ProductPair) -> str:
    return f"{pair[0]}-{pair[1]}"


@dataclass(frozen=True)
class ProductPurchase:
    """A product as seen in one customer's order."""

    id: str
    title: str
    type: str
    vendor: str
    quantity: int
    price: float


@dataclass
class OrderStatistics:
    """Aggregated statistics for one processing run."""

    orders_count: int = 0
    co_purchases: dict[ProductPair, int] = field(default_factory=dict)
    product_frequency: dict[str, int] = field(default_factory=dict)
    customer_purchases: dict[str, list[ProductPurchase]] = field(default_factory=dict)
    date_range: tuple[datetime | None, datetime | None] = (None, None)

    def co_purchase_counts(self) -> dict[str, int]:
        """Co-purchases keyed by their ``idA-idB`` string form."""
        return {pair_key(pair): count for pair, count in self.co_purchases.items()}


@dataclass
class OrderSummary:
    total_orders: int
    total_revenue: float
    unique_customers: int
    average_order_value: float
    top_products: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_orders": self.total_orders,
            "total_revenue": round(self.total_revenue, 2),
            "unique_customers": self.unique_customers,
            "average_order_value": round(self.average_order_value, 2),
            "top_products": self.top_products,
        }


def _distinct_product_ids(order: Order) -> list[str]:
    seen: dict[str, None] = {}
    for item in order.line_items:
        if item.product_id:
            seen.setdefault(item.product_id, None)
    return list(seen)


def aggregate_orders(orders: Sequence[Order]) -> OrderStatistics:
    """
    Build co-purchase, frequency and per-customer tables.

    Each unordered pair of distinct products counts once per order, however
    many lines or units of either product the order has. Line items without a
    product (deleted products) are ignored.
    """
    co_purchases: dict[ProductPair, int] = defaultdict(int)
    product_frequency: dict[str, int] = defaultdict(int)
    customer_purchases: dict[str, list[ProductPurchase]] = defaultdict(list)

    for order in orders:
        purchases = [
            ProductPurchase(
                id=item.product_id,
                title=item.product_title,
                type=item.product_type,
                vendor=item.vendor,
                quantity=item.quantity,
                price=item.unit_price,
            )
            for item in order.line_items
            if item.product_id
        ]

        if order.customer and order.customer.id:
            customer_purchases[order.customer.id].extend(purchases)

        for a, b in combinations(_distinct_product_ids(order), 2):
            co_purchases[canonical_pair(a, b)] += 1

        for purchase in purchases:
            product_frequency[purchase.id] += purchase.quantity

    timestamps = [o.created_at for o in orders if o.created_at is not None]
    date_range = (min(timestamps), max(timestamps)) if timestamps else (None, None)

    return OrderStatistics(
        orders_count=len(orders),
        co_purchases=dict(co_purchases),
        product_frequency=dict(product_frequency),
        customer_purchases=dict(customer_purchases),
        date_range=date_range,
    )


def top_co_purchases(stats: OrderStatistics, n: int = PROMPT_TOP_N) -> list[tuple[ProductPair, int]]:
    """Pairs sorted by count descending; ties keep first-seen order."""
    return sorted(stats.co_purchases.items(), key=lambda kv: kv[1], reverse=True)[:n]


def top_products(stats: OrderStatistics, n: int = PROMPT_TOP_N) -> list[tuple[str, int]]:
    return sorted(stats.product_frequency.items(), key=lambda kv: kv[1], reverse=True)[:n]


def summarize_orders(orders: Iterable[Order], top_n: int = PROMPT_TOP_N) -> OrderSummary:
    """Revenue and top-product summary for the analysed window."""
    orders = list(orders)
    total_revenue = sum(order.total_price for order in orders)
    customers = {order.customer.id for order in orders if order.customer and order.customer.id}

    quantities: dict[str, int] = defaultdict(int)
    titles: dict[str, str] = {}
    for order in orders:
        for item in order.line_items:
            if not item.product_id:
                continue
            quantities[item.product_id] += item.quantity
            titles.setdefault(item.product_id, item.product_title)

    ranked = sorted(quantities.items(), key=lambda kv: kv[1], reverse=True)[:top_n]

    return OrderSummary(
        total_orders=len(orders),
        total_revenue=total_revenue,
        unique_customers=len(customers),
        average_order_value=total_revenue / len(orders) if orders else 0.0,
        top_products=[
            {"product_id": pid, "product_title": titles.get(pid, ""), "quantity": qty}
            for pid, qty in ranked
        ],
    )
