"""Order data exported from the Admin API.

Orders are immutable once fetched; they are never created by this service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def strip_gid(value: str | None) -> str:
    """Turn ``gid://shopify/Product/123`` into ``123``."""
    if not value:
        return ""
    value = str(value)
    if value.startswith("gid://"):
        return value.rsplit("/", 1)[-1]
    return value


def parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _money(money_set: dict[str, Any] | None) -> tuple[float, str]:
    shop_money = (money_set or {}).get("shopMoney") or {}
    return float(shop_money.get("amount") or 0), shop_money.get("currencyCode") or ""


@dataclass(frozen=True)
class Customer:
    id: str
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class LineItem:
    """A single order line."""

    line_item_id: str
    product_id: str
    product_title: str = ""
    product_handle: str = ""
    product_type: str = ""
    vendor: str = ""
    tags: tuple[str, ...] = ()
    variant_id: str = ""
    variant_title: str = ""
    variant_sku: str = ""
    variant_barcode: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    currency: str = ""

    @classmethod
    def from_graphql(cls, node: dict[str, Any]) -> "LineItem":
        product = node.get("product") or {}
        variant = node.get("variant") or {}
        unit_price, currency = _money(node.get("originalUnitPriceSet"))
        return cls(
            line_item_id=strip_gid(node.get("id")),
            product_id=strip_gid(product.get("id")),
            product_title=product.get("title") or "",
            product_handle=product.get("handle") or "",
            product_type=product.get("productType") or "",
            vendor=product.get("vendor") or "",
            tags=tuple(product.get("tags") or ()),
            variant_id=strip_gid(variant.get("id")),
            variant_title=variant.get("title") or node.get("variantTitle") or "",
            variant_sku=variant.get("sku") or "",
            variant_barcode=variant.get("barcode") or "",
            quantity=int(node.get("quantity") or 0),
            unit_price=unit_price,
            currency=currency,
        )


@dataclass(frozen=True)
class Order:
    """An order with its ordered line items."""

    order_id: str
    order_name: str
    created_at: datetime | None
    financial_status: str = ""
    fulfillment_status: str = ""
    total_price: float = 0.0
    currency: str = ""
    customer: Customer | None = None
    line_items: tuple[LineItem, ...] = field(default_factory=tuple)

    @classmethod
    def from_graphql(cls, node: dict[str, Any]) -> "Order":
        total_price, currency = _money(node.get("totalPriceSet"))
        customer_node = node.get("customer")
        customer = None
        if customer_node and customer_node.get("id"):
            name = f"{customer_node.get('firstName') or ''} {customer_node.get('lastName') or ''}"
            customer = Customer(
                id=strip_gid(customer_node["id"]),
                name=name.strip(),
                email=customer_node.get("email") or "",
            )
        edges = (node.get("lineItems") or {}).get("edges") or []
        return cls(
            order_id=strip_gid(node.get("id")),
            order_name=node.get("name") or "",
            created_at=parse_datetime(node.get("createdAt")),
            financial_status=node.get("displayFinancialStatus") or "",
            fulfillment_status=node.get("displayFulfillmentStatus") or "",
            total_price=total_price,
            currency=currency,
            customer=customer,
            line_items=tuple(LineItem.from_graphql(edge["node"]) for edge in edges),
        )
