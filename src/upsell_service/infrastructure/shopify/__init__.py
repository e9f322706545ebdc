"""Shopify Admin GraphQL access."""

from upsell_service.infrastructure.shopify.client import (
    ShopifyGraphQLClient,
    create_shopify_client,
)
from upsell_service.infrastructure.shopify.metaobjects import MetaobjectRepository

__all__ = ["MetaobjectRepository", "ShopifyGraphQLClient", "create_shopify_client"]
