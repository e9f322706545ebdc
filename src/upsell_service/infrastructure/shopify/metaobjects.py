"""Generic metaobject access: find by type, create, update, ensure definition.

Metaobjects are flat key/value records; every value is sent as a string.
"""

from typing import Any

import structlog

from shared.constants import UPSELL_CONFIG_TYPE, UPSELL_SETTINGS_TYPE
from upsell_service.exceptions import ShopifyAPIError
from upsell_service.infrastructure.shopify.client import ShopifyGraphQLClient

logger = structlog.get_logger()

FIND_METAOBJECT_QUERY = """
query findMetaobject($type: String!) {
  metaobjects(type: $type, first: 1) {
    edges {
      node {
        id
        handle
        type
        fields {
          key
          value
        }
      }
    }
  }
}
"""

CREATE_METAOBJECT_MUTATION = """
mutation createMetaobject($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject {
      id
      handle
      fields {
        key
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

UPDATE_METAOBJECT_MUTATION = """
mutation updateMetaobject($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject {
      id
      handle
      fields {
        key
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

FIND_DEFINITION_QUERY = """
query findMetaobjectDefinition($type: String!) {
  metaobjectDefinitionByType(type: $type) {
    id
    type
  }
}
"""

CREATE_DEFINITION_MUTATION = """
mutation createMetaobjectDefinition($definition: MetaobjectDefinitionCreateInput!) {
  metaobjectDefinitionCreate(definition: $definition) {
    metaobjectDefinition {
      id
      name
      type
    }
    userErrors {
      field
      message
    }
  }
}
"""

UPSELL_CONFIG_DEFINITION = {
    "name": "Upsell Configuration",
    "type": UPSELL_CONFIG_TYPE,
    "fieldDefinitions": [
        {"key": "upsell_json_data", "name": "Upsell Pairs JSON", "type": "multi_line_text_field"},
        {"key": "alternative_upsells", "name": "Alternative Upsells JSON", "type": "multi_line_text_field"},
        {"key": "trending_products", "name": "Trending Products JSON", "type": "multi_line_text_field"},
        {"key": "total_pairs_found", "name": "Total Pairs Found", "type": "number_integer"},
        {"key": "total_trending_products", "name": "Total Trending Products", "type": "number_integer"},
        {"key": "confidence_threshold", "name": "Confidence Threshold", "type": "number_decimal"},
        {"key": "analysis_date", "name": "Analysis Date", "type": "date_time"},
        {"key": "data_period", "name": "Data Period", "type": "single_line_text_field"},
        {"key": "data_period_months", "name": "Data Period (Months)", "type": "number_integer"},
        {"key": "fallback_used", "name": "Fallback Used", "type": "boolean"},
        {"key": "last_updated", "name": "Last Updated", "type": "date_time"},
    ],
}

UPSELL_SETTINGS_DEFINITION = {
    "name": "Upsell Configuration Settings",
    "type": UPSELL_SETTINGS_TYPE,
    "fieldDefinitions": [
        {"key": "data_period", "name": "Data Period (Months)", "type": "number_integer"},
        {"key": "schedule", "name": "Processing Schedule", "type": "single_line_text_field"},
        {"key": "ai_provider", "name": "AI Provider", "type": "single_line_text_field"},
        {"key": "confidence_threshold", "name": "Confidence Threshold", "type": "number_decimal"},
        {"key": "max_batches", "name": "Max Batches", "type": "number_integer"},
        {"key": "enable_notifications", "name": "Enable Notifications", "type": "boolean"},
        {"key": "last_updated", "name": "Last Updated", "type": "date_time"},
    ],
}


def fields_to_input(data: dict[str, Any]) -> list[dict[str, str]]:
    """Flatten a mapping into the ``[{key, value}]`` list the API expects."""
    return [{"key": key, "value": _to_value(value)} for key, value in data.items()]


def fields_to_dict(metaobject: dict[str, Any]) -> dict[str, str]:
    return {field["key"]: field["value"] for field in metaobject.get("fields") or []}


def _to_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _raise_on_user_errors(payload: dict[str, Any], operation: str) -> None:
    errors = payload.get("userErrors") or []
    if errors:
        messages = ", ".join(e.get("message", "") for e in errors)
        raise ShopifyAPIError(f"{operation} failed: {messages}", errors=errors)


class MetaobjectRepository:
    """Metaobject CRUD over a shop-bound GraphQL client."""

    def __init__(self, client: ShopifyGraphQLClient):
        self.client = client

    async def find_first(self, metaobject_type: str) -> dict[str, Any] | None:
        data = await self.client.execute(FIND_METAOBJECT_QUERY, {"type": metaobject_type})
        edges = (data.get("metaobjects") or {}).get("edges") or []
        if edges:
            return edges[0]["node"]
        return None

    async def create(self, metaobject_type: str, data: dict[str, Any]) -> dict[str, Any]:
        result = await self.client.execute(
            CREATE_METAOBJECT_MUTATION,
            {"metaobject": {"type": metaobject_type, "fields": fields_to_input(data)}},
        )
        payload = result.get("metaobjectCreate") or {}
        _raise_on_user_errors(payload, "metaobjectCreate")
        logger.info("Created metaobject", type=metaobject_type, shop=self.client.shop_domain)
        return payload.get("metaobject") or {}

    async def update(self, metaobject_id: str, data: dict[str, Any]) -> dict[str, Any]:
        result = await self.client.execute(
            UPDATE_METAOBJECT_MUTATION,
            {"id": metaobject_id, "metaobject": {"fields": fields_to_input(data)}},
        )
        payload = result.get("metaobjectUpdate") or {}
        _raise_on_user_errors(payload, "metaobjectUpdate")
        logger.info("Updated metaobject", id=metaobject_id, shop=self.client.shop_domain)
        return payload.get("metaobject") or {}

    async def ensure_definition(self, definition: dict[str, Any]) -> bool:
        """Create the definition if missing. Returns True when it was created."""
        data = await self.client.execute(FIND_DEFINITION_QUERY, {"type": definition["type"]})
        if data.get("metaobjectDefinitionByType"):
            return False

        result = await self.client.execute(CREATE_DEFINITION_MUTATION, {"definition": definition})
        payload = result.get("metaobjectDefinitionCreate") or {}
        _raise_on_user_errors(payload, "metaobjectDefinitionCreate")
        logger.info("Created metaobject definition", type=definition["type"], shop=self.client.shop_domain)
        return True
