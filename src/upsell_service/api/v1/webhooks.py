"""Inbound triggers: Shopify orders/create webhook and external cron calls.

Both only ever run the due check, so repeated or concurrent deliveries are
harmless: the period claim lets at most one of them process.
"""

import base64
import hashlib
import hmac
from typing import Annotated, Any

import orjson
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from upsell_service.api.v1.automation import get_processing_service
from upsell_service.config import Settings, get_settings, normalize_shop_domain
from upsell_service.domain import parse_datetime
from upsell_service.services.processing import ProcessingService

logger = structlog.get_logger()

router = APIRouter()


def verify_shopify_hmac(body: bytes, received: str | None, secret: str) -> bool:
    """Check ``X-Shopify-Hmac-Sha256``: base64 HMAC-SHA256 of the raw body."""
    if not received:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, received)


def _parse_body(body: bytes) -> dict[str, Any]:
    if not body:
        return {}
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    return payload if isinstance(payload, dict) else {}


@router.post("/orders/create")
async def orders_create(
    request: Request,
    service: Annotated[ProcessingService, Depends(get_processing_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    x_shopify_shop_domain: Annotated[str | None, Header()] = None,
    x_shopify_hmac_sha256: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Use each new order as a scheduling tick for its shop."""
    body = await request.body()

    if settings.shopify_api_secret:
        if not verify_shopify_hmac(body, x_shopify_hmac_sha256, settings.shopify_api_secret):
            logger.warning("Rejected webhook with invalid HMAC", shop=x_shopify_shop_domain)
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    else:
        logger.warning("SHOPIFY_API_SECRET not set, webhook signature not verified")

    payload = _parse_body(body)
    shop = normalize_shop_domain(x_shopify_shop_domain or payload.get("shop_domain") or "")
    if not shop:
        raise HTTPException(status_code=400, detail="Shop domain required")

    created_at = payload.get("created_at")
    try:
        reference = parse_datetime(created_at) if isinstance(created_at, str) else None
    except ValueError:
        reference = None

    logger.info("Order webhook received", shop=shop, order_id=payload.get("id"))
    return await service.run_due_check(shop, reference=reference, trigger="webhook:orders/create")


@router.post("/cron/trigger")
async def cron_trigger(
    request: Request,
    service: Annotated[ProcessingService, Depends(get_processing_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
    x_shopify_shop_domain: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """External scheduler entry point, authenticated with the shared webhook secret."""
    expected = f"Bearer {settings.webhook_secret}"
    if not settings.webhook_secret or not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Unauthorized cron trigger")
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = _parse_body(await request.body())
    shop = normalize_shop_domain(payload.get("shop") or x_shopify_shop_domain or "")
    if not shop:
        raise HTTPException(status_code=400, detail="Shop domain required")

    logger.info("Cron trigger received", shop=shop)
    result = await service.run_due_check(shop, trigger="webhook:cron")
    return {"shop": shop, **result}
