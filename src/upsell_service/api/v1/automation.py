"""Automation endpoints: manual processing, due checks, schedule and settings."""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from upsell_service.exceptions import ConfigurationError, StoreError
from upsell_service.infrastructure.database.connection import get_session
from upsell_service.services.processing import ProcessingService

router = APIRouter()

Frequency = Literal["monthly", "quarterly", "semiannual", "annual", "manual"]
Provider = Literal["openai", "claude", "custom", "rules"]


# =============================================================================
# Models
# =============================================================================


class ProcessRequest(BaseModel):
    """Request model for an immediate processing run."""

    shop: str = Field(..., min_length=1, description="Shop domain, e.g. my-store.myshopify.com")
    period_months: int | None = Field(
        None, ge=1, le=24, description="Months of order history to analyse (defaults to stored setting)"
    )
    start_date: datetime | None = Field(None, description="Explicit window start")
    end_date: datetime | None = Field(None, description="Explicit window end")


class DueCheckRequest(BaseModel):
    """Request model for a due check."""

    shop: str = Field(..., min_length=1)
    reference: datetime | None = Field(None, description="Reference date, defaults to now")
    trigger: str = Field("manual", max_length=100)


class ConfigUpdateRequest(BaseModel):
    """Partial settings update; omitted fields keep their stored value."""

    data_period: int | None = Field(None, ge=1, le=24)
    schedule: Frequency | None = None
    ai_provider: Provider | None = None
    confidence_threshold: float | None = Field(None, ge=0.0, le=1.0)
    max_batches: int | None = Field(None, ge=1, le=100)
    enable_notifications: bool | None = None


class ConfigResponse(BaseModel):
    data_period: int
    schedule: str
    ai_provider: str
    confidence_threshold: float
    max_batches: int
    enable_notifications: bool
    last_updated: str


# =============================================================================
# Dependencies
# =============================================================================


async def get_processing_service(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ProcessingService:
    return ProcessingService(session)


Service = Annotated[ProcessingService, Depends(get_processing_service)]


def _raise_for_failure(result: dict[str, Any]) -> dict[str, Any]:
    if not result.get("success") and result.get("error_type") == "ConfigurationError":
        raise HTTPException(status_code=400, detail=result["error"])
    return result


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/process")
async def process_now(request: ProcessRequest, service: Service) -> dict[str, Any]:
    """
    Run the full pipeline now.

    Bypasses the period schedule; the period record is not touched.
    """
    if request.start_date and request.end_date and _as_utc(request.start_date) > _as_utc(request.end_date):
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    result = await service.process_now(
        request.shop,
        period_months=request.period_months,
        start_date=request.start_date,
        end_date=request.end_date,
    )
    return _raise_for_failure(result)


@router.post("/due-check")
async def due_check(request: DueCheckRequest, service: Service) -> dict[str, Any]:
    """Process the current period if it is due and unclaimed."""
    result = await service.run_due_check(request.shop, reference=request.reference, trigger=request.trigger)
    return _raise_for_failure(result)


@router.get("/schedule/{shop}")
async def schedule_status(shop: str, service: Service, reference: datetime | None = None) -> dict[str, Any]:
    result = await service.schedule_status(shop, reference=reference)
    return _raise_for_failure(result)


@router.get("/config/{shop}", response_model=ConfigResponse)
async def get_config(shop: str, service: Service) -> ConfigResponse:
    try:
        config = await service.get_config(shop)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ConfigResponse(**config.to_dict())


@router.put("/config/{shop}", response_model=ConfigResponse)
async def update_config(shop: str, request: ConfigUpdateRequest, service: Service) -> ConfigResponse:
    changes = request.model_dump(exclude_none=True)
    try:
        config = await service.update_config(shop, changes)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ConfigResponse(**config.to_dict())


@router.post("/definitions/{shop}")
async def create_definitions(shop: str, service: Service) -> dict[str, Any]:
    """Create the metaobject definitions the store and settings rely on."""
    try:
        created = await service.ensure_definitions(shop)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "created": created}


@router.post("/test-generation")
async def test_generation(service: Service) -> dict[str, Any]:
    """Run the generator over a fixed sample to check the integration."""
    result = await service.test_generation()
    return {"success": True, **result}
