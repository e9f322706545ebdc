"""SQLAlchemy models for period bookkeeping.

Recommendations and configuration live in Shopify metaobjects; the database
only records which processing periods were claimed and how they ended.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema for all service tables
SCHEMA = "upsell"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


class PeriodStatus(str, PyEnum):
    """Lifecycle of a period record."""

    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class PeriodRecord(Base):
    """One row per (shop, year, period).

    The unique constraint doubles as the claim lock: the first trigger to
    insert the row owns the period until it records an outcome or its lease
    expires.
    """

    __tablename__ = "period_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    period_label: Mapped[str] = mapped_column(String(20), nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        Enum(PeriodStatus), nullable=False, default=PeriodStatus.IN_PROGRESS
    )
    success: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    trigger: Mapped[Optional[str]] = mapped_column(String(100))

    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("shop", "year", "period_number", name="uq_period_records_shop_period"),
        Index("ix_period_records_shop_status", "shop", "status"),
        {"schema": SCHEMA},
    )
