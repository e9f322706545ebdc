"""Per-shop processing periods and the at-most-once claim around them.

A shop is due when the reference date passes three gates:

1. calendar: the month starts a period for the shop's frequency
2. window: the day of month is inside the early processing window
3. completion: no successful record and no live claim exists for the period

The period record table's unique key ``(shop, year, period_number)`` is the
lock. ``claim`` inserts an in-progress row before any network work starts, so
concurrent triggers for the same period collapse onto one pipeline run.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.constants import PERIOD_START_MONTHS
from upsell_service.infrastructure.database.models import PeriodRecord, PeriodStatus

logger = structlog.get_logger()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ScheduleState(str, Enum):
    NOT_DUE = "not_due"
    DUE = "due"
    PROCESSING = "processing"
    RECORDED = "recorded"


@dataclass(frozen=True)
class PeriodKey:
    """Identifies one processing period of one shop."""

    shop: str
    year: int
    period_number: int
    frequency: str

    @property
    def label(self) -> str:
        return period_label(self.year, self.period_number, self.frequency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shop": self.shop,
            "year": self.year,
            "period_number": self.period_number,
            "frequency": self.frequency,
            "label": self.label,
        }


def _check_frequency(frequency: str) -> None:
    if frequency not in PERIOD_START_MONTHS:
        raise ValueError(f"Unknown schedule frequency: {frequency}")


def period_number_for(month: int, frequency: str) -> int:
    _check_frequency(frequency)
    if frequency == "monthly":
        return month
    if frequency == "quarterly":
        return (month - 1) // 3 + 1
    if frequency == "semiannual":
        return (month - 1) // 6 + 1
    return 1


def period_label(year: int, period_number: int, frequency: str) -> str:
    if frequency == "monthly":
        return f"{year}-M{period_number}"
    if frequency == "quarterly":
        return f"{year}-Q{period_number}"
    if frequency == "semiannual":
        return f"{year}-H{period_number}"
    return str(year)


def period_for(shop: str, reference: date, frequency: str) -> PeriodKey:
    return PeriodKey(
        shop=shop,
        year=reference.year,
        period_number=period_number_for(reference.month, frequency),
        frequency=frequency,
    )


def next_processing_date(reference: date, frequency: str) -> date | None:
    """First day of the next period-start month strictly after ``reference``.

    ``None`` for manual schedules.
    """
    _check_frequency(frequency)
    if isinstance(reference, datetime):
        reference = reference.date()
    for year in (reference.year, reference.year + 1):
        for month in PERIOD_START_MONTHS[frequency]:
            candidate = date(year, month, 1)
            if candidate > reference:
                return candidate
    return None


@dataclass
class DueDecision:
    due: bool
    state: ScheduleState
    message: str
    period: PeriodKey | None = None
    next_processing_date: date | None = None
    record: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "due": self.due,
            "state": self.state.value,
            "message": self.message,
            "period": self.period.to_dict() if self.period else None,
            "next_processing_date": (
                self.next_processing_date.isoformat() if self.next_processing_date else None
            ),
            "record": self.record,
        }


def record_to_dict(record: PeriodRecord) -> dict[str, Any]:
    return {
        "shop": record.shop,
        "year": record.year,
        "period_number": record.period_number,
        "period_label": record.period_label,
        "status": record.status.value,
        "success": record.success,
        "order_count": record.order_count,
        "error_message": record.error_message,
        "attempts": record.attempts,
        "trigger": record.trigger,
        "claimed_at": record.claimed_at.isoformat() if record.claimed_at else None,
        "processed_at": record.processed_at.isoformat() if record.processed_at else None,
    }


class PeriodRecordRepository:
    """Keyed access to period records.

    Writes commit immediately so a claim is visible to other workers before
    the pipeline starts.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _key_filter(self, period: PeriodKey):
        return and_(
            PeriodRecord.shop == period.shop,
            PeriodRecord.year == period.year,
            PeriodRecord.period_number == period.period_number,
        )

    async def get(self, period: PeriodKey) -> PeriodRecord | None:
        stmt = (
            select(PeriodRecord)
            .where(self._key_filter(period))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_claim(self, period: PeriodKey, trigger: str, now: datetime) -> bool:
        """Insert an in-progress row. False if the period already has one."""
        self.session.add(
            PeriodRecord(
                shop=period.shop,
                year=period.year,
                period_number=period.period_number,
                period_label=period.label,
                frequency=period.frequency,
                status=PeriodStatus.IN_PROGRESS,
                success=False,
                attempts=1,
                trigger=trigger,
                claimed_at=now,
            )
        )
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return False
        return True

    async def reclaim(
        self, period: PeriodKey, trigger: str, now: datetime, lease_cutoff: datetime
    ) -> bool:
        """Take over a failed record or an expired claim.

        The conditional update is the compare-and-swap: of several racing
        callers only one sees a matched row.
        """
        stmt = (
            update(PeriodRecord)
            .where(
                self._key_filter(period),
                or_(
                    PeriodRecord.status == PeriodStatus.FAILED,
                    and_(
                        PeriodRecord.status == PeriodStatus.IN_PROGRESS,
                        PeriodRecord.claimed_at < lease_cutoff,
                    ),
                ),
            )
            .values(
                status=PeriodStatus.IN_PROGRESS,
                claimed_at=now,
                trigger=trigger,
                error_message=None,
                period_label=period.label,
                frequency=period.frequency,
                attempts=PeriodRecord.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def upsert_outcome(
        self,
        period: PeriodKey,
        success: bool,
        order_count: int,
        error_message: str | None,
        now: datetime,
    ) -> PeriodRecord:
        for _ in range(2):
            record = await self.get(period)
            if record is None:
                record = PeriodRecord(
                    shop=period.shop,
                    year=period.year,
                    period_number=period.period_number,
                    period_label=period.label,
                    frequency=period.frequency,
                    attempts=1,
                )
                self.session.add(record)
            elif record.status == PeriodStatus.SUCCESS and not success:
                logger.warning(
                    "Ignoring failure for an already successful period",
                    shop=period.shop,
                    period=period.label,
                    error=error_message,
                )
                return record

            record.status = PeriodStatus.SUCCESS if success else PeriodStatus.FAILED
            record.success = success
            record.order_count = order_count
            record.error_message = error_message
            record.processed_at = now
            try:
                await self.session.commit()
            except IntegrityError:
                # Lost an insert race; the row exists now, update it instead
                await self.session.rollback()
                continue
            return record

        raise RuntimeError(f"Could not record outcome for {period.shop} {period.label}")


class PeriodScheduler:
    """Due evaluation, claim and outcome recording for processing periods."""

    def __init__(
        self,
        session: AsyncSession,
        processing_window_days: int = 3,
        claim_lease_seconds: int = 3600,
    ):
        self.repository = PeriodRecordRepository(session)
        self.processing_window_days = processing_window_days
        self.claim_lease = timedelta(seconds=claim_lease_seconds)

    def _claim_is_live(self, record: PeriodRecord, now: datetime) -> bool:
        return (
            record.status == PeriodStatus.IN_PROGRESS
            and record.claimed_at is not None
            and record.claimed_at >= now - self.claim_lease
        )

    async def evaluate(
        self,
        shop: str,
        reference: datetime | None = None,
        frequency: str = "quarterly",
    ) -> DueDecision:
        """Apply the calendar, window and completion gates in that order."""
        _check_frequency(frequency)
        reference = _as_naive_utc(reference) if reference else utcnow()
        next_date = next_processing_date(reference, frequency)

        if frequency == "manual":
            return DueDecision(
                due=False,
                state=ScheduleState.NOT_DUE,
                message="Manual schedule, processing only runs on request",
            )

        if reference.month not in PERIOD_START_MONTHS[frequency]:
            return DueDecision(
                due=False,
                state=ScheduleState.NOT_DUE,
                message=f"Month {reference.month} does not start a {frequency} period",
                next_processing_date=next_date,
            )

        period = period_for(shop, reference, frequency)

        if reference.day > self.processing_window_days:
            return DueDecision(
                due=False,
                state=ScheduleState.NOT_DUE,
                message=(
                    f"Day {reference.day} is outside the first "
                    f"{self.processing_window_days} days of the period"
                ),
                period=period,
                next_processing_date=next_date,
            )

        record = await self.repository.get(period)
        snapshot = record_to_dict(record) if record is not None else None
        if record is not None and record.status == PeriodStatus.SUCCESS:
            return DueDecision(
                due=False,
                state=ScheduleState.RECORDED,
                message=f"Period {period.label} already processed",
                period=period,
                next_processing_date=next_date,
                record=snapshot,
            )
        if record is not None and self._claim_is_live(record, utcnow()):
            return DueDecision(
                due=False,
                state=ScheduleState.PROCESSING,
                message=f"Period {period.label} is being processed",
                period=period,
                next_processing_date=next_date,
                record=snapshot,
            )

        return DueDecision(
            due=True,
            state=ScheduleState.DUE,
            message=f"Period {period.label} is due",
            period=period,
            next_processing_date=next_date,
            record=snapshot,
        )

    async def claim(self, period: PeriodKey, trigger: str = "manual") -> bool:
        """Acquire the period before the pipeline runs."""
        now = utcnow()
        if await self.repository.insert_claim(period, trigger, now):
            logger.info("Period claimed", shop=period.shop, period=period.label, trigger=trigger)
            return True

        claimed = await self.repository.reclaim(period, trigger, now, now - self.claim_lease)
        if claimed:
            logger.info("Period reclaimed", shop=period.shop, period=period.label, trigger=trigger)
        else:
            logger.info("Period already claimed or processed", shop=period.shop, period=period.label)
        return claimed

    async def record_outcome(
        self,
        period: PeriodKey,
        success: bool,
        order_count: int = 0,
        error_message: str | None = None,
    ) -> PeriodRecord:
        record = await self.repository.upsert_outcome(
            period, success, order_count, error_message, utcnow()
        )
        logger.info(
            "Period outcome recorded",
            shop=period.shop,
            period=period.label,
            success=record.success,
            order_count=record.order_count,
        )
        return record

    async def get_record(self, period: PeriodKey) -> PeriodRecord | None:
        return await self.repository.get(period)
