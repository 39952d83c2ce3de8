"""Sleep record CRUD and weekly statistics."""

from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, date, datetime, time, timedelta
from statistics import mean

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sleep_advice_server.core.config import settings
from sleep_advice_server.models.base import to_naive_utc
from sleep_advice_server.models.sleep import SleepRecord, compute_duration_hours
from sleep_advice_server.schemas.sleep import (
    DailySleep,
    SleepRecordCreate,
    SleepRecordUpdate,
    WeeklyStats,
    validate_sleep_window,
)

logger = structlog.get_logger()


def build_weekly_stats(records: Sequence[SleepRecord]) -> WeeklyStats:
    """Aggregate records into per-day totals and their average.

    Records falling asleep on the same calendar date are summed. The series
    is ordered oldest day first and the average is rounded to two decimals.
    """
    totals: dict[date, float] = defaultdict(float)
    for record in records:
        totals[record.sleep_time.date()] += record.duration

    series = tuple(
        DailySleep(day=day, duration_hours=round(hours, 1)) for day, hours in sorted(totals.items())
    )
    if not series:
        return WeeklyStats()

    return WeeklyStats(
        series=series,
        daily_average=round(mean(entry.duration_hours for entry in series), 2),
    )


class SleepRecordService:
    """Service for sleep records and the statistics derived from them."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize sleep record service.

        Args:
            session: Database session
        """
        self.session = session
        self.logger = logger.bind(service="sleep")

    async def list_records(self, user_id: int | None = None) -> Sequence[SleepRecord]:
        """List sleep records, most recent first, with their owner loaded.

        Args:
            user_id: Restrict to one user when given
        """
        stmt = (
            select(SleepRecord)
            .options(selectinload(SleepRecord.user))
            .order_by(SleepRecord.sleep_time.desc())
        )
        if user_id is not None:
            stmt = stmt.where(SleepRecord.user_id == user_id)

        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_record(self, record_id: int) -> SleepRecord | None:
        return await self.session.get(SleepRecord, record_id)

    async def create_record(self, data: SleepRecordCreate) -> SleepRecord:
        """Persist a new record with its derived duration."""
        record = SleepRecord(
            user_id=data.user_id,
            sleep_time=to_naive_utc(data.sleep_time),
            wake_time=to_naive_utc(data.wake_time),
            duration=compute_duration_hours(data.sleep_time, data.wake_time),
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)

        self.logger.info(
            "Sleep record created",
            user_id=record.user_id,
            record_id=record.id,
            duration=record.duration,
        )
        return record

    async def update_record(self, record_id: int, data: SleepRecordUpdate) -> SleepRecord | None:
        """Apply the provided fields and recompute the duration.

        Returns:
            The updated record, or None if it does not exist

        Raises:
            ValueError: If the resulting sleep window is invalid
        """
        record = await self.get_record(record_id)
        if record is None:
            return None

        sleep_time = to_naive_utc(data.sleep_time) if data.sleep_time else record.sleep_time
        wake_time = to_naive_utc(data.wake_time) if data.wake_time else record.wake_time
        duration = validate_sleep_window(sleep_time, wake_time)

        if data.user_id is not None:
            record.user_id = data.user_id
        record.sleep_time = sleep_time
        record.wake_time = wake_time
        record.duration = duration

        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def delete_record(self, record_id: int) -> bool:
        record = await self.get_record(record_id)
        if record is None:
            return False

        await self.session.delete(record)
        await self.session.commit()
        return True

    async def get_weekly_stats(self, user_id: int, today: date | None = None) -> WeeklyStats:
        """Compute statistics over the trailing window ending today.

        The window covers ``settings.stats_window_days`` calendar days,
        today included. Nothing is cached; every call queries the database.

        Args:
            user_id: User identifier
            today: Reference date (defaults to the current UTC date)

        Returns:
            Weekly statistics, empty when the user has no data in the window
        """
        today = today or datetime.now(UTC).date()
        since = datetime.combine(today - timedelta(days=settings.stats_window_days - 1), time.min)
        until = datetime.combine(today + timedelta(days=1), time.min)

        stmt = (
            select(SleepRecord)
            .where(SleepRecord.user_id == user_id)
            .where(SleepRecord.sleep_time >= since)
            .where(SleepRecord.sleep_time < until)
            .order_by(SleepRecord.sleep_time.asc())
        )
        result = await self.session.execute(stmt)
        stats = build_weekly_stats(result.scalars().all())

        self.logger.debug(
            "Weekly stats computed",
            user_id=user_id,
            days=len(stats.series),
            daily_average=stats.daily_average,
        )
        return stats
