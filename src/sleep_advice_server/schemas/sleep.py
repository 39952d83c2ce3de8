"""Pydantic schemas for users, sleep records and weekly statistics."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sleep_advice_server.models.base import to_naive_utc
from sleep_advice_server.models.sleep import compute_duration_hours

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserCreate(BaseModel):
    """Body of ``POST /api/users``."""

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class UserUpdate(BaseModel):
    """Body of ``PUT /api/users/{id}``; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)


def validate_sleep_window(sleep_time: datetime, wake_time: datetime) -> float:
    """Check a sleep/wake pair and return its duration in hours.

    Raises:
        ValueError: If waking is not after falling asleep, or the rounded
            duration is zero
    """
    if to_naive_utc(wake_time) <= to_naive_utc(sleep_time):
        raise ValueError("wake_time must be after sleep_time")

    duration = compute_duration_hours(sleep_time, wake_time)
    if duration <= 0:
        raise ValueError("Sleep duration must be at least 0.1 hours")
    return duration


class SleepRecordCreate(BaseModel):
    """Body of ``POST /api/sleep``.

    ``duration`` is always derived from the timestamps; a client-supplied
    value is ignored.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId", ge=1)
    sleep_time: datetime
    wake_time: datetime

    @model_validator(mode="after")
    def check_window(self) -> "SleepRecordCreate":
        validate_sleep_window(self.sleep_time, self.wake_time)
        return self


class SleepRecordUpdate(BaseModel):
    """Body of ``PUT /api/sleep/{id}``; omitted fields are left unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: int | None = Field(default=None, alias="userId", ge=1)
    sleep_time: datetime | None = None
    wake_time: datetime | None = None


class DailySleep(BaseModel):
    """Total hours slept on one calendar date."""

    model_config = ConfigDict(frozen=True)

    day: date = Field(serialization_alias="date")
    duration_hours: float = Field(serialization_alias="duration")


class WeeklyStats(BaseModel):
    """Sleep statistics over the trailing window, oldest day first."""

    model_config = ConfigDict(frozen=True)

    series: tuple[DailySleep, ...] = Field(
        default=(),
        serialization_alias="weeklySleepData",
    )
    daily_average: float = Field(default=0.0, serialization_alias="dailyAverageSleep")

    @property
    def is_empty(self) -> bool:
        """Whether there is no sleep data in the window."""
        return not self.series
