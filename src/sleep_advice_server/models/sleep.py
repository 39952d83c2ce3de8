"""Sleep record model."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sleep_advice_server.models.base import Base, TimestampMixin, to_naive_utc
from sleep_advice_server.models.user import User


def compute_duration_hours(sleep_time: datetime, wake_time: datetime) -> float:
    """Hours between falling asleep and waking, rounded to one decimal."""
    seconds = (to_naive_utc(wake_time) - to_naive_utc(sleep_time)).total_seconds()
    return round(seconds / 3600, 1)


class SleepRecord(Base, TimestampMixin):
    """One night (or nap) of sleep for a user.

    Timestamps are stored as naive UTC. ``duration`` is derived from them and
    must be positive for the row to be persisted.
    """

    __tablename__ = "sleep_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sleep_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    wake_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Hours asleep, one decimal
    duration: Mapped[float] = mapped_column(Float, nullable=False)

    user: Mapped[User] = relationship(back_populates="sleep_records")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SleepRecord(user_id={self.user_id}, sleep_time={self.sleep_time}, "
            f"duration={self.duration})>"
        )
