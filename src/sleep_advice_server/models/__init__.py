"""Database models."""

from sleep_advice_server.models.base import Base
from sleep_advice_server.models.sleep import SleepRecord
from sleep_advice_server.models.user import User

__all__ = [
    "Base",
    "SleepRecord",
    "User",
]
