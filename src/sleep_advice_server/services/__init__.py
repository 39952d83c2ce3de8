"""Business logic services."""

from sleep_advice_server.services.advice import AdviceService
from sleep_advice_server.services.advice_session import AdviceStreamSession, SessionState
from sleep_advice_server.services.generation import (
    GeminiGenerationProvider,
    GenerationOptions,
    GenerationProvider,
)
from sleep_advice_server.services.sleep import SleepRecordService
from sleep_advice_server.services.sse import SSETransport
from sleep_advice_server.services.upstream import TextFragment, UpstreamTextStream
from sleep_advice_server.services.users import UserService

__all__ = [
    "AdviceService",
    "AdviceStreamSession",
    "GeminiGenerationProvider",
    "GenerationOptions",
    "GenerationProvider",
    "SSETransport",
    "SessionState",
    "SleepRecordService",
    "TextFragment",
    "UpstreamTextStream",
    "UserService",
]
