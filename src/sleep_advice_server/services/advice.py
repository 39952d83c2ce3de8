"""Wiring between weekly stats, the generation provider and advice sessions."""

from sleep_advice_server.core.config import Settings
from sleep_advice_server.schemas.sleep import WeeklyStats
from sleep_advice_server.services.advice_session import AdviceStreamSession
from sleep_advice_server.services.generation import GenerationOptions, GenerationProvider
from sleep_advice_server.services.prompts import build_advice_prompt
from sleep_advice_server.services.sse import SSETransport
from sleep_advice_server.services.upstream import UpstreamTextStream


class AdviceService:
    """Creates one independent session and transport per advice request.

    Holds no per-request state, so a single instance is shared by the app.
    """

    def __init__(self, provider: GenerationProvider, settings: Settings) -> None:
        self.provider = provider
        self.settings = settings

    @property
    def options(self) -> GenerationOptions:
        return GenerationOptions(
            temperature=self.settings.advice_temperature,
            max_output_tokens=self.settings.advice_max_output_tokens,
        )

    def open_session(self, user_id: int, stats: WeeklyStats) -> AdviceStreamSession:
        """Prepare a session for non-empty ``stats``; nothing is sent yet."""
        upstream = UpstreamTextStream(self.provider, build_advice_prompt(stats), self.options)
        return AdviceStreamSession(
            user_id=user_id,
            stats=stats,
            upstream=upstream,
            timeout_seconds=self.settings.advice_timeout_seconds,
        )

    def open_transport(self) -> SSETransport:
        return SSETransport(heartbeat_interval=self.settings.sse_heartbeat_seconds)
