"""Per-request advice streaming session.

A session turns one upstream generation call into the event sequence

    start, chunk*, (complete | error)

and pushes it through a transport. Exactly one terminal event is sent unless
the client disconnected first, in which case nothing more is sent and the
upstream call is released.
"""

import asyncio
from enum import Enum
from typing import Protocol
from uuid import uuid4

import structlog

from sleep_advice_server.schemas.events import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
)
from sleep_advice_server.schemas.sleep import WeeklyStats
from sleep_advice_server.services.upstream import UpstreamTextStream

logger = structlog.get_logger()

START_MESSAGE = "Analyzing your sleep data..."
TIMEOUT_MESSAGE = "Advice generation timed out. Please try again."
INTERNAL_ERROR_MESSAGE = "Advice generation failed unexpectedly."
INSUFFICIENT_DATA_MESSAGE = (
    "Not enough sleep data to give advice yet. "
    "Record at least one night of sleep this week and try again."
)


class EventSink(Protocol):
    """Where a session delivers its events."""

    @property
    def is_closed(self) -> bool: ...

    async def send(self, event: StreamEvent) -> bool: ...

    async def close(self) -> None: ...


class SessionState(str, Enum):
    """Lifecycle of an advice session."""

    CREATED = "created"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    DISCONNECTED = "disconnected"


class AdviceStreamSession:
    """Streams advice for one user's weekly stats.

    The whole session, upstream pulls and transport writes included, runs
    under a single wall-clock budget. Client disconnects are checked between
    pulls; an in-flight pull is allowed to resolve before the upstream call
    is released.
    """

    def __init__(
        self,
        user_id: int,
        stats: WeeklyStats,
        upstream: UpstreamTextStream,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize advice session.

        Args:
            user_id: User the advice is for
            stats: Weekly statistics the prompt was built from
            upstream: Upstream stream owned by this session
            timeout_seconds: Wall-clock budget from session start
        """
        self.user_id = user_id
        self.stats = stats
        self.upstream = upstream
        self.timeout_seconds = timeout_seconds
        self.session_id = uuid4().hex[:12]
        self.state = SessionState.CREATED
        self._fragments: list[str] = []
        self.logger = logger.bind(
            service="advice_session",
            session_id=self.session_id,
            user_id=user_id,
        )

    @property
    def full_text(self) -> str:
        """Everything generated so far."""
        return "".join(self._fragments)

    async def run(self, transport: EventSink) -> SessionState:
        """Drive the session to its end over ``transport``.

        Returns:
            The final session state
        """
        self.state = SessionState.STREAMING
        self.logger.info("Advice session started", days=len(self.stats.series))

        terminal: StreamEvent | None = None
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await transport.send(StartEvent(message=START_MESSAGE))
                terminal = await self._pump(transport)
        except TimeoutError:
            self.logger.warning("Advice session timed out", timeout_seconds=self.timeout_seconds)
            self.state = SessionState.TIMED_OUT
            terminal = ErrorEvent(message=TIMEOUT_MESSAGE)
        except Exception:
            # Headers are already sent; failures can only be reported in-band
            self.logger.exception("Advice session crashed")
            self.state = SessionState.FAILED
            terminal = ErrorEvent(message=INTERNAL_ERROR_MESSAGE)
        finally:
            await self.upstream.aclose()

        try:
            if transport.is_closed:
                self.state = SessionState.DISCONNECTED
            elif terminal is not None:
                await transport.send(terminal)
        finally:
            await transport.close()

        self.logger.info(
            "Advice session finished",
            state=self.state.value,
            upstream_pulls=self.upstream.pulls,
            characters=len(self.full_text),
        )
        return self.state

    async def _pump(self, transport: EventSink) -> StreamEvent | None:
        """Relay upstream fragments until a terminal one or a disconnect."""
        while not transport.is_closed:
            fragment = await self.upstream.pull()
            if transport.is_closed:
                break

            if fragment.error is not None:
                self.state = SessionState.FAILED
                return ErrorEvent(message=fragment.error)

            if fragment.is_complete:
                self.state = SessionState.COMPLETED
                return CompleteEvent(full_text=self.full_text)

            self._fragments.append(fragment.text)
            await transport.send(
                ChunkEvent(text=fragment.text, full_text=self.full_text, is_complete=False)
            )

        return None
