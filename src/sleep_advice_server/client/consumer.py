"""Client for the streaming advice endpoint.

:class:`AdviceStreamConsumer` opens ``GET /api/sleep/advice``, decodes the
SSE frames and keeps an :class:`AdviceView` in sync with them, the way a UI
would render it. Every run ends with rendered advice, a visible error, or
an explicit cancellation, and the loading flag is always cleared.
"""

import asyncio
import contextlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace

import httpx
import structlog
from pydantic import ValidationError

from sleep_advice_server.schemas.events import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    is_terminal,
    parse_event,
)

logger = structlog.get_logger()

TIMEOUT_ERROR = "Timed out waiting for sleep advice."
STREAM_ENDED_ERROR = "The advice stream ended unexpectedly."
UNEXPECTED_ERROR = "Something went wrong while loading advice."


@dataclass
class AdviceView:
    """What the user currently sees."""

    status_message: str | None = None
    text: str = ""
    loading: bool = False
    error: str | None = None
    completed: bool = False
    cancelled: bool = False


class SSEDecoder:
    """Incremental SSE line decoder.

    Feeds on lines without their terminators and returns the ``data``
    payload of each complete event. Comment lines (heartbeats) and fields
    other than ``data`` are ignored.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        """Consume one line; returns a payload when an event is complete."""
        if not line:
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if field == "data":
            self._data.append(value[1:] if value.startswith(" ") else value)
        return None

    def flush(self) -> Iterator[str]:
        """Yield a trailing event not followed by a blank line."""
        if self._data:
            payload = "\n".join(self._data)
            self._data = []
            yield payload


class AdviceStreamConsumer:
    """Consumes one advice stream at a time.

    Usage:
        async with AdviceStreamConsumer("http://localhost:8000") as consumer:
            view = await consumer.request_advice(user_id=1)
            print(view.text or view.error)
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 120.0,
        on_update: Callable[[AdviceView], None] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize consumer.

        Args:
            base_url: Server root, e.g. ``http://localhost:8000``
            timeout_seconds: Local budget for one stream, independent of the server's
            on_update: Called with a snapshot of the view after every change
            client: HTTP client to use; one is created (and owned) when omitted
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.on_update = on_update
        self.view = AdviceView()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        self._task: asyncio.Task[AdviceView] | None = None

    async def __aenter__(self) -> "AdviceStreamConsumer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def is_active(self) -> bool:
        """Whether a stream is currently open."""
        return self._task is not None and not self._task.done()

    async def start(self, user_id: int) -> asyncio.Task[AdviceView]:
        """Open a new stream, tearing down any stream still open."""
        if self.is_active:
            await self._teardown()

        self._set(AdviceView(loading=True))
        self._task = asyncio.create_task(self._consume(user_id))
        return self._task

    async def request_advice(self, user_id: int) -> AdviceView:
        """Open a stream and wait until it ends (or is cancelled)."""
        task = await self.start(user_id)
        await asyncio.wait([task])
        return self.view

    async def cancel(self) -> None:
        """Close the open stream without waiting for more frames.

        Cancellation is not an error: the view keeps its text, loses the
        loading flag and is marked cancelled.
        """
        if not self.is_active:
            return

        await self._teardown()
        self._set(replace(self.view, loading=False, cancelled=True))
        logger.info("Advice stream cancelled")

    async def aclose(self) -> None:
        """Cancel any open stream and release the HTTP client."""
        await self.cancel()
        if self._owns_client:
            await self._client.aclose()

    def handle_event(self, event: StreamEvent) -> bool:
        """Apply one event to the view.

        Returns:
            True if the event ends the stream
        """
        view = self.view
        if isinstance(event, StartEvent):
            self._set(replace(view, status_message=event.message, text="", error=None))
        elif isinstance(event, ChunkEvent):
            # The accumulated text is authoritative whenever it is present
            text = event.full_text if event.full_text is not None else view.text + event.text
            self._set(replace(view, text=text))
        elif isinstance(event, CompleteEvent):
            self._set(replace(view, text=event.full_text, loading=False, completed=True))
        elif isinstance(event, ErrorEvent):
            self._set(replace(view, error=event.message, loading=False))

        return is_terminal(event)

    def handle_payload(self, payload: str) -> bool:
        """Decode and apply one frame payload; malformed frames are dropped."""
        try:
            event = parse_event(payload)
        except ValidationError as e:
            logger.warning("Dropping malformed advice frame", payload=payload[:200], error=str(e))
            return False
        return self.handle_event(event)

    async def _teardown(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _consume(self, user_id: int) -> AdviceView:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await self._read_stream(user_id)
        except TimeoutError:
            logger.warning("Advice stream timed out", timeout_seconds=self.timeout_seconds)
            self._set(replace(self.view, error=TIMEOUT_ERROR, loading=False))
        except httpx.HTTPError as e:
            logger.warning("Advice stream request failed", error=str(e))
            self._set(replace(self.view, error=f"Could not load advice: {e}", loading=False))
        except Exception:
            logger.exception("Advice stream failed")
            self._set(replace(self.view, error=UNEXPECTED_ERROR, loading=False))
        return self.view

    async def _read_stream(self, user_id: int) -> None:
        async with self._client.stream(
            "GET",
            "/api/sleep/advice",
            params={"userId": user_id},
            headers={"Accept": "text/event-stream"},
        ) as response:
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("text/event-stream"):
                await response.aread()
                self._handle_envelope(response)
                return

            decoder = SSEDecoder()
            async for line in response.aiter_lines():
                payload = decoder.feed(line)
                if payload is not None and self.handle_payload(payload):
                    return

            for payload in decoder.flush():
                if self.handle_payload(payload):
                    return

        self._set(replace(self.view, error=STREAM_ENDED_ERROR, loading=False))

    def _handle_envelope(self, response: httpx.Response) -> None:
        """Apply a plain JSON envelope (no stream was opened)."""
        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        if not isinstance(envelope, dict):
            envelope = {}

        data = envelope.get("data")
        if response.is_success and envelope.get("success") and isinstance(data, dict):
            advice = str(data.get("advice") or "")
            self._set(replace(self.view, text=advice, loading=False, completed=True))
            return

        error = envelope.get("error") or f"Advice request failed (HTTP {response.status_code})"
        self._set(replace(self.view, error=error, loading=False))

    def _set(self, view: AdviceView) -> None:
        """Store ``view`` and notify the listener; listener failures are logged."""
        self.view = view
        if self.on_update is None:
            return

        try:
            self.on_update(replace(view))
        except Exception:
            logger.exception("Advice view listener failed")
