"""Server-Sent Events transport for advice streams.

Frames are written as ``data: {json}\\n\\n``. While the stream is idle a
``: heartbeat\\n\\n`` comment is sent so proxies keep the connection open;
SSE clients ignore comment lines.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any, Final

import structlog

from sleep_advice_server.schemas.events import StreamEvent

logger = structlog.get_logger()

SSE_MEDIA_TYPE: Final = "text/event-stream"
SSE_HEADERS: Final = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
HEARTBEAT_FRAME: Final = ": heartbeat\n\n"

# Producers still running after their response finished
_running_producers: set[asyncio.Task[object]] = set()


def encode_event(event: StreamEvent) -> str:
    """Serialize an event as one SSE data frame."""
    payload = json.dumps(event.to_payload(), ensure_ascii=False)
    return f"data: {payload}\n\n"


class _Closed:
    """Queue sentinel marking the end of the stream."""


_CLOSE = _Closed()


class SSETransport:
    """One long-lived SSE response fed by a producer coroutine.

    The producer (an advice session) calls :meth:`send` and :meth:`close`;
    the HTTP layer iterates :meth:`frames` as the response body and calls
    :meth:`detach` once the response is over. If either happens before the
    producer closed the transport, the peer is considered disconnected and
    further sends are dropped.
    """

    def __init__(self, heartbeat_interval: float = 30.0) -> None:
        self.heartbeat_interval = heartbeat_interval
        self.frames_sent = 0
        self.heartbeats_sent = 0
        self._queue: asyncio.Queue[str | _Closed] = asyncio.Queue()
        self._closed = False
        self._disconnected = False

    @property
    def is_closed(self) -> bool:
        """Whether no more events can reach the client."""
        return self._closed or self._disconnected

    @property
    def disconnected(self) -> bool:
        """Whether the client went away before the stream was closed."""
        return self._disconnected

    async def send(self, event: StreamEvent) -> bool:
        """Queue one event for delivery.

        Returns:
            False if the transport is closed and the event was dropped
        """
        if self.is_closed:
            return False

        await self._queue.put(encode_event(event))
        return True

    async def close(self) -> None:
        """End the response after queued frames are written. Idempotent."""
        if self._closed:
            return

        self._closed = True
        await self._queue.put(_CLOSE)

    async def detach(self) -> None:
        """Record that the response is over, whether or not the body was drained.

        Runs after the HTTP layer stops sending. If the producer has not
        closed the transport by then, the client went away.
        """
        self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        if self._closed or self._disconnected:
            return

        self._disconnected = True
        logger.info("Advice stream client disconnected", frames_sent=self.frames_sent)

    async def frames(
        self,
        producer: Callable[["SSETransport"], Coroutine[Any, Any, object]] | None = None,
    ) -> AsyncIterator[str]:
        """Iterate encoded frames until the transport is closed.

        Args:
            producer: Coroutine function started with this transport once
                the response body is first iterated

        Yields:
            SSE data frames, and heartbeat comments while idle
        """
        if producer is not None:
            task = asyncio.create_task(producer(self))
            _running_producers.add(task)
            task.add_done_callback(_running_producers.discard)

        try:
            while True:
                try:
                    frame = await asyncio.wait_for(self._queue.get(), self.heartbeat_interval)
                except TimeoutError:
                    self.heartbeats_sent += 1
                    yield HEARTBEAT_FRAME
                    continue

                if isinstance(frame, _Closed):
                    return

                self.frames_sent += 1
                yield frame
        finally:
            self._mark_disconnected()
