"""Pull-based wrapper around one upstream generation call."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum

import structlog

from sleep_advice_server.core.exceptions import UpstreamError
from sleep_advice_server.services.generation import GenerationOptions, GenerationProvider

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextFragment:
    """One item pulled from an upstream stream.

    Regular fragments carry non-empty ``text``. The final item has
    ``is_complete`` set; when generation failed it also carries ``error``.
    """

    text: str
    is_complete: bool = False
    error: str | None = None


COMPLETION = TextFragment(text="", is_complete=True)


class StreamState(str, Enum):
    """Lifecycle of an upstream stream."""

    PENDING = "pending"  # No request made yet
    STREAMING = "streaming"  # Request open, fragments flowing
    FINISHED = "finished"  # Terminal fragment handed out
    CLOSED = "closed"  # Released before or after finishing


class UpstreamTextStream:
    """Lazy, finite sequence of text fragments ending with a terminal marker.

    The provider call is only started on the first pull. Failures never
    propagate as exceptions: they end the stream with a single terminal
    fragment whose ``error`` describes what went wrong. There are no retries.

    Usage:
        stream = UpstreamTextStream(provider, prompt)
        try:
            while not (fragment := await stream.pull()).is_complete:
                print(fragment.text, end="")
        finally:
            await stream.aclose()
    """

    def __init__(
        self,
        provider: GenerationProvider,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> None:
        self.provider = provider
        self.prompt = prompt
        self.options = options or GenerationOptions()
        self.state = StreamState.PENDING
        self.pulls = 0
        self._iterator: AsyncIterator[str] | None = None

    def __aiter__(self) -> "UpstreamTextStream":
        return self

    async def __anext__(self) -> TextFragment:
        if self.state in (StreamState.FINISHED, StreamState.CLOSED):
            raise StopAsyncIteration
        return await self.pull()

    async def pull(self) -> TextFragment:
        """Wait for the next fragment.

        Returns:
            The next non-empty fragment, or the terminal fragment

        Raises:
            RuntimeError: If the stream already finished or was closed
        """
        if self.state in (StreamState.FINISHED, StreamState.CLOSED):
            raise RuntimeError(f"Cannot pull from a {self.state.value} upstream stream")

        if self._iterator is None:
            self._iterator = aiter(self.provider.generate(self.prompt, self.options))
            self.state = StreamState.STREAMING

        self.pulls += 1
        try:
            while True:
                text = await anext(self._iterator)
                if text:
                    return TextFragment(text=text)
        except StopAsyncIteration:
            return self._finish(COMPLETION)
        except UpstreamError as e:
            logger.warning("Upstream generation failed", error=e.message, status_code=e.status_code)
            return self._finish(TextFragment(text="", is_complete=True, error=e.message))
        except Exception as e:
            logger.exception("Unexpected upstream failure")
            return self._finish(
                TextFragment(text="", is_complete=True, error=f"Advice generation failed: {e}")
            )

    def _finish(self, fragment: TextFragment) -> TextFragment:
        self.state = StreamState.FINISHED
        return fragment

    async def aclose(self) -> None:
        """Release the provider call. Safe to call more than once."""
        if self.state is StreamState.CLOSED:
            return

        self.state = StreamState.CLOSED
        iterator, self._iterator = self._iterator, None
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
