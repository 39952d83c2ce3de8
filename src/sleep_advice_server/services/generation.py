"""Generation providers producing streamed text from a prompt.

The default provider talks to the Gemini generative language REST API with
``streamGenerateContent?alt=sse``. Every failure surfaces as
:class:`UpstreamError` with a message that can be shown to end users.
"""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from sleep_advice_server.core.config import Settings
from sleep_advice_server.core.exceptions import ConfigurationError, UpstreamError

logger = structlog.get_logger()


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling options for one generation call."""

    temperature: float = 0.7
    max_output_tokens: int = 1000


class GenerationProvider(Protocol):
    """Anything that can stream text for a prompt."""

    def generate(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        """Stream generated text fragments for ``prompt``.

        Raises:
            UpstreamError: If generation fails
        """
        ...


class GeminiGenerationProvider:
    """Streams text from the Gemini ``streamGenerateContent`` endpoint.

    One HTTP client is opened per call and closed when the returned iterator
    is exhausted or closed.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemma-3-1b-it",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            api_key: Generative language API key
            model: Model name, without the ``models/`` prefix
            base_url: API base URL
            connect_timeout: Seconds allowed to establish the connection
            read_timeout: Seconds allowed between two received bytes
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(connect_timeout, read=read_timeout)
        self._transport = transport
        self.logger = logger.bind(provider="gemini", model=model)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiGenerationProvider":
        """Build the provider from application settings.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY must be set to generate sleep advice")

        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            connect_timeout=settings.upstream_connect_timeout_seconds,
            read_timeout=settings.upstream_read_timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:streamGenerateContent"

    def build_payload(self, prompt: str, options: GenerationOptions) -> dict[str, Any]:
        """Request body for a single-turn text prompt."""
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "text/plain",
                "temperature": options.temperature,
                "maxOutputTokens": options.max_output_tokens,
            },
        }

    async def generate(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        """Stream text fragments for ``prompt``.

        Yields:
            Non-empty text fragments in generation order

        Raises:
            UpstreamError: On HTTP errors, network faults, blocked prompts or
                malformed responses
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                async with client.stream(
                    "POST",
                    self.endpoint,
                    params={"alt": "sse"},
                    headers={"x-goog-api-key": self.api_key},
                    json=self.build_payload(prompt, options),
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise UpstreamError(
                            self._describe_status(response),
                            status_code=response.status_code,
                        )

                    async for line in response.aiter_lines():
                        for text in self._parse_line(line):
                            yield text
            except httpx.TimeoutException as e:
                self.logger.warning("Generation API timed out", error=str(e))
                raise UpstreamError("The advice service took too long to respond") from e
            except httpx.RequestError as e:
                self.logger.warning("Generation API unreachable", error=str(e))
                raise UpstreamError(f"Could not reach the advice service: {e}") from e

    def _parse_line(self, line: str) -> list[str]:
        """Extract text parts from one SSE line of the upstream response."""
        if not line.startswith("data:"):
            return []

        data = line[5:].strip()
        if not data:
            return []

        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            raise UpstreamError("The advice service returned a malformed response") from e
        if not isinstance(chunk, dict):
            raise UpstreamError("The advice service returned a malformed response")

        block_reason = (chunk.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise UpstreamError(f"The advice request was blocked ({block_reason})")

        texts = []
        for candidate in chunk.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                text = part.get("text")
                if text:
                    texts.append(text)
        return texts

    def _describe_status(self, response: httpx.Response) -> str:
        """Turn an HTTP error response into a user-facing message."""
        status = response.status_code
        detail = None
        try:
            detail = response.json().get("error", {}).get("message")
        except (json.JSONDecodeError, AttributeError):
            pass

        if status in (401, 403):
            message = "Authentication with the advice service failed; check GEMINI_API_KEY"
        elif status == 429:
            message = "The advice service quota has been exceeded; try again later"
        elif status >= 500:
            message = f"The advice service is unavailable (HTTP {status})"
        else:
            message = f"The advice service rejected the request (HTTP {status})"

        self.logger.error("Generation API error", status_code=status, detail=detail)
        return f"{message}: {detail}" if detail else message
