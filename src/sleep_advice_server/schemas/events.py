"""Stream events exchanged over the advice SSE channel.

Wire payloads are camelCase JSON objects tagged by ``type``:

    {"type": "start", "message": "..."}
    {"type": "chunk", "text": "...", "fullText": "...", "isComplete": false}
    {"type": "complete", "fullText": "...", "isComplete": true}
    {"type": "error", "message": "..."}
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_payload(self) -> dict[str, object]:
        """JSON-ready dict using wire field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StartEvent(_Event):
    """Opens a session before any upstream I/O happens."""

    type: Literal["start"] = "start"
    message: str


class ChunkEvent(_Event):
    """One generated fragment plus everything generated so far.

    ``full_text`` is optional on the wire; when present it is authoritative.
    """

    type: Literal["chunk"] = "chunk"
    text: str = ""
    full_text: str | None = Field(default=None, alias="fullText")
    is_complete: bool = Field(default=False, alias="isComplete")


class CompleteEvent(_Event):
    """Terminal event for a successful generation."""

    type: Literal["complete"] = "complete"
    full_text: str = Field(alias="fullText")
    is_complete: bool = Field(default=True, alias="isComplete")


class ErrorEvent(_Event):
    """Terminal event for a failed, timed out or aborted generation."""

    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    StartEvent | ChunkEvent | CompleteEvent | ErrorEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = (CompleteEvent, ErrorEvent)

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def is_terminal(event: StreamEvent) -> bool:
    """Whether ``event`` ends a session."""
    return isinstance(event, TERMINAL_EVENT_TYPES)


def parse_event(data: str | bytes) -> StreamEvent:
    """Decode one JSON payload into a stream event.

    Raises:
        pydantic.ValidationError: If the payload is not valid JSON or not a
            known event shape
    """
    return stream_event_adapter.validate_json(data)
