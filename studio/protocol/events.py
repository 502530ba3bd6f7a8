"""Typed events streamed from the chat endpoint to the browser.

Each event is serialized as one JSON object per line. Field names are
camelCase on the wire and snake_case in Python.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventModel(BaseModel):
    """Base for all stream events."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ThinkingStartEvent(EventModel):
    """The model started a reasoning phase that is not visible as text yet."""

    type: Literal["thinking-start"] = "thinking-start"
    timestamp: int  # epoch milliseconds


class ThinkingEndEvent(EventModel):
    """The reasoning phase ended."""

    type: Literal["thinking-end"] = "thinking-end"
    duration: float | None = None  # seconds


class TextEvent(EventModel):
    """A delta to append to the assistant message."""

    type: Literal["text"] = "text"
    content: str


class BuildingProgress(EventModel):
    name_complete: bool = True
    args_complete: bool = False
    args_length: int = 0


class ToolCallPreviewEvent(EventModel):
    """The model decided to call a tool; execution has not started."""

    type: Literal["tool-call-preview"] = "tool-call-preview"
    id: str
    name: str
    status: Literal["planned"] = "planned"
    args: dict[str, Any] = Field(default_factory=dict)


class ToolCallBuildingEvent(EventModel):
    """Tool call arguments are still streaming in."""

    type: Literal["tool-call-building"] = "tool-call-building"
    id: str
    name: str
    status: Literal["building"] = "building"
    args: dict[str, Any] = Field(default_factory=dict)
    progress: BuildingProgress = Field(default_factory=BuildingProgress)


class ToolCallEvent(EventModel):
    """Tool execution started (``start``) or finished (``complete``/``error``)."""

    type: Literal["tool-call"] = "tool-call"
    id: str
    name: str
    status: Literal["start", "complete", "error"]
    args: dict[str, Any] | None = None
    result: Any = None
    error: str | None = None


class StatusEvent(EventModel):
    """Advisory progress note."""

    type: Literal["status"] = "status"
    status: Literal["analyzing", "executing", "processing", "truncated"]
    message: str | None = None


class ErrorEvent(EventModel):
    """Turn-level failure. ``recoverable`` means the client may offer a retry."""

    type: Literal["error"] = "error"
    error: str
    recoverable: bool
    tool_call_id: str | None = None


class DoneEvent(EventModel):
    """Terminal event of a turn."""

    type: Literal["done"] = "done"


StreamEvent = Annotated[
    ThinkingStartEvent
    | ThinkingEndEvent
    | TextEvent
    | ToolCallPreviewEvent
    | ToolCallBuildingEvent
    | ToolCallEvent
    | StatusEvent
    | ErrorEvent
    | DoneEvent,
    Field(discriminator="type"),
]
