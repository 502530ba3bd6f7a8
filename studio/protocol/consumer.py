"""Client-side reduction of the event stream into UI state."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from studio.protocol.codec import StreamDecoder
from studio.protocol.events import (
    DoneEvent,
    ErrorEvent,
    StatusEvent,
    StreamEvent,
    TextEvent,
    ThinkingEndEvent,
    ThinkingStartEvent,
    ToolCallBuildingEvent,
    ToolCallEvent,
    ToolCallPreviewEvent,
)

ToolCallStatus = Literal["planned", "building", "in-progress", "completed", "error"]


@dataclass
class ToolCallState:
    """What the UI knows about one tool call."""

    id: str
    name: str
    status: ToolCallStatus
    start_time: float
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    end_time: float | None = None
    progress: dict[str, Any] | None = None


@dataclass
class StreamError:
    message: str
    recoverable: bool


@dataclass
class ChatStreamState:
    """Everything the chat view renders while a turn streams in."""

    content: str = ""
    tool_calls: dict[str, ToolCallState] = field(default_factory=dict)
    is_thinking: bool = False
    thinking_start: float | None = None
    thinking_end: float | None = None
    statuses: list[StatusEvent] = field(default_factory=list)
    error: StreamError | None = None
    done: bool = False

    @property
    def thinking_seconds(self) -> float | None:
        """Elapsed thinking time, frozen once the phase ended."""
        if self.thinking_start is None or self.thinking_end is None:
            return None
        return max(0.0, self.thinking_end - self.thinking_start)

    @property
    def truncated(self) -> bool:
        return any(status.status == "truncated" for status in self.statuses)


def apply_event(state: ChatStreamState, event: StreamEvent, now: float) -> ChatStreamState:
    """Fold one event into the state. ``now`` is seconds since the epoch."""
    if isinstance(event, ThinkingStartEvent):
        state.thinking_start = event.timestamp / 1000
        state.thinking_end = None
        state.is_thinking = True

    elif isinstance(event, ThinkingEndEvent):
        state.thinking_end = now
        state.is_thinking = False

    elif isinstance(event, TextEvent):
        state.content += event.content

    elif isinstance(event, ToolCallPreviewEvent):
        if event.id not in state.tool_calls:
            state.tool_calls[event.id] = ToolCallState(
                id=event.id, name=event.name, status="planned", start_time=now, args=dict(event.args)
            )

    elif isinstance(event, ToolCallBuildingEvent):
        tool_call = state.tool_calls.get(event.id)
        if tool_call is None:
            tool_call = ToolCallState(id=event.id, name=event.name, status="building", start_time=now)
            state.tool_calls[event.id] = tool_call
        if tool_call.status in ("planned", "building"):
            tool_call.status = "building"
            if event.args:
                tool_call.args = dict(event.args)
            tool_call.progress = event.progress.model_dump(by_alias=True)

    elif isinstance(event, ToolCallEvent) and event.status == "start":
        tool_call = state.tool_calls.get(event.id)
        if tool_call is None:
            tool_call = ToolCallState(id=event.id, name=event.name, status="in-progress", start_time=now)
            state.tool_calls[event.id] = tool_call
        tool_call.status = "in-progress"
        if event.args is not None:
            tool_call.args = dict(event.args)

    elif isinstance(event, ToolCallEvent):
        # Terminal events for calls that never started are ignored
        tool_call = state.tool_calls.get(event.id)
        if tool_call is not None:
            tool_call.status = "completed" if event.status == "complete" else "error"
            tool_call.end_time = now
            tool_call.result = event.result
            tool_call.error = event.error

    elif isinstance(event, StatusEvent):
        state.statuses.append(event)

    elif isinstance(event, ErrorEvent):
        state.error = StreamError(message=event.error, recoverable=event.recoverable)

    elif isinstance(event, DoneEvent):
        state.done = True
        state.is_thinking = False

    return state


class StreamConsumer:
    """Feeds raw response chunks through the decoder and reducer."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.decoder = StreamDecoder()
        self.state = ChatStreamState()
        self._clock = clock

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Apply every event completed by ``chunk`` and return them."""
        events = self.decoder.feed(chunk)
        for event in events:
            apply_event(self.state, event, self._clock())
        return events

    def close(self) -> ChatStreamState:
        """Apply any trailing event and return the final state."""
        for event in self.decoder.flush():
            apply_event(self.state, event, self._clock())
        return self.state
