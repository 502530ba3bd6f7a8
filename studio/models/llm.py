"""LLM-related data models and types (provider-agnostic)."""

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model inside an assistant turn.

    ``arguments`` keeps the raw string when the model produced JSON that does
    not decode, so the executor can report it back instead of guessing.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] | str = Field(default_factory=dict)


class ConversationTurn(BaseModel):
    """One message in the chat, in chronological order."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    name: str | None = None


class ToolResult(BaseModel):
    """Outcome of one tool call. Failures live inside ``content``."""

    tool_call_id: str
    name: str
    content: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.content.get("success"))

    @property
    def error(self) -> str | None:
        if self.success:
            return None
        return str(self.content.get("error") or "Unknown error")

    def to_turn(self) -> ConversationTurn:
        """Render the result as a ``tool`` turn for the conversation."""
        return ConversationTurn(
            role="tool",
            content=json.dumps(self.content),
            tool_call_id=self.tool_call_id,
            name=self.name,
        )


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another call's usage into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_input = self.input_tokens + self.cache_read_input_tokens + self.cache_creation_input_tokens
        if total_input == 0:
            return 0.0
        return (self.cache_read_input_tokens / total_input) * 100


# Stream chunks produced by a model provider while a response is generated
@dataclass
class TextDelta:
    """A piece of visible assistant text."""

    text: str


@dataclass
class ThinkingDelta:
    """Reasoning output that is not shown to the user."""

    text: str


@dataclass
class ToolCallStart:
    """The model opened a tool call; arguments follow as deltas."""

    id: str
    name: str


@dataclass
class ToolCallArgsDelta:
    """A fragment of a tool call's JSON arguments."""

    id: str
    partial_json: str


@dataclass
class ModelTurn:
    """The complete model response, always the last chunk of a stream."""

    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    stop_reason: str | None = None
    usage: LLMUsage = field(default_factory=LLMUsage)
    model: str | None = None


ModelStreamChunk = TextDelta | ThinkingDelta | ToolCallStart | ToolCallArgsDelta | ModelTurn
