"""Chat request and response data models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for models exchanged with the browser client (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(ApiModel):
    """A prior message as sent by the client."""

    role: Literal["user", "assistant", "system"]
    content: str


class Attachment(ApiModel):
    """A file the user attached to the message."""

    name: str
    mime_type: str | None = None
    url: str | None = None
    content: str | None = None


class ChatRequest(ApiModel):
    """Request model for the chat endpoint."""

    messages: list[ChatMessage]
    project_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    attachments: list[Attachment] = Field(default_factory=list)
    mentioned_files: list[str] = Field(default_factory=list)
    plan_mode: bool = False
    model: str | None = None


class StoredMessage(ApiModel):
    """A message persisted for a project."""

    id: str
    project_id: str
    user_id: str
    role: Literal["user", "assistant"]
    content: str
    sequence: int
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessagesResponse(ApiModel):
    """Response model for a project's message history."""

    project_id: str
    messages: list[StoredMessage]
    last_message_at: datetime | None = None


class FilesResponse(ApiModel):
    """Response model for a project's file listing."""

    project_id: str
    files: list[dict[str, Any]]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str


class EnhancePromptRequest(ApiModel):
    """Request model for prompt enhancement."""

    prompt: str
    project_summary: str | None = None
    is_first_message: bool = False


class EnhancePromptResponse(ApiModel):
    """Response model for prompt enhancement."""

    success: bool = True
    enhanced_prompt: str


class GenerateNameRequest(ApiModel):
    """Request model for project name generation."""

    idea: str


class GenerateNameResponse(ApiModel):
    """Response model for project name generation."""

    success: bool = True
    title: str
