"""Model provider interface used by the orchestration loop."""

from collections.abc import AsyncIterator
from typing import Any, Protocol

from studio.models.llm import ConversationTurn, ModelStreamChunk


class ModelProviderError(Exception):
    """A model call failed.

    ``recoverable`` is True for transient failures (timeouts, connection
    errors, rate limits, 5xx) where retrying the same request makes sense.
    """

    def __init__(self, message: str, recoverable: bool):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ModelProvider(Protocol):
    """Chat completion with tool calling, streamed."""

    def stream_turn(
        self,
        messages: list[ConversationTurn],
        tools: list[dict[str, Any]],
        **kwargs: Any,
    ) -> AsyncIterator[ModelStreamChunk]:
        """Stream one model response.

        Yields text, thinking and tool call chunks as they arrive and always
        finishes with exactly one ``ModelTurn``. A provider that cannot stream
        may yield only the ``ModelTurn``.

        Raises:
            ModelProviderError: If the call fails
        """
        ...

    def validate_message_tokens(self, message: str) -> None:
        """Raise ValueError if a user message is too long for the model."""
        ...
