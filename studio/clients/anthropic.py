"""Anthropic API client with streaming, rate limiting and error handling."""

import asyncio
import json
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import anthropic
import tiktoken
from anthropic import AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from studio.models.llm import (
    ContentBlock,
    ConversationTurn,
    LLMUsage,
    ModelStreamChunk,
    ModelTurn,
    TextBlock,
    TextDelta,
    ThinkingDelta,
    ToolCallArgsDelta,
    ToolCallRequest,
    ToolCallStart,
    ToolResultBlock,
    ToolUseBlock,
)
from studio.services.model_provider import ModelProviderError
from studio.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 16000  # Whole files are written through tool arguments
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0

    # Token limits for validation and truncation
    max_message_tokens: int = 8000  # Maximum tokens per user message
    max_conversation_tokens: int = 200000
    token_headroom: int = 16000  # Reserve tokens for response


class AnthropicRateLimiter:
    """Request and token rate limiter using the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the rate limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def classify_provider_error(error: Exception) -> ModelProviderError:
    """Map an Anthropic SDK error to a ModelProviderError."""
    if isinstance(error, anthropic.APITimeoutError):
        return ModelProviderError("The model request timed out", recoverable=True)
    if isinstance(error, anthropic.APIConnectionError):
        return ModelProviderError("Could not reach the model provider", recoverable=True)
    if isinstance(error, anthropic.RateLimitError):
        return ModelProviderError("The model provider is rate limiting requests", recoverable=True)
    if isinstance(error, anthropic.APIStatusError):
        recoverable = error.status_code >= 500 or error.status_code in (408, 409)
        return ModelProviderError(f"Model provider error ({error.status_code}): {error.message}", recoverable)
    return ModelProviderError(f"Unexpected model provider error: {error}", recoverable=False)


def _tool_result_is_error(content: str) -> bool:
    try:
        payload = json.loads(content)
    except (TypeError, ValueError):
        return False
    return isinstance(payload, dict) and payload.get("success") is False


def to_anthropic_messages(turns: list[ConversationTurn]) -> tuple[str, list[AnthropicMessage]]:
    """Convert conversation turns to the Anthropic system prompt and message list.

    Consecutive tool turns are merged into one user message of tool_result
    blocks, following the assistant message that requested them.
    """
    system_parts: list[str] = []
    messages: list[AnthropicMessage] = []

    for turn in turns:
        if turn.role == "system":
            system_parts.append(turn.content)

        elif turn.role == "tool":
            block = ToolResultBlock(
                tool_use_id=turn.tool_call_id or "",
                content=turn.content,
                is_error=_tool_result_is_error(turn.content),
            )
            previous = messages[-1] if messages else None
            if (
                previous is not None
                and previous.role == "user"
                and isinstance(previous.content, list)
                and all(isinstance(item, ToolResultBlock) for item in previous.content)
            ):
                previous.content.append(block)
            else:
                messages.append(AnthropicMessage(role="user", content=[block]))

        elif turn.role == "assistant" and turn.tool_calls:
            blocks: list[ContentBlock] = []
            if turn.content:
                blocks.append(TextBlock(text=turn.content))
            for tool_call in turn.tool_calls:
                arguments = tool_call.arguments if isinstance(tool_call.arguments, dict) else {}
                blocks.append(ToolUseBlock(id=tool_call.id, name=tool_call.name, input=arguments))
            messages.append(AnthropicMessage(role="assistant", content=blocks))

        elif turn.content:
            messages.append(AnthropicMessage(role=turn.role, content=turn.content))

    return "\n\n".join(part for part in system_parts if part), messages


def _decode_arguments(raw: str) -> dict[str, Any] | str:
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return decoded if isinstance(decoded, dict) else raw


class AnthropicClient:
    """Anthropic model provider with rate limiting, retries and streaming."""

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter = AnthropicRateLimiter()

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key

        # Retries are handled by _request_with_retries
        self.client = AsyncAnthropic(api_key=self.api_key, max_retries=0)
        self.config = config or AnthropicConfig(model=os.getenv("STUDIO_MODEL", AnthropicConfig.model))

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream_turn(
        self,
        messages: list[ConversationTurn],
        tools: list[dict[str, Any]],
        **kwargs: Any,
    ) -> AsyncIterator[ModelStreamChunk]:
        """Stream one Claude response as provider-agnostic chunks.

        Args:
            messages: Conversation so far, system turns included
            tools: Tool schemas (name, description, input_schema)
            **kwargs: Overrides for model, max_tokens, temperature

        Yields:
            Text, thinking and tool call chunks, then a final ModelTurn

        Raises:
            ModelProviderError: If the request or the stream fails
        """
        system_prompt, anthropic_messages = to_anthropic_messages(messages)
        anthropic_tools = self._build_tools(tools)
        truncated_messages = self.truncate_conversation(anthropic_messages, system_prompt, anthropic_tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model") or self.config.model,
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "messages": [msg.model_dump() for msg in truncated_messages],
            "stream": True,
        }
        if system_prompt:
            request_params["system"] = system_prompt
        if anthropic_tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in anthropic_tools]

        logger.debug(
            f"Streaming message with {len(truncated_messages)} messages, {len(anthropic_tools)} tools, "
            f"model: {request_params['model']}"
        )

        try:
            stream = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
        except anthropic.APIError as e:
            raise classify_provider_error(e) from e

        try:
            async for chunk in self._read_stream(stream):
                yield chunk
        except anthropic.APIError as e:
            raise classify_provider_error(e) from e
        finally:
            await stream.close()

    async def complete(self, prompt: str, system_prompt: str | None = None, **kwargs: Any) -> str:
        """Send a single user prompt without tools and return the reply text.

        Args:
            prompt: User message
            system_prompt: Optional system prompt
            **kwargs: Overrides for model, max_tokens, temperature

        Raises:
            ModelProviderError: If the request fails
        """
        estimated_tokens = self.estimate_message_tokens((system_prompt or "") + prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model") or self.config.model,
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request_params["system"] = system_prompt

        try:
            response = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
        except anthropic.APIError as e:
            raise classify_provider_error(e) from e

        return "".join(block.text for block in response.content if block.type == "text").strip()

    async def _read_stream(self, stream: Any) -> AsyncIterator[ModelStreamChunk]:
        """Translate raw Anthropic stream events into chunks."""
        text_parts: list[str] = []
        tool_blocks: dict[int, dict[str, str]] = {}
        stop_reason: str | None = None
        usage = LLMUsage()
        model: str | None = None

        async for event in stream:
            if event.type == "message_start":
                model = event.message.model
                if event.message.usage:
                    usage.input_tokens = event.message.usage.input_tokens or 0
                    usage.cache_creation_input_tokens = event.message.usage.cache_creation_input_tokens or 0
                    usage.cache_read_input_tokens = event.message.usage.cache_read_input_tokens or 0

            elif event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    tool_blocks[event.index] = {"id": block.id, "name": block.name, "json": ""}
                    yield ToolCallStart(id=block.id, name=block.name)
                elif block.type == "text" and block.text:
                    text_parts.append(block.text)
                    yield TextDelta(text=block.text)

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    text_parts.append(delta.text)
                    yield TextDelta(text=delta.text)
                elif delta.type == "input_json_delta":
                    tool_block = tool_blocks.get(event.index)
                    if tool_block is not None:
                        tool_block["json"] += delta.partial_json
                        yield ToolCallArgsDelta(id=tool_block["id"], partial_json=delta.partial_json)
                elif delta.type == "thinking_delta":
                    yield ThinkingDelta(text=delta.thinking)

            elif event.type == "message_delta":
                stop_reason = event.delta.stop_reason
                if event.usage:
                    usage.output_tokens = event.usage.output_tokens or 0

        if stop_reason is None:
            raise ModelProviderError("The model stream ended before the response was complete", recoverable=True)

        usage.total_tokens = usage.input_tokens + usage.output_tokens
        logger.debug(f"Stream finished - Stop reason: {stop_reason}, tool calls: {len(tool_blocks)}")

        yield ModelTurn(
            text="".join(text_parts),
            tool_calls=[
                ToolCallRequest(id=block["id"], name=block["name"], arguments=_decode_arguments(block["json"]))
                for _, block in sorted(tool_blocks.items())
            ],
            stop_reason=stop_reason,
            usage=usage,
            model=model,
        )

    def _build_tools(self, tools: list[dict[str, Any]]) -> list[AnthropicTool]:
        anthropic_tools = []
        for i, tool in enumerate(tools):
            # Cache control on the last tool caches all tool definitions
            cache_control = CacheControl() if i == len(tools) - 1 else None
            anthropic_tools.append(
                AnthropicTool(
                    name=tool["name"],
                    description=tool["description"],
                    input_schema=tool["input_schema"],
                    cache_control=cache_control,
                )
            )
        return anthropic_tools

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute Anthropic API request with retry logic."""
        for attempt in range(self.config.max_retries):
            try:
                return await call()

            except anthropic.APIStatusError as e:
                if e.status_code == 429:  # Rate limit exceeded
                    retry_after = 60
                    if e.response is not None and e.response.headers:
                        retry_after = int(e.response.headers.get("retry-after", 60))

                    if retry_after < 120 and attempt < self.config.max_retries - 1:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif e.status_code >= 500 and attempt < self.config.max_retries - 1:
                    # Server error, retry with exponential backoff
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise

            except anthropic.APIConnectionError:
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise

        raise ModelProviderError(
            f"Failed to complete request after {self.config.max_retries} attempts", recoverable=True
        )

    def _message_text(self, message: AnthropicMessage) -> str:
        if isinstance(message.content, str):
            return message.content

        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(json.dumps(block.input))
            elif isinstance(block, ToolResultBlock):
                parts.append(block.content)
        return "".join(parts)

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting.

        Args:
            messages: Conversation messages
            system_prompt: System prompt

        Returns:
            Estimated token count
        """
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Args:
            message: Message content

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The first plain user message (the request that started the work) is
        always kept. After it, the oldest messages are dropped, and a tool
        result is never kept without the assistant message that requested it.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom

        system_tokens = self.estimate_message_tokens(system_prompt)

        tool_tokens = 0
        if tools:
            tool_content = ""
            for tool in tools:
                tool_content += tool.name + tool.description + str(tool.input_schema)
            tool_tokens = self.estimate_message_tokens(tool_content)

        available_tokens -= system_tokens + tool_tokens

        message_tokens = [self.estimate_message_tokens(self._message_text(message)) for message in messages]
        if sum(message_tokens) <= available_tokens:
            return messages

        anchor = next((i for i, message in enumerate(messages) if self._opens_exchange(message)), None)
        if anchor is None:
            logger.warning("Conversation has no user request to keep, sending only the newest message")
            return messages[-1:]

        remaining_tokens = available_tokens - message_tokens[anchor]
        start = len(messages)
        while start > anchor + 1 and message_tokens[start - 1] <= remaining_tokens:
            start -= 1
            remaining_tokens -= message_tokens[start]

        # Tool results whose tool use was dropped cannot be sent
        while start < len(messages) and messages[start].role == "user" and not self._opens_exchange(messages[start]):
            start += 1

        tail = messages[start:]
        if tail and self._opens_exchange(tail[0]):
            truncated_messages = tail
        else:
            truncated_messages = [messages[anchor], *tail]

        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
            f"to fit within {available_tokens} token limit"
        )
        return truncated_messages

    @staticmethod
    def _opens_exchange(message: AnthropicMessage) -> bool:
        if message.role != "user":
            return False
        if isinstance(message.content, str):
            return True
        return not any(isinstance(block, ToolResultBlock) for block in message.content)


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient()
    return _anthropic_client
