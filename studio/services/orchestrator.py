"""Agentic tool-calling loop that turns one user message into stream events."""

import asyncio
import json
import re
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Literal

from studio.models.files import ExecutionContext
from studio.models.llm import (
    ConversationTurn,
    LLMUsage,
    ModelTurn,
    TextDelta,
    ThinkingDelta,
    ToolCallArgsDelta,
    ToolCallRequest,
    ToolCallStart,
    ToolResult,
)
from studio.protocol.events import (
    BuildingProgress,
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
from studio.services.model_provider import ModelProvider, ModelProviderError
from studio.services.tool_executor import ToolExecutor
from studio.utils.logging import get_logger

logger = get_logger(__name__)

Complexity = Literal["simple", "complex"]

COMPLEX_KEYWORDS: tuple[str, ...] = (
    "full",
    "complete",
    "comprehensive",
    "dashboard",
    "e-commerce",
    "ecommerce",
    "entire",
    "multi-page",
)


@dataclass
class OrchestratorConfig:
    """Iteration budgets and streaming knobs for one orchestrator run."""

    simple_budget: int = 15
    complex_budget: int = 30
    complex_keywords: tuple[str, ...] = COMPLEX_KEYWORDS
    building_progress_step: int = 256  # Characters of argument JSON between building events

    def budget_for(self, complexity: Complexity) -> int:
        return self.complex_budget if complexity == "complex" else self.simple_budget


def classify_complexity(message: str, keywords: tuple[str, ...] = COMPLEX_KEYWORDS) -> Complexity:
    """Classify a user message as a simple or complex build request.

    A message is complex when any keyword appears as a whole word.
    """
    for keyword in keywords:
        if re.search(rf"\b{re.escape(keyword)}\b", message, re.IGNORECASE):
            return "complex"
    return "simple"


def _latest_user_message(conversation: list[ConversationTurn]) -> str:
    for turn in reversed(conversation):
        if turn.role == "user":
            return turn.content
    return ""


def _partial_arguments(raw: str) -> dict[str, Any]:
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


@dataclass
class _ModelStep:
    """Bookkeeping for one streamed model call."""

    thinking_started_at: float
    thinking_open: bool = True
    tool_names: dict[str, str] = field(default_factory=dict)
    tool_args: dict[str, str] = field(default_factory=dict)
    reported_length: dict[str, int] = field(default_factory=dict)
    turn: ModelTurn | None = None


class Orchestrator:
    """Runs the model/tool loop for one user turn as a lazy event stream.

    The caller iterates ``run()`` and forwards each event to the client.
    Closing the generator, or cancelling the task iterating it, stops the
    loop: the provider stream is closed and no further events are produced.
    A tool call that is already running is allowed to finish, but its
    result is discarded.
    """

    def __init__(
        self,
        provider: ModelProvider,
        executor: ToolExecutor,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.executor = executor
        self.config = config or OrchestratorConfig()
        self.clock = clock
        self._detached_tools: set[asyncio.Task] = set()

    async def run(
        self,
        conversation: list[ConversationTurn],
        context: ExecutionContext,
        system_prompt: str | None = None,
        **model_kwargs: Any,
    ) -> AsyncIterator[StreamEvent]:
        """Run the loop until the model stops calling tools or the budget runs out.

        Args:
            conversation: Conversation so far; assistant and tool turns are appended in place
            context: Project and user the tools operate on
            system_prompt: Prepended as a system turn on every model call
            **model_kwargs: Passed through to the model provider

        Yields:
            Stream events, always ending with ``done``
        """
        complexity = classify_complexity(_latest_user_message(conversation), self.config.complex_keywords)
        budget = self.config.budget_for(complexity)
        tools = self.executor.registry.get_tool_schemas()
        usage = LLMUsage()

        logger.info(
            f"Starting turn for project {context.project_id}: {complexity} task, budget {budget}, "
            f"{len(conversation)} turns in context"
        )
        yield StatusEvent(status="analyzing", message=f"Treating this as a {complexity} task (up to {budget} steps)")

        iterations = 0
        while iterations < budget:
            iterations += 1
            logger.debug(f"Model call {iterations}/{budget}")

            messages = list(conversation)
            if system_prompt:
                messages.insert(0, ConversationTurn(role="system", content=system_prompt))

            step = _ModelStep(thinking_started_at=self.clock())
            yield ThinkingStartEvent(timestamp=int(step.thinking_started_at * 1000))

            try:
                async with aclosing(self._stream_model(messages, tools, step, **model_kwargs)) as model_events:
                    async for event in model_events:
                        yield event
                if step.turn is None:
                    raise ModelProviderError("The model stream ended without a response", recoverable=True)
            except ModelProviderError as e:
                logger.warning(f"Model call failed (recoverable={e.recoverable}): {e.message}")
                yield ErrorEvent(error=e.message, recoverable=e.recoverable)
                yield DoneEvent()
                return
            except Exception as e:
                logger.error(f"Unexpected failure while calling the model: {e}", exc_info=True)
                yield ErrorEvent(error=f"Unexpected model failure: {e}", recoverable=False)
                yield DoneEvent()
                return

            turn = step.turn
            usage.add(turn.usage)
            conversation.append(
                ConversationTurn(role="assistant", content=turn.text, tool_calls=turn.tool_calls or None)
            )

            if not turn.tool_calls:
                logger.info(
                    f"Turn completed in {iterations} model calls, {usage.total_tokens} tokens "
                    f"(cache hit rate {usage.cache_hit_rate:.1f}%)"
                )
                yield DoneEvent()
                return

            logger.info(f"Model requested {len(turn.tool_calls)} tool calls")
            yield StatusEvent(status="executing", message=f"Running {len(turn.tool_calls)} tool call(s)")

            for call in turn.tool_calls:
                arguments = call.arguments if isinstance(call.arguments, dict) else {}
                yield ToolCallEvent(id=call.id, name=call.name, status="start", args=arguments)

                result = await self._execute(call, context)
                conversation.append(result.to_turn())

                if result.success:
                    yield ToolCallEvent(id=call.id, name=call.name, status="complete", result=result.content)
                else:
                    yield ToolCallEvent(
                        id=call.id, name=call.name, status="error", error=result.error, result=result.content
                    )

        logger.warning(f"Turn for project {context.project_id} stopped at the iteration budget ({budget})")
        yield StatusEvent(
            status="truncated",
            message=f"Stopped after {budget} steps. Ask me to continue to finish the remaining work.",
        )
        yield DoneEvent()

    async def _stream_model(
        self,
        messages: list[ConversationTurn],
        tools: list[dict[str, Any]],
        step: _ModelStep,
        **model_kwargs: Any,
    ) -> AsyncIterator[StreamEvent]:
        """Translate one provider stream into protocol events, recording the final turn on ``step``."""
        async with aclosing(self.provider.stream_turn(messages, tools, **model_kwargs)) as stream:
            async for chunk in stream:
                if isinstance(chunk, ThinkingDelta):
                    continue

                if step.thinking_open:
                    yield self._end_thinking(step)

                if isinstance(chunk, TextDelta):
                    if chunk.text:
                        yield TextEvent(content=chunk.text)

                elif isinstance(chunk, ToolCallStart):
                    step.tool_names[chunk.id] = chunk.name
                    step.tool_args[chunk.id] = ""
                    yield ToolCallPreviewEvent(id=chunk.id, name=chunk.name)

                elif isinstance(chunk, ToolCallArgsDelta):
                    building = self._building_event(step, chunk)
                    if building is not None:
                        yield building

                elif isinstance(chunk, ModelTurn):
                    step.turn = chunk

    def _end_thinking(self, step: _ModelStep) -> ThinkingEndEvent:
        step.thinking_open = False
        return ThinkingEndEvent(duration=round(self.clock() - step.thinking_started_at, 2))

    def _building_event(self, step: _ModelStep, chunk: ToolCallArgsDelta) -> ToolCallBuildingEvent | None:
        if chunk.id not in step.tool_names:
            return None

        raw = step.tool_args[chunk.id] + chunk.partial_json
        step.tool_args[chunk.id] = raw

        last_reported = step.reported_length.get(chunk.id)
        if last_reported is not None and len(raw) - last_reported < self.config.building_progress_step:
            return None

        step.reported_length[chunk.id] = len(raw)
        return ToolCallBuildingEvent(
            id=chunk.id,
            name=step.tool_names[chunk.id],
            args=_partial_arguments(raw),
            progress=BuildingProgress(args_length=len(raw)),
        )

    async def _execute(self, call: ToolCallRequest, context: ExecutionContext) -> ToolResult:
        """Run a tool call so that cancelling the turn does not interrupt it."""
        task = asyncio.ensure_future(self.executor.execute(call, context))
        self._detached_tools.add(task)
        task.add_done_callback(self._detached_tools.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info(f"Turn cancelled while {call.name} ({call.id}) was running; its result will be discarded")
            raise
