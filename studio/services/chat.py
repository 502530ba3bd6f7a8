"""Chat service: turns a chat request into an orchestrated event stream."""

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from studio.clients.anthropic import get_anthropic_client
from studio.models.conversation import ChatRequest
from studio.models.files import ExecutionContext, ProjectFile
from studio.models.llm import ConversationTurn
from studio.protocol.events import StreamEvent
from studio.services.file_store import FileStore, get_file_store
from studio.services.message_store import InMemoryMessageStore, get_message_store
from studio.services.model_provider import ModelProvider
from studio.services.orchestrator import Orchestrator, OrchestratorConfig
from studio.services.prompts import build_system_prompt, describe_attachments
from studio.services.tool_executor import ToolExecutor
from studio.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ChatTurn:
    """A validated request, ready to be streamed."""

    request: ChatRequest
    context: ExecutionContext
    conversation: list[ConversationTurn]
    system_prompt: str
    model_kwargs: dict[str, Any] = field(default_factory=dict)


class ChatService:
    """Prepares chat turns, runs the orchestrator and records the outcome."""

    def __init__(
        self,
        provider: ModelProvider,
        executor: ToolExecutor | None = None,
        file_store: FileStore | None = None,
        message_store: InMemoryMessageStore | None = None,
        config: OrchestratorConfig | None = None,
    ):
        self.provider = provider
        self.executor = executor or ToolExecutor()
        self.file_store = file_store or get_file_store()
        self.message_store = message_store or get_message_store()
        self.config = config or OrchestratorConfig()

    async def prepare_turn(self, request: ChatRequest) -> ChatTurn:
        """Validate a request and build the conversation for the model.

        The user message is recorded before the turn starts streaming.

        Args:
            request: Chat request from the client

        Returns:
            ChatTurn to pass to ``stream_turn``

        Raises:
            ValueError: If the request has no usable user message or it is too long
        """
        if not request.messages or request.messages[-1].role != "user":
            raise ValueError("The last message must be a user message")

        latest = request.messages[-1].content
        if not latest.strip():
            raise ValueError("Message cannot be empty")

        self.provider.validate_message_tokens(latest)

        mentioned_files: list[ProjectFile] = []
        for path in request.mentioned_files:
            project_file = await self.file_store.get_file(request.project_id, path)
            if project_file is None:
                logger.warning(f"Mentioned file {path} not found in project {request.project_id}")
                continue
            mentioned_files.append(project_file)

        system_prompt = build_system_prompt(
            self.executor.registry.tool_summary(),
            plan_mode=request.plan_mode,
            mentioned_files=mentioned_files,
        )

        conversation = [
            ConversationTurn(role=message.role, content=message.content) for message in request.messages[:-1]
        ]
        attachment_notes = describe_attachments(request.attachments)
        user_content = f"{latest}\n\n{attachment_notes}" if attachment_notes else latest
        conversation.append(ConversationTurn(role="user", content=user_content))

        self.message_store.add_message(request.project_id, request.user_id, "user", latest)

        logger.info(
            f"Prepared chat turn for project {request.project_id}: {len(conversation)} messages, "
            f"{len(mentioned_files)} mentioned files, {len(request.attachments)} attachments, "
            f"plan mode {'on' if request.plan_mode else 'off'}"
        )

        return ChatTurn(
            request=request,
            context=ExecutionContext(project_id=request.project_id, user_id=request.user_id),
            conversation=conversation,
            system_prompt=system_prompt,
            model_kwargs={"model": request.model} if request.model else {},
        )

    async def stream_turn(self, turn: ChatTurn) -> AsyncIterator[StreamEvent]:
        """Run the orchestrator for a prepared turn and record the assistant reply."""
        orchestrator = Orchestrator(self.provider, self.executor, self.config)
        first_new_turn = len(turn.conversation)

        try:
            async with aclosing(
                orchestrator.run(turn.conversation, turn.context, turn.system_prompt, **turn.model_kwargs)
            ) as events:
                async for event in events:
                    yield event
        finally:
            self._record_assistant_message(turn, turn.conversation[first_new_turn:])

    def _record_assistant_message(self, turn: ChatTurn, new_turns: list[ConversationTurn]) -> None:
        """Store the assistant text and a summary of the tool calls it made."""
        texts = [t.content for t in new_turns if t.role == "assistant" and t.content]
        results = {t.tool_call_id: t.content for t in new_turns if t.role == "tool"}

        tool_calls = []
        summary_lines = []
        for assistant_turn in new_turns:
            for call in assistant_turn.tool_calls or []:
                outcome = self._decode_result(results.get(call.id))
                tool_calls.append({"id": call.id, "name": call.name, "arguments": call.arguments, "result": outcome})

                target = call.arguments.get("path", "") if isinstance(call.arguments, dict) else ""
                status = "success" if outcome.get("success") else f"failed: {outcome.get('error') or 'not run'}"
                summary_lines.append(f"- {call.name}{f' {target}' if target else ''} ({status})")

        if not texts and not tool_calls:
            return

        content = "\n\n".join(part for part in ["\n\n".join(texts), "\n".join(summary_lines)] if part)
        try:
            self.message_store.add_message(
                turn.context.project_id,
                turn.context.user_id,
                "assistant",
                content,
                metadata={"model": turn.request.model, "toolCalls": tool_calls},
            )
        except Exception as e:
            logger.error(f"Failed to save assistant message for project {turn.context.project_id}: {e}", exc_info=True)

    @staticmethod
    def _decode_result(raw: str | None) -> dict[str, Any]:
        if raw is None:
            return {"success": False, "error": "not run"}
        try:
            payload = json.loads(raw)
        except ValueError:
            return {"success": False, "error": "unreadable result"}
        if not isinstance(payload, dict):
            return {"success": False, "error": "unreadable result"}
        return {"success": bool(payload.get("success")), "error": payload.get("error")}


_chat_service: ChatService | None = None


def get_chat_service() -> ChatService:
    """Get or create the chat service backed by the Anthropic client."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(get_anthropic_client())
    return _chat_service
