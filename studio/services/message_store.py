"""In-memory persistence of chat messages per project."""

from datetime import UTC, datetime
from typing import Any, Literal

from cuid2 import cuid_wrapper

from studio.models.conversation import StoredMessage
from studio.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class InMemoryMessageStore:
    """Message history keyed by project, in sequence order."""

    def __init__(self):
        self.messages: dict[str, list[StoredMessage]] = {}
        self.last_message_at: dict[str, datetime] = {}

    def add_message(
        self,
        project_id: str,
        user_id: str,
        role: Literal["user", "assistant"],
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        """Append a message to a project's history.

        Args:
            project_id: Project the message belongs to
            user_id: Author (or owner, for assistant messages)
            role: user or assistant
            content: Message text
            metadata: Extra data such as the model and tool call summaries

        Returns:
            The stored message with its sequence number
        """
        history = self.messages.setdefault(project_id, [])
        message = StoredMessage(
            id=cuid(),
            project_id=project_id,
            user_id=user_id,
            role=role,
            content=content,
            sequence=len(history),
            created_at=datetime.now(UTC),
            metadata=metadata or {},
        )
        history.append(message)
        self.last_message_at[project_id] = message.created_at

        logger.debug(f"Stored {role} message #{message.sequence} for project {project_id}")
        return message

    def list_messages(self, project_id: str) -> list[StoredMessage]:
        """Get a project's messages in sequence order."""
        return list(self.messages.get(project_id, []))

    def get_last_message_at(self, project_id: str) -> datetime | None:
        return self.last_message_at.get(project_id)


_message_store: InMemoryMessageStore | None = None


def get_message_store() -> InMemoryMessageStore:
    """Get or create the message store instance."""
    global _message_store
    if _message_store is None:
        _message_store = InMemoryMessageStore()
    return _message_store
