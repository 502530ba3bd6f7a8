"""Notifications about files changed by tool calls.

The editor, preview sandbox and any other view of a project subscribe here
instead of the tool executor reaching into their state.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from studio.models.files import ProjectFile
from studio.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FileChange:
    """A file mutation that listeners should mirror."""

    kind: Literal["created", "updated", "deleted"]
    project_id: str
    path: str
    file: ProjectFile | None = None


FileChangeListener = Callable[[FileChange], None]


class FileChangeNotifier:
    """Synchronous fan-out of file changes to subscribed listeners.

    Delivery is best-effort: a failing listener is logged and skipped, it
    never fails the tool call that produced the change.
    """

    def __init__(self):
        self._listeners: list[FileChangeListener] = []

    def subscribe(self, listener: FileChangeListener) -> Callable[[], None]:
        """Register a listener and return a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, change: FileChange) -> None:
        """Deliver a change to every listener."""
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.warning(f"File change listener failed for {change.kind} {change.path}: {e}", exc_info=True)


_file_change_notifier: FileChangeNotifier | None = None


def get_file_change_notifier() -> FileChangeNotifier:
    """Get or create the file change notifier instance."""
    global _file_change_notifier
    if _file_change_notifier is None:
        _file_change_notifier = FileChangeNotifier()
    return _file_change_notifier
