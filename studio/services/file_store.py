"""Project file storage interface and implementations."""

import asyncio
from datetime import UTC, datetime
from typing import Literal, Protocol

from cuid2 import cuid_wrapper

from studio.models.files import ProjectFile, language_from_path
from studio.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class FileStore(Protocol):
    """Interface for project file persistence.

    Paths are unique within a project. Concurrent writers are resolved by the
    store (last write wins for the in-memory implementation).
    """

    async def list_files(self, project_id: str) -> list[ProjectFile]:
        """List every file of a project in store order."""
        ...

    async def get_file(self, project_id: str, path: str) -> ProjectFile | None:
        """Get a file by path, or None if it does not exist."""
        ...

    async def create_file(
        self,
        project_id: str,
        user_id: str,
        path: str,
        content: str,
        type: Literal["file", "folder"] = "file",
    ) -> ProjectFile:
        """Create a file.

        Raises:
            FileExistsError: If the path is already taken
        """
        ...

    async def update_file(self, project_id: str, path: str, content: str) -> ProjectFile:
        """Replace a file's content.

        Raises:
            KeyError: If the file does not exist
        """
        ...

    async def delete_file(self, project_id: str, path: str) -> None:
        """Delete a file.

        Raises:
            KeyError: If the file does not exist
        """
        ...


class InMemoryFileStore:
    """In-memory file store.

    Files of a project are kept in creation order.
    """

    def __init__(self):
        self.projects: dict[str, dict[str, ProjectFile]] = {}
        self._lock = asyncio.Lock()

    async def list_files(self, project_id: str) -> list[ProjectFile]:
        return list(self.projects.get(project_id, {}).values())

    async def get_file(self, project_id: str, path: str) -> ProjectFile | None:
        return self.projects.get(project_id, {}).get(path)

    async def create_file(
        self,
        project_id: str,
        user_id: str,
        path: str,
        content: str,
        type: Literal["file", "folder"] = "file",
    ) -> ProjectFile:
        async with self._lock:
            files = self.projects.setdefault(project_id, {})
            if path in files:
                raise FileExistsError(path)

            project_file = ProjectFile(
                id=cuid(),
                project_id=project_id,
                user_id=user_id,
                path=path,
                type=type,
                content=content if type == "file" else "",
                language=language_from_path(path) if type == "file" else "plaintext",
            )
            files[path] = project_file

        logger.debug(f"Created {path} in project {project_id} ({project_file.size} bytes)")
        return project_file

    async def update_file(self, project_id: str, path: str, content: str) -> ProjectFile:
        async with self._lock:
            project_file = self.projects.get(project_id, {}).get(path)
            if project_file is None:
                raise KeyError(path)

            project_file.content = content
            project_file.language = language_from_path(path)
            project_file.updated_at = datetime.now(UTC)

        logger.debug(f"Updated {path} in project {project_id} ({project_file.size} bytes)")
        return project_file

    async def delete_file(self, project_id: str, path: str) -> None:
        async with self._lock:
            files = self.projects.get(project_id, {})
            if path not in files:
                raise KeyError(path)
            del files[path]

        logger.debug(f"Deleted {path} from project {project_id}")


_file_store: InMemoryFileStore | None = None


def get_file_store() -> InMemoryFileStore:
    """Get or create the file store instance."""
    global _file_store
    if _file_store is None:
        _file_store = InMemoryFileStore()
    return _file_store
