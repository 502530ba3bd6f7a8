"""Project file tools: list, read, create, update and delete."""

from typing import Any

from pydantic import BaseModel, Field

from studio.models.files import ExecutionContext
from studio.services.file_events import FileChange, FileChangeNotifier
from studio.services.file_store import FileStore
from studio.tools.base import (
    EmptyInput,
    FileAlreadyExistsError,
    FileNotFoundInProjectError,
    InvalidPathError,
    ToolDefinition,
    validate_path,
)
from studio.utils.logging import get_logger

logger = get_logger(__name__)


class ReadFileInput(BaseModel):
    """Input schema for read_file."""

    path: str = Field(
        ...,
        description=(
            "The file path starting with / (e.g., /src/App.tsx, /src/components/Button.tsx, "
            "/src/index.css, /package.json, /tailwind.config.js)."
        ),
    )


class CreateFileInput(BaseModel):
    """Input schema for create_file."""

    path: str = Field(
        ...,
        description=(
            "File path starting with / (e.g., /src/components/Button.tsx, /src/hooks/useAuth.ts, "
            "/src/styles/button.css). Supports nested folders."
        ),
    )
    content: str = Field(
        ...,
        description=(
            "Complete file content. For React components, include proper TypeScript types and Tailwind CSS "
            "classes. Write production-ready, clean, well-commented code."
        ),
    )
    description: str | None = Field(
        None, description="Brief explanation of what this file does (max 100 characters)."
    )


class UpdateFileInput(BaseModel):
    """Input schema for update_file."""

    path: str = Field(
        ..., description="File path to update, starting with / (e.g., /src/App.tsx, /src/components/Header.tsx)"
    )
    content: str = Field(
        ...,
        description=(
            "Complete new file content with proper TypeScript types and Tailwind CSS. "
            "Include ALL code, not just the changes."
        ),
    )
    description: str | None = Field(
        None, description="Brief explanation of what changed and why (max 100 characters)."
    )


class DeleteFileInput(BaseModel):
    """Input schema for delete_file."""

    path: str = Field(
        ..., description="File path to delete, starting with / (e.g., /src/components/OldComponent.tsx)"
    )


async def _create(
    file_store: FileStore,
    notifier: FileChangeNotifier,
    path: str,
    content: str,
    description: str | None,
    context: ExecutionContext,
) -> dict[str, Any]:
    if await file_store.get_file(context.project_id, path) is not None:
        raise FileAlreadyExistsError(f"File already exists: {path}. Use update_file instead")

    try:
        project_file = await file_store.create_file(context.project_id, context.user_id, path, content)
    except FileExistsError as e:
        # Another turn created it between the check and the write
        raise FileAlreadyExistsError(f"File already exists: {path}. Use update_file instead") from e

    notifier.notify(FileChange(kind="created", project_id=context.project_id, path=path, file=project_file))

    result: dict[str, Any] = {
        "success": True,
        "file": project_file.summary(),
        "message": f"Successfully created {path}",
    }
    if description:
        result["description"] = description
    return result


def create_list_project_files_tool(file_store: FileStore) -> ToolDefinition:
    async def list_project_files_handler(params: EmptyInput, context: ExecutionContext) -> dict[str, Any]:
        files = await file_store.list_files(context.project_id)
        return {
            "success": True,
            "files": [project_file.summary() for project_file in files],
            "totalFiles": len(files),
            "message": f"Found {len(files)} files in the project",
        }

    return ToolDefinition(
        name="list_project_files",
        description=(
            "List all files and folders in the project to understand the project structure. "
            "Use this before making file changes to see what already exists."
        ),
        input_schema_class=EmptyInput,
        handler=list_project_files_handler,
    )


def create_read_file_tool(file_store: FileStore) -> ToolDefinition:
    async def read_file_handler(params: ReadFileInput, context: ExecutionContext) -> dict[str, Any]:
        path = validate_path(params.path)

        project_file = await file_store.get_file(context.project_id, path)
        if project_file is None:
            files = await file_store.list_files(context.project_id)
            raise FileNotFoundInProjectError(
                f"File not found: {path}",
                availableFiles=[candidate.path for candidate in files],
            )
        if project_file.type == "folder":
            raise InvalidPathError(f"Path is a folder, not a file: {path}")

        return {
            "success": True,
            "file": project_file.as_dict(),
            "message": f"Successfully read {path}",
        }

    return ToolDefinition(
        name="read_file",
        description=(
            "Read the content of a specific file in the project. Always read a file before updating it to "
            "ensure you don't lose important code. Works with .tsx, .ts, .jsx, .js, .css, .html, .json files."
        ),
        input_schema_class=ReadFileInput,
        handler=read_file_handler,
    )


def create_create_file_tool(file_store: FileStore, notifier: FileChangeNotifier) -> ToolDefinition:
    async def create_file_handler(params: CreateFileInput, context: ExecutionContext) -> dict[str, Any]:
        path = validate_path(params.path)
        return await _create(file_store, notifier, path, params.content, params.description, context)

    return ToolDefinition(
        name="create_file",
        description=(
            "Create a new file in the project. Supports React components (.tsx), TypeScript files (.ts), "
            "HTML, stylesheets (.css), and config files. Fails if the file already exists; use update_file "
            "for existing files. The file is synced to the live preview automatically."
        ),
        input_schema_class=CreateFileInput,
        handler=create_file_handler,
    )


def create_update_file_tool(file_store: FileStore, notifier: FileChangeNotifier) -> ToolDefinition:
    async def update_file_handler(params: UpdateFileInput, context: ExecutionContext) -> dict[str, Any]:
        path = validate_path(params.path)

        existing = await file_store.get_file(context.project_id, path)
        if existing is None:
            logger.info(f"update_file on missing {path}, creating it instead")
            return await _create(file_store, notifier, path, params.content, params.description, context)
        if existing.type == "folder":
            raise InvalidPathError(f"Path is a folder, not a file: {path}")

        try:
            project_file = await file_store.update_file(context.project_id, path, params.content)
        except KeyError:
            # Deleted by another turn since the lookup
            return await _create(file_store, notifier, path, params.content, params.description, context)

        notifier.notify(FileChange(kind="updated", project_id=context.project_id, path=path, file=project_file))

        result: dict[str, Any] = {
            "success": True,
            "file": project_file.summary(),
            "message": f"Successfully updated {path}",
        }
        if params.description:
            result["description"] = params.description
        return result

    return ToolDefinition(
        name="update_file",
        description=(
            "Update an existing file with new content. This completely replaces the file content and syncs "
            "with the live preview. Always read the file first to understand what needs to be changed. "
            "If the file does not exist it is created."
        ),
        input_schema_class=UpdateFileInput,
        handler=update_file_handler,
    )


def create_delete_file_tool(file_store: FileStore, notifier: FileChangeNotifier) -> ToolDefinition:
    async def delete_file_handler(params: DeleteFileInput, context: ExecutionContext) -> dict[str, Any]:
        path = validate_path(params.path)

        existing = await file_store.get_file(context.project_id, path)
        if existing is None:
            raise FileNotFoundInProjectError(f"File not found: {path}")

        try:
            await file_store.delete_file(context.project_id, path)
        except KeyError as e:
            raise FileNotFoundInProjectError(f"File not found: {path}") from e

        notifier.notify(FileChange(kind="deleted", project_id=context.project_id, path=path))

        return {
            "success": True,
            "message": f"Successfully deleted {path}",
            "deletedFile": {"path": existing.path, "name": existing.name},
        }

    return ToolDefinition(
        name="delete_file",
        description=(
            "Delete a file from the project and remove it from the live preview. Use with caution. "
            "Make sure this is what the user wants before deleting."
        ),
        input_schema_class=DeleteFileInput,
        handler=delete_file_handler,
    )
