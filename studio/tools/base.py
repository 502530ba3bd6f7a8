"""Base types and definitions for tools."""

import posixpath
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Literal

from pydantic import BaseModel

from studio.models.files import ExecutionContext

ToolName = Literal[
    "list_project_files",
    "read_file",
    "create_file",
    "update_file",
    "delete_file",
    "search_files",
    "find_in_files",
    "web_search",
    "get_code_context",
    "crawl_url",
]

ToolHandler = Callable[[Any, ExecutionContext], Awaitable[dict[str, Any]]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: ToolName
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        schema = self.input_schema_class.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)


class EmptyInput(BaseModel):
    """Input schema for tools that don't take parameters."""


class ToolError(Exception):
    """A tool failure the model should see and react to."""

    error_type: ClassVar[str] = "ToolError"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_content(self) -> dict[str, Any]:
        return {"success": False, "error": self.message, "errorType": self.error_type, **self.details}


class InvalidPathError(ToolError):
    error_type = "InvalidPath"


class FileNotFoundInProjectError(ToolError):
    error_type = "NotFound"


class FileAlreadyExistsError(ToolError):
    error_type = "AlreadyExists"


class InvalidPatternError(ToolError):
    error_type = "InvalidPattern"


class InvalidUrlError(ToolError):
    error_type = "InvalidUrl"


class ToolNotConfiguredError(ToolError):
    error_type = "NotConfigured"


class ProviderToolError(ToolError):
    error_type = "ProviderError"


def validate_path(path: str) -> str:
    """Check that a project path is absolute and well formed.

    Raises:
        InvalidPathError: If the path is empty, relative, a directory or escapes the root
    """
    if not path or not path.startswith("/"):
        raise InvalidPathError(f"Path must start with /: {path!r}")
    if path == "/" or path.endswith("/"):
        raise InvalidPathError(f"Path must name a file, not a directory: {path!r}")
    if ".." in path.split("/") or "//" in path:
        raise InvalidPathError(f"Path must not contain empty or '..' segments: {path!r}")
    return posixpath.normpath(path)
