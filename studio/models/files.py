"""Project file data models."""

import posixpath
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "css",
    "sass": "css",
    "less": "css",
    "json": "json",
    "md": "markdown",
    "markdown": "markdown",
    "xml": "xml",
    "svg": "xml",
    "yaml": "yaml",
    "yml": "yaml",
    "sql": "sql",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "cs": "csharp",
    "php": "php",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "sh": "shell",
}


def language_from_path(path: str) -> str:
    """Guess the editor language of a file from its extension."""
    name = posixpath.basename(path)
    if "." not in name:
        return "plaintext"
    extension = name.rsplit(".", 1)[-1].lower()
    return LANGUAGE_BY_EXTENSION.get(extension, "plaintext")


@dataclass(frozen=True)
class ExecutionContext:
    """Identifies whose project a tool call operates on."""

    project_id: str
    user_id: str


@dataclass
class ProjectFile:
    """A file or folder record owned by the file store."""

    id: str
    project_id: str
    user_id: str
    path: str
    type: Literal["file", "folder"] = "file"
    content: str = ""
    language: str = "plaintext"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))

    def summary(self) -> dict[str, Any]:
        """Metadata shown to the model when listing files."""
        return {
            "path": self.path,
            "name": self.name,
            "type": self.type,
            "language": self.language,
            "size": self.size,
            "updatedAt": self.updated_at.isoformat(),
        }

    def as_dict(self) -> dict[str, Any]:
        """Return the file, content included."""
        return {**self.summary(), "content": self.content}
