"""Project search tools: fuzzy file name search and content grep."""

import posixpath
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from studio.models.files import ExecutionContext, ProjectFile
from studio.services.file_store import FileStore
from studio.tools.base import InvalidPatternError, ToolDefinition

MAX_LINES_PER_FILE = 5
MAX_LINE_LENGTH = 200


class SearchFilesInput(BaseModel):
    """Input schema for search_files."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(
        ...,
        min_length=1,
        description="Characters of the file name in order (fuzzy, e.g. 'btn' finds Button.tsx) or part of the path",
    )
    extensions: list[str] | None = Field(
        None, description="Only return files with these extensions (e.g. ['tsx', 'css'])"
    )
    max_results: int = Field(10, alias="maxResults", ge=1, le=100, description="Maximum number of files to return")


class FindInFilesInput(BaseModel):
    """Input schema for find_in_files."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, description="Text or regular expression to look for in file contents")
    is_regex: bool = Field(False, alias="isRegex", description="Treat the query as a regular expression")
    case_sensitive: bool = Field(False, alias="caseSensitive", description="Match case exactly")
    extensions: list[str] | None = Field(
        None, description="Only search files with these extensions (e.g. ['ts', 'tsx'])"
    )
    max_results: int = Field(
        20, alias="maxResults", ge=1, le=200, description="Stop after this many files have matched"
    )


def is_fuzzy_match(query: str, text: str) -> bool:
    """True when the characters of ``query`` appear in ``text`` in order, ignoring case."""
    remaining = iter(text.lower())
    return all(char in remaining for char in query.lower())


def _normalize_extensions(extensions: list[str] | None) -> set[str] | None:
    if not extensions:
        return None
    return {extension.lower().lstrip(".") for extension in extensions if extension.strip(". ")}


def _has_extension(project_file: ProjectFile, allowed: set[str] | None) -> bool:
    if allowed is None:
        return True
    name = posixpath.basename(project_file.path)
    if "." not in name:
        return False
    return name.rsplit(".", 1)[-1].lower() in allowed


def create_search_files_tool(file_store: FileStore) -> ToolDefinition:
    async def search_files_handler(params: SearchFilesInput, context: ExecutionContext) -> dict[str, Any]:
        allowed = _normalize_extensions(params.extensions)
        needle = params.query.lower()

        matches: list[dict[str, Any]] = []
        for project_file in await file_store.list_files(context.project_id):
            if not _has_extension(project_file, allowed):
                continue
            if is_fuzzy_match(params.query, project_file.name) or needle in project_file.path.lower():
                matches.append(project_file.summary())
                if len(matches) >= params.max_results:
                    break

        return {
            "success": True,
            "query": params.query,
            "files": matches,
            "totalResults": len(matches),
            "message": f"Found {len(matches)} files matching '{params.query}'",
        }

    return ToolDefinition(
        name="search_files",
        description=(
            "Find files by name or path. The query is matched fuzzily against file names (its characters must "
            "appear in order) and as a substring of the full path. Use this to locate a file before reading it."
        ),
        input_schema_class=SearchFilesInput,
        handler=search_files_handler,
    )


def create_find_in_files_tool(file_store: FileStore) -> ToolDefinition:
    async def find_in_files_handler(params: FindInFilesInput, context: ExecutionContext) -> dict[str, Any]:
        flags = 0 if params.case_sensitive else re.IGNORECASE
        source = params.query if params.is_regex else re.escape(params.query)
        try:
            pattern = re.compile(source, flags)
        except re.error as e:
            raise InvalidPatternError(f"Invalid regular expression {params.query!r}: {e}") from e

        allowed = _normalize_extensions(params.extensions)
        results: list[dict[str, Any]] = []

        for project_file in await file_store.list_files(context.project_id):
            if project_file.type != "file" or not _has_extension(project_file, allowed):
                continue

            match_count = 0
            matched_lines: list[dict[str, Any]] = []
            # Editor line numbers count "\n" only
            for line_number, line in enumerate(project_file.content.split("\n"), start=1):
                occurrences = sum(1 for match in pattern.finditer(line) if match.end() > match.start())
                if not occurrences:
                    continue
                match_count += occurrences
                if len(matched_lines) < MAX_LINES_PER_FILE:
                    matched_lines.append({"line": line_number, "content": line.strip()[:MAX_LINE_LENGTH]})

            if match_count:
                results.append({"path": project_file.path, "matchCount": match_count, "matches": matched_lines})
                if len(results) >= params.max_results:
                    break

        return {
            "success": True,
            "query": params.query,
            "results": results,
            "totalFiles": len(results),
            "message": f"Found matches in {len(results)} files",
        }

    return ToolDefinition(
        name="find_in_files",
        description=(
            "Search the contents of project files for text or a regular expression. Returns, per file, the "
            "number of matches and up to 5 matching lines with line numbers. Use this to find where a "
            "component, hook or class name is used."
        ),
        input_schema_class=FindInFilesInput,
        handler=find_in_files_handler,
    )
