"""Tests for the tool registry and tool executor."""

import json
from typing import Any

import pytest

from studio.clients.search import ExaSearchClient
from studio.models.files import ExecutionContext
from studio.models.llm import ToolCallRequest
from studio.services.file_events import FileChange, FileChangeNotifier
from studio.services.file_store import InMemoryFileStore
from studio.services.tool_executor import SERIALIZATION_FAILURE, ToolExecutor
from studio.tools.base import EmptyInput, ToolDefinition
from studio.tools.registry import TOOL_NAMES, RegistryMismatchError, ToolsRegistry
from studio.tools.search import is_fuzzy_match

CONTEXT = ExecutionContext(project_id="project-1", user_id="user-1")

AUTH_HOOK_USER = "\n".join(
    [
        "import { Header } from './Header';",
        "",
        "const { user } = useAuth();",
        "",
        "export function Profile() {",
        "  const name = user.name;",
        "  return <Header name={name} />;",
        "}",
        "",
        "export const logout = () => useAuth().logout();",
    ]
)


@pytest.fixture
def file_store():
    """Create an empty in-memory file store."""
    return InMemoryFileStore()


@pytest.fixture
def notifier():
    """Create a notifier that records every change."""
    notifier = FileChangeNotifier()
    notifier.changes = []
    notifier.subscribe(notifier.changes.append)
    return notifier


@pytest.fixture
def registry(file_store, notifier, monkeypatch):
    """Create a registry with an unconfigured search client."""
    monkeypatch.delenv("EXA_API_KEY", raising=False)
    return ToolsRegistry(file_store, notifier, ExaSearchClient(api_key=None))


@pytest.fixture
def executor(registry):
    """Create a tool executor over the test registry."""
    return ToolExecutor(registry)


async def run_tool(executor: ToolExecutor, name: str, arguments: dict[str, Any] | str) -> dict[str, Any]:
    result = await executor.execute(ToolCallRequest(id=f"call_{name}", name=name, arguments=arguments), CONTEXT)
    assert result.tool_call_id == f"call_{name}"
    assert result.name == name
    return result.content


class TestToolsRegistry:
    """Tests for the tool catalog."""

    def test_registry_covers_every_tool_name(self, registry):
        """Test that every declared tool name has a definition."""
        assert registry.get_tool_names() == list(TOOL_NAMES)
        assert len(TOOL_NAMES) == 10

    def test_tool_schemas_in_declaration_order(self, registry):
        """Test that schemas are exported in declaration order with object input schemas."""
        schemas = registry.get_tool_schemas()

        assert [schema["name"] for schema in schemas] == list(TOOL_NAMES)
        for schema in schemas:
            assert schema["description"]
            assert schema["input_schema"]["type"] == "object"
            assert "properties" in schema["input_schema"]
            assert "required" in schema["input_schema"]

    def test_tool_schemas_use_camel_case_arguments(self, registry):
        """Test that aliased arguments are exported under their wire names."""
        schemas = {schema["name"]: schema["input_schema"] for schema in registry.get_tool_schemas()}

        assert "maxResults" in schemas["search_files"]["properties"]
        assert "isRegex" in schemas["find_in_files"]["properties"]
        assert schemas["create_file"]["required"] == ["path", "content"]

    def test_register_undeclared_tool_rejected(self, registry):
        """Test that a tool outside the declared names cannot be registered."""

        async def handler(params, context):
            return {"success": True}

        tool = ToolDefinition(name="run_command", description="Run", input_schema_class=EmptyInput, handler=handler)

        with pytest.raises(RegistryMismatchError):
            registry.register_tool(tool)

    def test_verify_detects_missing_tool(self, registry):
        """Test that a registry missing a definition fails verification."""
        del registry._tools["crawl_url"]

        with pytest.raises(RegistryMismatchError, match="crawl_url"):
            registry.verify()

    def test_tool_summary_lists_every_tool(self, registry):
        """Test that the prompt summary has one line per tool."""
        lines = registry.tool_summary().splitlines()

        assert len(lines) == len(TOOL_NAMES)
        assert lines[0].startswith("- list_project_files: ")


class TestFileTools:
    """Tests for list/read/create/update/delete."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool", ["read_file", "create_file", "update_file", "delete_file"])
    @pytest.mark.parametrize("path", ["src/App.tsx", "App.tsx", "", "/src/../secrets.txt", "/src/"])
    async def test_invalid_paths_rejected_without_mutation(self, executor, file_store, notifier, tool, path):
        """Test that every file tool rejects malformed paths and leaves the store untouched."""
        await file_store.create_file("project-1", "user-1", "/src/App.tsx", "original")

        content = await run_tool(executor, tool, {"path": path, "content": "changed"})

        assert content["success"] is False
        assert content["errorType"] == "InvalidPath"
        files = await file_store.list_files("project-1")
        assert [(f.path, f.content) for f in files] == [("/src/App.tsx", "original")]
        assert notifier.changes == []

    @pytest.mark.asyncio
    async def test_create_file(self, executor, file_store, notifier):
        """Test creating a new file."""
        content = await run_tool(
            executor, "create_file", {"path": "/src/App.tsx", "content": "export default 1;", "description": "Root"}
        )

        assert content["success"] is True
        assert content["message"] == "Successfully created /src/App.tsx"
        assert content["description"] == "Root"
        assert content["file"]["language"] == "typescript"
        assert content["file"]["name"] == "App.tsx"

        stored = await file_store.get_file("project-1", "/src/App.tsx")
        assert stored.content == "export default 1;"
        assert [change.kind for change in notifier.changes] == ["created"]

    @pytest.mark.asyncio
    async def test_create_twice_returns_already_exists(self, executor, file_store, notifier):
        """Test that a second create on the same path fails and changes nothing."""
        await run_tool(executor, "create_file", {"path": "/index.html", "content": "first"})

        content = await run_tool(executor, "create_file", {"path": "/index.html", "content": "second"})

        assert content["success"] is False
        assert content["errorType"] == "AlreadyExists"
        assert "update_file" in content["error"]
        stored = await file_store.get_file("project-1", "/index.html")
        assert stored.content == "first"
        assert len(await file_store.list_files("project-1")) == 1
        assert len(notifier.changes) == 1

    @pytest.mark.asyncio
    async def test_update_missing_file_creates_it(self, executor, file_store, notifier):
        """Test that update on a missing path ends in the same state as create."""
        content = await run_tool(executor, "update_file", {"path": "/src/new.css", "content": "body {}"})

        assert content["success"] is True
        stored = await file_store.get_file("project-1", "/src/new.css")
        assert stored.content == "body {}"
        assert stored.language == "css"
        assert [change.kind for change in notifier.changes] == ["created"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool", ["read_file", "update_file"])
    async def test_folder_paths_rejected(self, executor, file_store, notifier, tool):
        """Test that a path naming a folder cannot be read or overwritten."""
        await file_store.create_file("project-1", "user-1", "/src/components", "", type="folder")

        content = await run_tool(executor, tool, {"path": "/src/components", "content": "oops"})

        assert content["success"] is False
        assert content["errorType"] == "InvalidPath"
        stored = await file_store.get_file("project-1", "/src/components")
        assert stored.type == "folder"
        assert stored.content == ""
        assert notifier.changes == []

    @pytest.mark.asyncio
    async def test_update_existing_file(self, executor, file_store, notifier):
        """Test that update replaces the whole content."""
        await file_store.create_file("project-1", "user-1", "/src/App.tsx", "old")

        content = await run_tool(executor, "update_file", {"path": "/src/App.tsx", "content": "new"})

        assert content["success"] is True
        assert content["message"] == "Successfully updated /src/App.tsx"
        stored = await file_store.get_file("project-1", "/src/App.tsx")
        assert stored.content == "new"
        assert [change.kind for change in notifier.changes] == ["updated"]

    @pytest.mark.asyncio
    async def test_read_file(self, executor, file_store):
        """Test reading a file returns its content."""
        await file_store.create_file("project-1", "user-1", "/package.json", "{}")

        content = await run_tool(executor, "read_file", {"path": "/package.json"})

        assert content["success"] is True
        assert content["file"]["content"] == "{}"
        assert content["file"]["language"] == "json"

    @pytest.mark.asyncio
    async def test_read_missing_file_lists_available_files(self, executor, file_store):
        """Test that reading a missing file reports the paths that do exist."""
        await file_store.create_file("project-1", "user-1", "/src/App.tsx", "")
        await file_store.create_file("project-1", "user-1", "/index.html", "")

        content = await run_tool(executor, "read_file", {"path": "/src/Missing.tsx"})

        assert content["success"] is False
        assert content["errorType"] == "NotFound"
        assert content["availableFiles"] == ["/src/App.tsx", "/index.html"]

    @pytest.mark.asyncio
    async def test_delete_file(self, executor, file_store, notifier):
        """Test deleting an existing file."""
        await file_store.create_file("project-1", "user-1", "/old.js", "")

        content = await run_tool(executor, "delete_file", {"path": "/old.js"})

        assert content["success"] is True
        assert content["deletedFile"] == {"path": "/old.js", "name": "old.js"}
        assert await file_store.get_file("project-1", "/old.js") is None
        assert [change.kind for change in notifier.changes] == ["deleted"]

    @pytest.mark.asyncio
    async def test_delete_missing_file(self, executor):
        """Test deleting a missing file fails with NotFound."""
        content = await run_tool(executor, "delete_file", {"path": "/missing.js"})

        assert content["success"] is False
        assert content["errorType"] == "NotFound"

    @pytest.mark.asyncio
    async def test_list_project_files(self, executor, file_store):
        """Test listing files returns summaries without content."""
        await file_store.create_file("project-1", "user-1", "/src/App.tsx", "abc")
        await file_store.create_file("project-2", "user-2", "/other.ts", "")

        content = await run_tool(executor, "list_project_files", {})

        assert content["success"] is True
        assert content["totalFiles"] == 1
        summary = content["files"][0]
        assert summary["path"] == "/src/App.tsx"
        assert summary["size"] == 3
        assert "content" not in summary
        assert "updatedAt" in summary

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_fail_tool(self, executor, file_store, notifier):
        """Test that file change propagation errors are swallowed."""

        def broken_listener(change: FileChange) -> None:
            raise RuntimeError("preview sandbox unavailable")

        notifier.subscribe(broken_listener)

        content = await run_tool(executor, "create_file", {"path": "/main.js", "content": "1"})

        assert content["success"] is True
        assert await file_store.get_file("project-1", "/main.js") is not None
        assert len(notifier.changes) == 1


class TestSearchTools:
    """Tests for search_files and find_in_files."""

    def test_fuzzy_match(self):
        """Test subsequence matching ignores case and gaps."""
        assert is_fuzzy_match("tch", "TechStack.tsx")
        assert is_fuzzy_match("BTN", "Button.tsx")
        assert not is_fuzzy_match("kcah", "TechStack.tsx")

    @pytest.mark.asyncio
    async def test_search_files_subsequence(self, executor, file_store):
        """Test that a non-contiguous subsequence of the name matches."""
        await file_store.create_file("project-1", "user-1", "/src/components/TechStack.tsx", "")
        await file_store.create_file("project-1", "user-1", "/src/index.css", "")

        content = await run_tool(executor, "search_files", {"query": "tch", "maxResults": 10})

        assert content["success"] is True
        assert [f["path"] for f in content["files"]] == ["/src/components/TechStack.tsx"]
        assert content["totalResults"] == 1

    @pytest.mark.asyncio
    async def test_search_files_path_substring_and_extensions(self, executor, file_store):
        """Test path substring matching with an extension filter."""
        await file_store.create_file("project-1", "user-1", "/src/components/Card.tsx", "")
        await file_store.create_file("project-1", "user-1", "/src/components/card.css", "")

        content = await run_tool(executor, "search_files", {"query": "components", "extensions": [".tsx"]})

        assert [f["path"] for f in content["files"]] == ["/src/components/Card.tsx"]

    @pytest.mark.asyncio
    async def test_search_files_max_results_keeps_store_order(self, executor, file_store):
        """Test that results are capped and keep store order."""
        for index in range(5):
            await file_store.create_file("project-1", "user-1", f"/src/page{index}.tsx", "")

        content = await run_tool(executor, "search_files", {"query": "page", "maxResults": 3})

        assert [f["path"] for f in content["files"]] == ["/src/page0.tsx", "/src/page1.tsx", "/src/page2.tsx"]

    @pytest.mark.asyncio
    async def test_find_in_files_reports_lines(self, executor, file_store):
        """Test that a file matching on two lines yields one entry with both line numbers."""
        await file_store.create_file("project-1", "user-1", "/src/Profile.tsx", AUTH_HOOK_USER)
        await file_store.create_file("project-1", "user-1", "/src/Header.tsx", "export function Header() {}")

        content = await run_tool(executor, "find_in_files", {"query": "useAuth"})

        assert content["success"] is True
        assert content["totalFiles"] == 1
        [entry] = content["results"]
        assert entry["path"] == "/src/Profile.tsx"
        assert entry["matchCount"] == 2
        assert [match["line"] for match in entry["matches"]] == [3, 10]
        assert entry["matches"][0]["content"] == "const { user } = useAuth();"

    @pytest.mark.asyncio
    async def test_find_in_files_literal_query_is_escaped(self, executor, file_store):
        """Test that regex metacharacters in a literal query match literally."""
        await file_store.create_file("project-1", "user-1", "/a.ts", "const total = price * (1 + tax);")

        content = await run_tool(executor, "find_in_files", {"query": "(1 + tax)"})

        assert content["totalFiles"] == 1

    @pytest.mark.asyncio
    async def test_find_in_files_case_sensitivity(self, executor, file_store):
        """Test that caseSensitive restricts matches."""
        await file_store.create_file("project-1", "user-1", "/a.ts", "Button\nbutton")

        insensitive = await run_tool(executor, "find_in_files", {"query": "button"})
        sensitive = await run_tool(executor, "find_in_files", {"query": "button", "caseSensitive": True})

        assert insensitive["results"][0]["matchCount"] == 2
        assert sensitive["results"][0]["matchCount"] == 1
        assert sensitive["results"][0]["matches"][0]["line"] == 2

    @pytest.mark.asyncio
    async def test_find_in_files_stops_at_max_files(self, executor, file_store):
        """Test that scanning stops after maxResults files matched."""
        for index in range(4):
            await file_store.create_file("project-1", "user-1", f"/f{index}.ts", "todo\ntodo")

        content = await run_tool(executor, "find_in_files", {"query": "todo", "maxResults": 2})

        assert [entry["path"] for entry in content["results"]] == ["/f0.ts", "/f1.ts"]
        assert all(entry["matchCount"] == 2 for entry in content["results"])

    @pytest.mark.asyncio
    async def test_find_in_files_regex(self, executor, file_store):
        """Test regex queries."""
        await file_store.create_file("project-1", "user-1", "/a.ts", "useState\nuseEffect\nuseMemo")

        content = await run_tool(executor, "find_in_files", {"query": r"use(State|Effect)", "isRegex": True})

        assert content["results"][0]["matchCount"] == 2

    @pytest.mark.asyncio
    async def test_find_in_files_counts_newline_separated_lines(self, executor, file_store):
        """Test that line numbers follow newlines only, not other Unicode line separators."""
        await file_store.create_file("project-1", "user-1", "/a.ts", "const s = 'a\u2028b';\nuseAuth()\n")

        content = await run_tool(executor, "find_in_files", {"query": "useAuth"})

        assert [match["line"] for match in content["results"][0]["matches"]] == [2]

    @pytest.mark.asyncio
    async def test_find_in_files_ignores_empty_regex_matches(self, executor, file_store):
        """Test that a pattern matching the empty string only counts real matches."""
        await file_store.create_file("project-1", "user-1", "/a.txt", "hello\nworld")
        await file_store.create_file("project-1", "user-1", "/b.txt", "zzz buzz")

        content = await run_tool(executor, "find_in_files", {"query": "z*", "isRegex": True})

        assert [entry["path"] for entry in content["results"]] == ["/b.txt"]
        assert content["results"][0]["matchCount"] == 2

    @pytest.mark.asyncio
    async def test_find_in_files_invalid_regex(self, executor):
        """Test that an invalid pattern is reported, not raised."""
        content = await run_tool(executor, "find_in_files", {"query": "use(", "isRegex": True})

        assert content["success"] is False
        assert content["errorType"] == "InvalidPattern"


class TestWebTools:
    """Tests for the web research tools without a configured provider."""

    @pytest.mark.asyncio
    async def test_web_search_not_configured(self, executor):
        """Test that a missing API key is reported as NotConfigured."""
        content = await run_tool(executor, "web_search", {"query": "tailwind grid"})

        assert content["success"] is False
        assert content["errorType"] == "NotConfigured"

    @pytest.mark.asyncio
    async def test_crawl_url_validates_before_calling_out(self, executor):
        """Test that an invalid URL is rejected before the provider is used."""
        content = await run_tool(executor, "crawl_url", {"url": "not a url"})

        assert content["success"] is False
        assert content["errorType"] == "InvalidUrl"

    @pytest.mark.asyncio
    async def test_web_search_num_results_bounds(self, executor):
        """Test that numResults above 10 is a validation error."""
        content = await run_tool(executor, "web_search", {"query": "x", "numResults": 11})

        assert content["success"] is False
        assert content["errorType"] == "ValidationError"


class TestToolExecutor:
    """Tests for the executor's error conversion."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor):
        """Test that an unknown tool name produces a failure result."""
        content = await run_tool(executor, "run_command", {"command": "ls"})

        assert content["success"] is False
        assert content["error"] == "Unknown tool: run_command"
        assert "create_file" in content["availableTools"]

    @pytest.mark.asyncio
    async def test_malformed_json_arguments(self, executor, file_store):
        """Test that unparseable argument JSON is reported back."""
        content = await run_tool(executor, "create_file", '{"path": "/a.ts", "content": ')

        assert content["success"] is False
        assert content["error"] == "Invalid JSON arguments"
        assert await file_store.list_files("project-1") == []

    @pytest.mark.asyncio
    async def test_json_string_arguments_are_decoded(self, executor, file_store):
        """Test that complete JSON string arguments are accepted."""
        content = await run_tool(executor, "create_file", json.dumps({"path": "/a.ts", "content": "1"}))

        assert content["success"] is True
        assert await file_store.get_file("project-1", "/a.ts") is not None

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, executor):
        """Test that pydantic validation errors become ValidationError results."""
        content = await run_tool(executor, "create_file", {"path": "/a.ts"})

        assert content["success"] is False
        assert content["errorType"] == "ValidationError"
        assert "content" in content["error"]

    @pytest.mark.asyncio
    async def test_unexpected_handler_exception(self, executor, registry):
        """Test that an unexpected exception becomes a failure result."""

        async def exploding_handler(params, context):
            raise RuntimeError("store unavailable")

        registry.get_tool("list_project_files").handler = exploding_handler

        content = await run_tool(executor, "list_project_files", {})

        assert content == {"success": False, "error": "Failed to run list_project_files: store unavailable"}

    @pytest.mark.asyncio
    async def test_unserializable_result(self, executor, registry):
        """Test that a result that cannot be serialized is replaced by the generic failure."""

        async def unserializable_handler(params, context):
            return {"success": True, "value": object()}

        registry.get_tool("list_project_files").handler = unserializable_handler

        content = await run_tool(executor, "list_project_files", {})

        assert content == SERIALIZATION_FAILURE
