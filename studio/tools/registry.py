"""Tools registry for managing AI assistant tools."""

from typing import Any, get_args

from studio.clients.search import ExaSearchClient, get_search_client
from studio.services.file_events import FileChangeNotifier, get_file_change_notifier
from studio.services.file_store import FileStore, get_file_store
from studio.tools.base import ToolDefinition, ToolName
from studio.tools.files import (
    create_create_file_tool,
    create_delete_file_tool,
    create_list_project_files_tool,
    create_read_file_tool,
    create_update_file_tool,
)
from studio.tools.search import create_find_in_files_tool, create_search_files_tool
from studio.tools.web import create_crawl_url_tool, create_get_code_context_tool, create_web_search_tool

TOOL_NAMES: tuple[ToolName, ...] = get_args(ToolName)


class RegistryMismatchError(RuntimeError):
    """The registered tools do not cover the declared tool names exactly."""


class ToolsRegistry:
    """Registry for managing AI assistant tools.

    Every name in ``ToolName`` must have exactly one definition, so the
    catalog shown to the model and the executor's dispatch cannot drift apart.
    """

    def __init__(self, file_store: FileStore, notifier: FileChangeNotifier, search_client: ExaSearchClient):
        """Initialize tools registry with service dependencies."""
        self.file_store = file_store
        self.notifier = notifier
        self.search_client = search_client
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()
        self.verify()

    def _register_default_tools(self) -> None:
        """Register the default set of project and research tools."""
        tools = [
            create_list_project_files_tool(self.file_store),
            create_read_file_tool(self.file_store),
            create_create_file_tool(self.file_store, self.notifier),
            create_update_file_tool(self.file_store, self.notifier),
            create_delete_file_tool(self.file_store, self.notifier),
            create_search_files_tool(self.file_store),
            create_find_in_files_tool(self.file_store),
            create_web_search_tool(self.search_client),
            create_get_code_context_tool(self.search_client),
            create_crawl_url_tool(self.search_client),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a tool, replacing any previous definition with the same name."""
        if tool.name not in TOOL_NAMES:
            raise RegistryMismatchError(f"Tool {tool.name!r} is not a declared tool name")
        self._tools[tool.name] = tool

    def verify(self) -> None:
        """Check that every declared tool name has a definition."""
        missing = [name for name in TOOL_NAMES if name not in self._tools]
        if missing:
            raise RegistryMismatchError(f"No definition registered for: {', '.join(missing)}")

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        """Get tool schemas in declaration order, ready for the model provider."""
        return [
            {
                "name": name,
                "description": self._tools[name].description,
                "input_schema": self._tools[name].get_json_schema(),
            }
            for name in TOOL_NAMES
        ]

    def tool_summary(self) -> str:
        """One line per tool, for the system prompt."""
        return "\n".join(f"- {name}: {self._tools[name].description.split('. ')[0]}" for name in TOOL_NAMES)

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        _tools_registry = ToolsRegistry(get_file_store(), get_file_change_notifier(), get_search_client())

    return _tools_registry
