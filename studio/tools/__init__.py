"""Tools for the AI application builder."""

from studio.tools.registry import ToolsRegistry, get_tools_registry

__all__ = ["ToolsRegistry", "get_tools_registry"]
