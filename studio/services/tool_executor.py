"""Execution of model-requested tool calls."""

import asyncio
import json
from typing import Any

from pydantic import ValidationError

from studio.models.files import ExecutionContext
from studio.models.llm import ToolCallRequest, ToolResult
from studio.tools.base import ToolError
from studio.tools.registry import ToolsRegistry, get_tools_registry
from studio.utils.logging import get_logger

logger = get_logger(__name__)

SERIALIZATION_FAILURE: dict[str, Any] = {"success": False, "error": "Failed to serialize tool result"}


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "arguments"
        problems.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return "Invalid arguments - " + "; ".join(problems)


class ToolExecutor:
    """Runs one tool call against the project and always returns a ToolResult.

    Validation, resource and collaborator failures are all reported inside
    the result content so the model can react to them.
    """

    def __init__(self, registry: ToolsRegistry | None = None):
        self.registry = registry or get_tools_registry()

    async def execute(self, request: ToolCallRequest, context: ExecutionContext) -> ToolResult:
        """Execute a tool call.

        Args:
            request: Tool call emitted by the model
            context: Project and user the call operates on

        Returns:
            ToolResult whose content carries ``success`` and a payload or ``error``
        """
        logger.debug(f"Executing tool {request.name} ({request.id}) for project {context.project_id}")

        try:
            content = await self._run(request, context)
        except asyncio.CancelledError:
            raise
        except ToolError as e:
            logger.info(f"Tool {request.name} failed ({e.error_type}): {e.message}")
            content = e.to_content()
        except Exception as e:
            logger.error(f"Tool {request.name} raised: {e}", exc_info=True)
            content = {"success": False, "error": f"Failed to run {request.name}: {e}"}

        return ToolResult(
            tool_call_id=request.id, name=request.name, content=self._ensure_serializable(request, content)
        )

    async def _run(self, request: ToolCallRequest, context: ExecutionContext) -> dict[str, Any]:
        arguments = request.arguments
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                return {"success": False, "error": "Invalid JSON arguments", "errorType": "ValidationError"}
        if not isinstance(arguments, dict):
            return {"success": False, "error": "Tool arguments must be a JSON object", "errorType": "ValidationError"}

        tool = self.registry.get_tool(request.name)
        if tool is None:
            logger.error(f"Unknown tool requested: {request.name}")
            return {
                "success": False,
                "error": f"Unknown tool: {request.name}",
                "availableTools": self.registry.get_tool_names(),
            }

        try:
            params = tool.parse_input(arguments)
        except ValidationError as e:
            return {"success": False, "error": _format_validation_error(e), "errorType": "ValidationError"}

        return await tool.handler(params, context)

    def _ensure_serializable(self, request: ToolCallRequest, content: Any) -> dict[str, Any]:
        if not isinstance(content, dict):
            logger.error(f"Tool {request.name} returned {type(content).__name__}, expected a dict")
            return dict(SERIALIZATION_FAILURE)
        try:
            return json.loads(json.dumps(content))
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize result of {request.name}: {e}")
            return dict(SERIALIZATION_FAILURE)
