"""Tool catalog and execution placeholders.

The gateway authenticates, meters and audits tool calls; the tools
themselves are not implemented here. ``execute`` validates the tool name and
its required parameters and returns an acknowledgement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from gateway.core.errors import ForbiddenAppError, NotFoundAppError, ValidationAppError
from gateway.schemas.audit import utcnow


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    enabled: bool
    parameters: dict[str, dict[str, Any]]
    required: tuple[str, ...] = field(default=())

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "parameters": self.parameters,
        }


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="file_operations",
        description="File read, write, and list operations",
        enabled=True,
        parameters={
            "operation": {"type": "string", "enum": ["read", "write", "list", "delete"]},
            "path": {"type": "string"},
            "content": {"type": "string", "optional": True},
        },
        required=("operation", "path"),
    ),
    ToolSpec(
        name="web_search",
        description="Search the web for information",
        enabled=True,
        parameters={
            "query": {"type": "string"},
            "limit": {"type": "number", "default": 10},
        },
        required=("query",),
    ),
    ToolSpec(
        name="database_query",
        description="Execute database queries",
        enabled=True,
        parameters={
            "query": {"type": "string"},
            "parameters": {"type": "array", "optional": True},
        },
        required=("query",),
    ),
    ToolSpec(
        name="code_execution",
        description="Execute code in a safe environment",
        enabled=False,
        parameters={
            "language": {"type": "string", "enum": ["javascript", "python"]},
            "code": {"type": "string"},
        },
        required=("language", "code"),
    ),
)

_TOOLS_BY_NAME = {tool.name: tool for tool in TOOLS}


def list_tools() -> list[dict[str, Any]]:
    return [tool.as_dict() for tool in TOOLS]


def get_tool(name: str) -> ToolSpec:
    """Look up an enabled tool.

    Raises:
        NotFoundAppError: No tool with this name.
        ForbiddenAppError: The tool exists but is disabled.
    """
    tool = _TOOLS_BY_NAME.get(name)
    if tool is None:
        raise NotFoundAppError(code="tool_not_found", message=f"Tool '{name}' not found")
    if not tool.enabled:
        raise ForbiddenAppError(
            code="tool_disabled",
            message=f"Tool '{name}' is disabled",
            details={"hint": "Disabled tools cannot be executed through the gateway"},
        )
    return tool


def execute(name: str, parameters: dict[str, Any]) -> dict[str, Any]:
    """Validate a tool call and acknowledge it.

    Raises:
        NotFoundAppError: Unknown tool.
        ForbiddenAppError: Disabled tool.
        ValidationAppError: A required parameter is missing or empty.
    """
    tool = get_tool(name)

    missing = [param for param in tool.required if parameters.get(param) in (None, "")]
    if missing:
        raise ValidationAppError(
            code="missing_parameters",
            message=f"Missing required parameters: {', '.join(missing)}",
            details={"field": missing[0]},
        )

    return {
        "tool": tool.name,
        "status": "accepted",
        "parameters": {key: parameters[key] for key in tool.parameters if key in parameters},
        "timestamp": utcnow().isoformat(),
    }
