"""Pydantic schemas for the tool endpoints (``/api/tools``)."""

from typing import Any

from pydantic import BaseModel, Field


class ToolInfo(BaseModel):
    name: str
    description: str
    enabled: bool
    parameters: dict[str, dict[str, Any]]


class ToolCatalogResponse(BaseModel):
    """Tool catalog; ``authenticated`` tells whether the caller was identified."""

    tools: list[ToolInfo]
    count: int
    timestamp: str
    authenticated: bool = False
    credential: str = Field(default="none", description="session_token, api_key or none.")


class ToolExecutionResponse(BaseModel):
    tool: str
    status: str
    parameters: dict[str, Any]
    timestamp: str
