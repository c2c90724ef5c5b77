"""Tool endpoints: public catalog and metered execution."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body

from gateway.core.auth import ApiKeyIdentity, OptionalIdentity
from gateway.core.quota import AdmittedRequest
from gateway.schemas.audit import utcnow
from gateway.schemas.tools import ToolCatalogResponse, ToolExecutionResponse
from gateway.services import tools as tool_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tools"])


@router.get("", response_model=ToolCatalogResponse)
async def list_tools(resolution: OptionalIdentity) -> ToolCatalogResponse:
    """List available tools. Credentials are optional and never rejected here."""

    tools = tool_service.list_tools()
    return ToolCatalogResponse(
        tools=tools,
        count=len(tools),
        timestamp=utcnow().isoformat(),
        authenticated=resolution.authenticated,
        credential=resolution.kind.value,
    )


@router.post("/execute/{tool_name}", response_model=ToolExecutionResponse)
async def execute_tool(
    tool_name: str,
    identity: ApiKeyIdentity,
    _quota: AdmittedRequest,
    parameters: Annotated[dict[str, Any] | None, Body()] = None,
) -> ToolExecutionResponse:
    """Validate and acknowledge a tool call (API key and hourly quota required)."""

    parameters = parameters or {}
    logger.info(
        "tool.execute",
        extra={"tool": tool_name, "account_id": identity.account_id, "param_names": sorted(parameters)},
    )
    return ToolExecutionResponse(**tool_service.execute(tool_name, parameters))
