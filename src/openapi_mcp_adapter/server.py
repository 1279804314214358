"""MCP server setup for the OpenAPI MCP Adapter."""

import logging
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent
from pydantic import PrivateAttr, ValidationError
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from .client import OpenAPIClient
from .config import Settings
from .models import AdapterTool
from .openapi import OpenAPILoader, SpecLoadError
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

# Transport name -> keyword arguments of FastMCP.http_app; stdio has no app.
_HTTP_TRANSPORTS: Dict[str, Dict[str, Any]] = {
    "http": {"transport": "http", "stateless_http": True, "json_response": True},
    "streamable-http": {
        "transport": "streamable-http",
        "stateless_http": True,
        "json_response": True,
    },
    "sse": {"transport": "sse"},
}
_HTTP_TRANSPORTS["streamablehttp"] = _HTTP_TRANSPORTS["streamable-http"]


class OperationTool(Tool):
    """MCP tool backed by one API operation.

    The input schema is the operation's grouped input model, published as is so
    recursive bodies keep their ``$ref``/``$defs``. Results are plain text
    content with no structured output.
    """

    _adapter_tool: AdapterTool = PrivateAttr()

    @classmethod
    def from_adapter_tool(cls, tool: AdapterTool) -> "OperationTool":
        mcp_tool = cls(
            name=tool.name,
            description=tool.description,
            parameters=tool.input_shape.input_schema,
            output_schema=None,
        )
        mcp_tool._adapter_tool = tool
        return mcp_tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        tool = self._adapter_tool
        try:
            params = tool.input_shape.validate(arguments)
        except ValidationError as exc:
            raise ToolError(f"Invalid arguments for {tool.name}: {exc}") from exc

        result = await tool.handler(params)
        if result.is_error:
            raise ToolError(result.text)
        return ToolResult(
            content=[TextContent(type="text", text=item["text"]) for item in result.content]
        )


async def build_server(
    settings: Settings, spec_location: Optional[str] = None
) -> tuple[FastMCP, object | None]:
    location = spec_location or settings.openapi_spec
    if not location:
        raise SpecLoadError("OpenAPI specification path cannot be empty")

    config = settings.server_config()
    loader = OpenAPILoader(
        cache_seconds=settings.adapter_openapi_cache_seconds,
        timeout_seconds=settings.adapter_request_timeout_seconds,
    )
    document = await loader.load(location)
    client = OpenAPIClient(
        document, config, timeout_seconds=settings.adapter_request_timeout_seconds
    )
    registry = ToolRegistry(document, client, config, strict_enums=settings.adapter_strict_enums)

    mcp = FastMCP(document.title or settings.service_name, instructions=_instructions(document.title))
    register_tools(mcp, registry.build_tools())
    return mcp, _get_http_app(mcp, settings)


def register_tools(mcp: FastMCP, tools: List[AdapterTool]) -> None:
    for tool in tools:
        mcp.add_tool(OperationTool.from_adapter_tool(tool))
        logger.info("Registered tool: %s", tool.name)


def _instructions(title: Optional[str]) -> str:
    return (
        f"Tools generated from the {title or 'OpenAPI'} specification. "
        "Each tool calls one API operation; arguments are grouped into "
        "pathParameters, queryParameters, headerParameters and requestBody."
    )


async def _healthcheck(_request):  # type: ignore[no-untyped-def]
    return JSONResponse({"status": "ok"})


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    options = _HTTP_TRANSPORTS.get(settings.adapter_transport.lower())
    if options is None:
        return None
    app = mcp.http_app(**options)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_route("/health", _healthcheck, methods=["GET"])
    return app
