"""Tool registry for the OpenAPI MCP Adapter."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .config import ServerConfig
from .executors import execute_api_request
from .input_schema import build_input_shape
from .models import AdapterTool, OpenAPIDocument, ResolvedOperation, ToolResult
from .operations import find_operation, list_operation_ids
from .schema import SchemaCompiler


logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        document: OpenAPIDocument,
        client: Any,
        config: ServerConfig,
        strict_enums: bool = False,
    ) -> None:
        self.document = document
        self.client = client
        self.config = config
        self.compiler = SchemaCompiler.for_version(document.version, strict_enums=strict_enums)
        self._tools: Optional[List[AdapterTool]] = None

    def build_tools(self) -> List[AdapterTool]:
        if self._tools is not None:
            return self._tools

        tools: List[AdapterTool] = []
        seen: set[str] = set()
        for operation_id in list_operation_ids(self.document):
            if operation_id in seen:
                logger.warning("Skipping duplicate operationId: %s", operation_id)
                continue
            seen.add(operation_id)

            operation = find_operation(self.document, operation_id)
            if operation is None:
                logger.error("Could not resolve operation %s; skipping", operation_id)
                continue

            shape = build_input_shape(operation, self.compiler, self.document.version)
            tools.append(
                AdapterTool(
                    name=operation_id,
                    description=self._describe(operation),
                    input_shape=shape,
                    operation=operation,
                    handler=self._handler(operation),
                )
            )

        self._tools = tools
        return tools

    def get(self, name: str) -> Optional[AdapterTool]:
        for tool in self.build_tools():
            if tool.name == name:
                return tool
        return None

    def _handler(self, operation: ResolvedOperation):  # type: ignore[no-untyped-def]
        async def handler(params: Dict[str, Any]) -> ToolResult:
            return await execute_api_request(
                self.client, operation.operation_id, params, operation, self.config
            )

        handler.__name__ = operation.operation_id
        return handler

    def _describe(self, operation: ResolvedOperation) -> str:
        return (
            operation.description
            or operation.summary
            or f"API operation for {operation.operation_id}"
        )
