"""Internal models for documents, operations and tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from .versions import OpenAPIVersion

if TYPE_CHECKING:
    from .input_schema import InputShape


@dataclass(frozen=True)
class OpenAPIDocument:
    raw: Mapping[str, Any]
    version: OpenAPIVersion
    paths: Mapping[str, Any]
    webhooks: Mapping[str, Any] = field(default_factory=dict)
    title: Optional[str] = None
    api_version: Optional[str] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedOperation:
    """Read-only projection of one operation with its merged parameters."""

    operation_id: str
    method: str
    path: str
    operation: Mapping[str, Any]
    parameters: Tuple[Mapping[str, Any], ...] = ()
    is_webhook: bool = False

    @property
    def summary(self) -> Optional[str]:
        return self.operation.get("summary")

    @property
    def description(self) -> Optional[str]:
        return self.operation.get("description")

    @property
    def request_body(self) -> Optional[Mapping[str, Any]]:
        return self.operation.get("requestBody")

    def parameters_in(self, location: str) -> List[Mapping[str, Any]]:
        return [param for param in self.parameters if param.get("in") == location]


@dataclass(frozen=True)
class ApiRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    media_type: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    content: Tuple[Dict[str, str], ...]
    is_error: bool = False

    @classmethod
    def text_result(cls, text: str, is_error: bool = False) -> "ToolResult":
        return cls(content=({"type": "text", "text": text},), is_error=is_error)

    @property
    def text(self) -> str:
        return "\n".join(item.get("text", "") for item in self.content)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"content": [dict(item) for item in self.content]}
        if self.is_error:
            result["isError"] = True
        return result


@dataclass(frozen=True)
class AdapterTool:
    name: str
    description: str
    input_shape: "InputShape"
    operation: ResolvedOperation
    handler: Callable[[Dict[str, Any]], Awaitable[ToolResult]]
