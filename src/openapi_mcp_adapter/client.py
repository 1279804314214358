"""HTTP backend client callable by operationId."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from .config import ServerConfig
from .models import ApiRequest, OpenAPIDocument, ResolvedOperation
from .operations import find_operation

logger = logging.getLogger(__name__)

FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


class ApiError(Exception):
    """Backend answered with an HTTP error status."""

    def __init__(self, status: int, data: Any = None, message: Optional[str] = None) -> None:
        self.status = status
        self.data = data
        self.message = message or f"Request failed with status code {status}"
        super().__init__(self.message)


class ExecutionError(Exception):
    pass


@dataclass(frozen=True)
class ApiResponse:
    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class OpenAPIClient:
    """Exposes every operation of a document as an async method.

    ``await client.getUserById(request)`` sends the prepared ``ApiRequest``.
    Internal attributes are underscored so they never shadow an operationId.
    """

    def __init__(
        self,
        document: OpenAPIDocument,
        config: ServerConfig,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._document = document
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._operations: Dict[str, ResolvedOperation] = {}

    def __getattr__(self, operation_id: str) -> Callable[[ApiRequest], Awaitable[ApiResponse]]:
        if operation_id.startswith("_"):
            raise AttributeError(operation_id)
        operation = self._resolve(operation_id)
        if operation is None:
            raise AttributeError(f"Unknown operation: {operation_id}")

        async def call(request: ApiRequest) -> ApiResponse:
            if operation.is_webhook:
                raise ExecutionError(
                    f"Operation {operation_id} is a webhook and cannot be called"
                )
            return await self._send(request)

        call.__name__ = operation_id
        return call

    def _resolve(self, operation_id: str) -> Optional[ResolvedOperation]:
        if operation_id not in self._operations:
            operation = find_operation(self._document, operation_id)
            if operation is None:
                return None
            self._operations[operation_id] = operation
        return self._operations[operation_id]

    async def _send(self, request: ApiRequest) -> ApiResponse:
        async with httpx.AsyncClient(
            headers=self._config.headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.request(
                request.method.upper(),
                request.url,
                headers=request.headers,
                **self._body_arguments(request),
            )

        data = self._decode(response)
        if response.status_code >= 400:
            logger.warning(
                "Backend returned %s for %s %s",
                response.status_code,
                request.method.upper(),
                request.url,
            )
            raise ApiError(response.status_code, data)
        return ApiResponse(status=response.status_code, data=data, headers=dict(response.headers))

    def _body_arguments(self, request: ApiRequest) -> Dict[str, Any]:
        body = request.body
        if body is None and request.media_type is None:
            return {}
        media_type = (request.media_type or "application/json").split(";")[0].strip().lower()
        if body is None:
            # An explicit null body is only meaningful as JSON.
            return {"content": "null"} if "json" in media_type else {}
        if media_type == FORM_MEDIA_TYPE and isinstance(body, Mapping):
            return {"data": {key: _form_value(value) for key, value in body.items()}}
        if isinstance(body, (bytes, str)):
            return {"content": body}
        if "json" in media_type:
            return {"json": body}
        return {"content": json.dumps(body)}

    def _decode(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                logger.debug("Response declared JSON but did not parse; returning text")
        return response.text


def _form_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value
