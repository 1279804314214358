"""Request dispatch: turns validated tool input into a backend call and a ToolResult."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode

import httpx

from .client import ApiError
from .config import ServerConfig
from .input_schema import (
    BODY_FIELD,
    EXCLUDED_HEADERS,
    GROUP_LOCATIONS,
    JSON_MEDIA_TYPE,
    select_media_type,
)
from .logging import redact_payload
from .models import ApiRequest, ResolvedOperation, ToolResult

logger = logging.getLogger(__name__)

NO_CONTENT_TEXT = "(No content returned)"
UNSTRINGIFIABLE_TEXT = "[Could not stringify response object]"


@dataclass
class RequestArguments:
    path: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    header: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    body_supplied: bool = False

    def for_location(self, location: str) -> Dict[str, Any]:
        return {"path": self.path, "query": self.query, "header": self.header}[location]


def split_arguments(
    params: Optional[Mapping[str, Any]], operation: ResolvedOperation
) -> RequestArguments:
    """Route tool arguments to their request location.

    Grouped input (``pathParameters`` ...) is used as given. Flat top-level keys
    go to the location of the declared parameter with that name; a flat
    ``body`` key is the request body.
    """
    arguments = RequestArguments()
    remaining = dict(params or {})

    for group, location in GROUP_LOCATIONS.items():
        values = remaining.pop(group, None)
        if isinstance(values, Mapping):
            arguments.for_location(location).update(values)

    if BODY_FIELD in remaining:
        arguments.body = remaining.pop(BODY_FIELD)
        arguments.body_supplied = True

    locations = {parameter["name"]: parameter["in"] for parameter in operation.parameters}
    for key, value in remaining.items():
        location = locations.get(key)
        if location in ("path", "query", "header"):
            arguments.for_location(location).setdefault(key, value)
        elif key == "body" and not arguments.body_supplied:
            arguments.body = value
            arguments.body_supplied = True
        else:
            logger.debug("Ignoring undeclared argument %s for %s", key, operation.operation_id)
    return arguments


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


def _as_arguments(
    params: Union[RequestArguments, Mapping[str, Any], None], operation: ResolvedOperation
) -> RequestArguments:
    if isinstance(params, RequestArguments):
        return params
    return split_arguments(params, operation)


def build_request_url(
    path: str,
    params: Union[RequestArguments, Mapping[str, Any], None],
    operation: ResolvedOperation,
    config: ServerConfig,
) -> str:
    """Base URL plus substituted path plus repeated-key query string.

    Placeholders without a value are left in place.
    """
    arguments = _as_arguments(params, operation)

    for parameter in operation.parameters_in("path"):
        name = parameter["name"]
        if name in arguments.path and arguments.path[name] is not None:
            value = quote(_stringify(arguments.path[name]), safe="")
            path = path.replace(f"{{{name}}}", value)

    pairs: List[Tuple[str, str]] = []
    for parameter in operation.parameters_in("query"):
        name = parameter["name"]
        value = arguments.query.get(name)
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((name, _stringify(item)) for item in value)
        else:
            pairs.append((name, _stringify(value)))

    url = config.base_url.rstrip("/") + path
    if pairs:
        url = f"{url}?{urlencode(pairs)}"
    return url


def build_request(
    operation: ResolvedOperation,
    params: Union[RequestArguments, Mapping[str, Any], None],
    config: ServerConfig,
) -> ApiRequest:
    arguments = _as_arguments(params, operation)
    url = build_request_url(operation.path, arguments, operation, config)

    headers: Dict[str, str] = {}
    for parameter in operation.parameters_in("header"):
        name = parameter["name"]
        if str(name).lower() in EXCLUDED_HEADERS:
            continue
        value = arguments.header.get(name)
        if value is not None:
            headers[name] = _stringify(value)

    media_type: Optional[str] = None
    if arguments.body is not None or arguments.body_supplied:
        request_body = operation.request_body or {}
        media_type = select_media_type(request_body.get("content")) or JSON_MEDIA_TYPE
        headers["Content-Type"] = media_type

    return ApiRequest(
        method=operation.method,
        url=url,
        headers=headers,
        body=arguments.body,
        media_type=media_type,
    )


async def execute_api_request(
    client: Any,
    operation_id: str,
    params: Optional[Mapping[str, Any]],
    operation: ResolvedOperation,
    config: ServerConfig,
) -> ToolResult:
    """Run one tool invocation. Never raises; failures come back as error results."""
    try:
        request = build_request(operation, params, config)
        logger.info("Executing %s %s for %s", request.method.upper(), request.url, operation_id)
        logger.debug("Arguments for %s: %s", operation_id, redact_payload(params or {}))
        method = getattr(client, operation_id)
        response = await method(request)
    except Exception as exc:
        logger.warning("Operation %s failed: %s", operation_id, exc)
        return format_failure_response(exc)
    return format_success_response(_response_data(response))


def _response_data(response: Any) -> Any:
    if hasattr(response, "data"):
        return response.data
    if isinstance(response, Mapping) and "data" in response:
        return response["data"]
    return response


def _serialize(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True, default=str)


def format_success_response(data: Any) -> ToolResult:
    if data is None:
        text = NO_CONTENT_TEXT
    elif isinstance(data, str):
        text = data
    elif isinstance(data, (dict, list, tuple)):
        try:
            text = _serialize(data)
        except (TypeError, ValueError):
            text = UNSTRINGIFIABLE_TEXT
    else:
        text = str(data)
    return ToolResult.text_result(text)


def _http_error_details(error: Any) -> Optional[Tuple[Any, Any, str]]:
    """(status, payload, message) when ``error`` carries an HTTP response."""
    if isinstance(error, ApiError):
        return error.status, error.data, error.message
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text
        return response.status_code, payload, str(error)

    response = error.get("response") if isinstance(error, Mapping) else getattr(error, "response", None)
    if isinstance(response, Mapping) and response.get("status") is not None:
        message = error.get("message") if isinstance(error, Mapping) else str(error)
        return response["status"], response.get("data"), str(message or "")
    status = getattr(response, "status", None) or getattr(response, "status_code", None)
    if status is not None:
        return status, getattr(response, "data", None), str(error)
    return None


def _payload_text(payload: Any, message: str) -> str:
    if payload is None or payload == "":
        return message
    if isinstance(payload, str):
        return payload
    try:
        return _serialize(payload)
    except (TypeError, ValueError):
        return str(payload)


def format_failure_response(error: Any) -> ToolResult:
    details = _http_error_details(error)
    if details is not None:
        status, payload, message = details
        text = f"API Error ({status}): {_payload_text(payload, message)}"
    elif isinstance(error, BaseException):
        text = f"Error: {str(error) or type(error).__name__}"
    elif isinstance(error, Mapping) and error.get("message"):
        text = f"Error: {error['message']}"
    else:
        try:
            rendered = json.dumps(error, default=str)
        except (TypeError, ValueError):
            rendered = str(error)
        text = f"Unknown error: {rendered}"
    return ToolResult.text_result(text, is_error=True)
