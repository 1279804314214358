"""OpenAPI spec loader, dereferencer and structural checks."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import jsonref
import yaml
from openapi_pydantic import OpenAPI as OpenAPI_31
from openapi_pydantic.v3.v3_0 import OpenAPI as OpenAPI_30
from pydantic import ValidationError

from .models import OpenAPIDocument
from .operations import assign_operation_ids, iter_operations
from .versions import OpenAPIVersion, UnsupportedVersionError, get_version


logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class SpecLoadError(Exception):
    pass


def is_url(location: str) -> bool:
    return bool(_URL_PATTERN.match(location))


def check_structure(raw: Mapping[str, Any], version: OpenAPIVersion) -> List[str]:
    """Validate the raw document against the openapi-pydantic models.

    Returns one readable warning per validation error; never raises.
    """
    model = OpenAPI_30 if version is OpenAPIVersion.V3_0 else OpenAPI_31
    try:
        model.model_validate(raw)
    except ValidationError as exc:
        return [
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        ]
    return []


def dereference(raw: Mapping[str, Any], base_uri: str = "") -> Dict[str, Any]:
    """Replace every ``$ref`` with its target; cycles become cyclic objects."""
    try:
        return jsonref.replace_refs(raw, base_uri=base_uri, proxies=False, lazy_load=False)
    except jsonref.JsonRefError as exc:
        raise SpecLoadError(f"Failed to resolve reference: {exc}") from exc


def _check_resolved(paths: Mapping[str, Any]) -> None:
    for path, path_item in paths.items():
        if isinstance(path_item, Mapping) and "$ref" in path_item:
            raise SpecLoadError(f"Unresolved path item reference at {path}")
    for path, method, operation, path_item in iter_operations(paths):
        where = f"{method.upper()} {path}"
        if "$ref" in operation:
            raise SpecLoadError(f"Unresolved operation reference at {where}")
        for parameter in [*(path_item.get("parameters") or []), *(operation.get("parameters") or [])]:
            if isinstance(parameter, Mapping) and "$ref" in parameter:
                raise SpecLoadError(f"Unresolved parameter reference at {where}")
        request_body = operation.get("requestBody")
        if isinstance(request_body, Mapping) and "$ref" in request_body:
            raise SpecLoadError(f"Unresolved request body reference at {where}")


def build_document(raw: Any, base_uri: str = "") -> OpenAPIDocument:
    """Turn a parsed (not yet dereferenced) document into an OpenAPIDocument.

    Runs the version check, structural check, dereferencing and operationId
    synthesis. Load-time fatal problems raise SpecLoadError.
    """
    try:
        version = get_version(raw)
    except UnsupportedVersionError as exc:
        raise SpecLoadError(str(exc)) from exc

    warnings = check_structure(raw, version)
    if warnings:
        logger.warning("OpenAPI %s schema validation warnings: %s", version.value, warnings)

    document = dereference(raw, base_uri=base_uri)
    paths = document.get("paths")
    if not isinstance(paths, Mapping) or not paths:
        raise SpecLoadError("Invalid or missing paths in OpenAPI spec")
    _check_resolved(paths)

    webhooks: Mapping[str, Any] = {}
    if version.capabilities.supports_webhooks and isinstance(document.get("webhooks"), Mapping):
        webhooks = document["webhooks"]
        _check_resolved(webhooks)

    assignment = assign_operation_ids(paths)
    for operation_key, operation_id in assignment.generated.items():
        logger.info("Adding generated operationId: %s for %s", operation_id, operation_key)
    if assignment.errors:
        logger.warning("OpenAPI schema validation warnings: %s", assignment.errors)

    info = document.get("info") if isinstance(document.get("info"), Mapping) else {}
    return OpenAPIDocument(
        raw=document,
        version=version,
        paths=paths,
        webhooks=webhooks,
        title=info.get("title"),
        api_version=info.get("version"),
        warnings=tuple(warnings + assignment.errors),
    )


class OpenAPILoader:
    def __init__(
        self,
        cache_seconds: int = 3600,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._cache: Dict[str, Tuple[float, str]] = {}

    async def load_text(self, location: str) -> str:
        if not location:
            raise SpecLoadError("OpenAPI specification path cannot be empty")
        if is_url(location):
            return await self._fetch(location)
        try:
            return Path(location).read_text(encoding="utf-8")
        except OSError as exc:
            raise SpecLoadError(f"Failed to read OpenAPI spec {location}: {exc}") from exc

    async def _fetch(self, url: str) -> str:
        cached = self._cache.get(url)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise SpecLoadError(f"Failed to fetch OpenAPI spec: {exc}") from exc
        if response.status_code != 200:
            logger.warning("Failed to fetch OpenAPI spec: %s (%s)", url, response.status_code)
            raise SpecLoadError(
                f"Failed to fetch OpenAPI spec: {response.status_code} {response.reason_phrase}"
            )

        self._cache[url] = (time.time(), response.text)
        return response.text

    def parse(self, text: str) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SpecLoadError(f"Failed to parse OpenAPI spec: {exc}") from exc
        if not isinstance(data, dict):
            raise SpecLoadError("Failed to parse OpenAPI spec: document is not an object")
        return data

    async def load(self, location: str) -> OpenAPIDocument:
        text = await self.load_text(location)
        raw = self.parse(text)
        base_uri = location if is_url(location) else Path(location).resolve().as_uri()
        document = build_document(raw, base_uri=base_uri)
        logger.info(
            "Loaded OpenAPI %s document %r from %s",
            document.version.value,
            document.title,
            location,
        )
        return document
