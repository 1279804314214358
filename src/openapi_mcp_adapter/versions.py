"""OpenAPI version detection and per-version capabilities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class UnsupportedVersionError(ValueError):
    pass


@dataclass(frozen=True)
class VersionCapabilities:
    nullable_via_flag: bool
    supports_webhooks: bool
    content_parameters: bool


class OpenAPIVersion(str, Enum):
    V3_0 = "3.0"
    V3_1 = "3.1"

    @property
    def capabilities(self) -> VersionCapabilities:
        return _CAPABILITIES[self]


_CAPABILITIES = {
    OpenAPIVersion.V3_0: VersionCapabilities(
        nullable_via_flag=True,
        supports_webhooks=False,
        content_parameters=False,
    ),
    OpenAPIVersion.V3_1: VersionCapabilities(
        nullable_via_flag=False,
        supports_webhooks=True,
        content_parameters=True,
    ),
}


def get_version(document: Any) -> OpenAPIVersion:
    """Return the major.minor band of a document's ``openapi`` marker.

    Raises UnsupportedVersionError when the marker is missing, is not a string,
    or names anything other than 3.0.x / 3.1.x (Swagger 2.0 included).
    """
    if not isinstance(document, Mapping) or not isinstance(document.get("openapi"), str):
        raise UnsupportedVersionError(
            "Invalid OpenAPI schema object or missing 'openapi' version string."
        )

    version_string = document["openapi"]
    if version_string.startswith("3.0."):
        return OpenAPIVersion.V3_0
    if version_string.startswith("3.1."):
        return OpenAPIVersion.V3_1
    raise UnsupportedVersionError(
        f"Unsupported OpenAPI version: {version_string}. "
        "Only versions 3.0.x and 3.1.x are supported."
    )
