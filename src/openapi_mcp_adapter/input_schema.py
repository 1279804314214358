"""Builds the grouped tool input shape for a resolved operation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, create_model

from .descriptors import (
    MODEL_CONFIG,
    AnnotationBuilder,
    ObjectType,
    PropertyDescriptor,
    TypeDescriptor,
    Unconstrained,
    model_name_for,
)
from .models import ResolvedOperation
from .schema import SchemaCompiler
from .versions import OpenAPIVersion, VersionCapabilities


logger = logging.getLogger(__name__)

# Managed by the transport or security sensitive; compared lowercase.
EXCLUDED_HEADERS = frozenset({"authorization", "content-type", "accept"})

JSON_MEDIA_TYPE = "application/json"

PATH_GROUP = "pathParameters"
QUERY_GROUP = "queryParameters"
HEADER_GROUP = "headerParameters"
BODY_FIELD = "requestBody"

GROUP_LOCATIONS = {PATH_GROUP: "path", QUERY_GROUP: "query", HEADER_GROUP: "header"}

_GROUP_DESCRIPTIONS = {
    PATH_GROUP: "Parameters required in the URL path.",
    QUERY_GROUP: "Parameters provided in the query string.",
    HEADER_GROUP: (
        "Allowed parameters provided in the request headers "
        "(excluding common auth/content headers)."
    ),
}


@dataclass
class InputShape:
    operation_id: str
    path_parameters: Dict[str, PropertyDescriptor] = field(default_factory=dict)
    query_parameters: Dict[str, PropertyDescriptor] = field(default_factory=dict)
    header_parameters: Dict[str, PropertyDescriptor] = field(default_factory=dict)
    request_body: Optional[PropertyDescriptor] = None
    request_media_type: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.path_parameters
            or self.query_parameters
            or self.header_parameters
            or self.request_body
        )

    def group(self, name: str) -> Dict[str, PropertyDescriptor]:
        return {
            PATH_GROUP: self.path_parameters,
            QUERY_GROUP: self.query_parameters,
            HEADER_GROUP: self.header_parameters,
        }[name]

    def group_required(self, name: str) -> bool:
        if name == PATH_GROUP:
            return bool(self.path_parameters)
        return any(prop.required for prop in self.group(name).values())

    def as_descriptor(self) -> ObjectType:
        properties: Dict[str, PropertyDescriptor] = {}
        for name in (PATH_GROUP, QUERY_GROUP, HEADER_GROUP):
            members = self.group(name)
            if not members:
                continue
            group = ObjectType(
                properties=dict(members),
                description=_GROUP_DESCRIPTIONS[name],
                title=f"{self.operation_id}_{name}",
            )
            properties[name] = PropertyDescriptor(group, required=self.group_required(name))
        if self.request_body is not None:
            properties[BODY_FIELD] = self.request_body
        return ObjectType(properties=properties, title=f"{self.operation_id}Input")

    @cached_property
    def input_model(self) -> type[BaseModel]:
        descriptor = self.as_descriptor()
        if not descriptor.properties:
            return create_model(model_name_for(descriptor.title), __config__=MODEL_CONFIG)
        try:
            return _build_model(descriptor)
        except Exception:
            logger.error(
                "Failed to build input model for %s; relaxing the fields that fail",
                self.operation_id,
                exc_info=True,
            )
        return _build_model(_relaxed(descriptor))

    @cached_property
    def input_schema(self) -> Dict[str, Any]:
        """JSON schema of the input model; recursive models stay as ``$ref``/``$defs``."""
        return self.input_model.model_json_schema(by_alias=True)

    def validate(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate tool arguments; unset fields are omitted from the result."""
        instance = self.input_model.model_validate(dict(arguments or {}))
        return instance.model_dump(by_alias=True, exclude_unset=True)


def _build_model(descriptor: ObjectType) -> type[BaseModel]:
    model = AnnotationBuilder(name_hint=descriptor.title or "Input").build(descriptor)
    model.model_json_schema(by_alias=True)
    return model


def _relaxed(descriptor: ObjectType) -> ObjectType:
    """Copy of an input descriptor whose unbuildable fields accept any value."""
    properties: Dict[str, PropertyDescriptor] = {}
    for name, prop in descriptor.properties.items():
        try:
            _build_model(ObjectType(properties={name: prop}, title=f"{descriptor.title}_{name}"))
        except Exception:
            logger.warning("Accepting any value for %s of %s", name, descriptor.title)
            prop = PropertyDescriptor(
                Unconstrained(), required=prop.required, description=prop.effective_description
            )
        properties[name] = prop
    return ObjectType(properties=properties, title=descriptor.title)


def select_media_type(content: Any) -> Optional[str]:
    """Media type used for a request body: JSON when offered, else the first listed."""
    if not isinstance(content, Mapping) or not content:
        return None
    if JSON_MEDIA_TYPE in content:
        return JSON_MEDIA_TYPE
    return next(iter(content))


def _media_schema(content: Any) -> Tuple[Optional[str], Any]:
    if not isinstance(content, Mapping) or not content:
        return None, None
    media_type, media = next(iter(content.items()))
    if isinstance(media, Mapping):
        return media_type, media.get("schema")
    return media_type, None


def _compile_parameter(
    parameter: Mapping[str, Any],
    compiler: SchemaCompiler,
    capabilities: VersionCapabilities,
) -> TypeDescriptor:
    name = parameter.get("name")
    schema = parameter.get("schema")

    if schema is None and "content" in parameter:
        media_type, schema = _media_schema(parameter.get("content"))
        if not capabilities.content_parameters:
            logger.warning(
                "Parameter %s declares content (%s) which is not used in this OpenAPI version; "
                "accepting any value",
                name,
                media_type,
            )
            schema = None
        elif schema is None:
            logger.warning(
                "Parameter %s has no schema in its content map; accepting any value", name
            )
    elif schema is None:
        logger.warning("Parameter %s has neither schema nor content; accepting any value", name)

    if schema is None:
        return Unconstrained()

    try:
        descriptor = compiler.compile(schema)
    except Exception:
        logger.warning("Failed to convert schema for parameter %s", name, exc_info=True)
        return Unconstrained(description=f"Parameter {name} (schema conversion failed)")
    return descriptor


def _build_request_body(
    operation: ResolvedOperation, compiler: SchemaCompiler
) -> Tuple[Optional[PropertyDescriptor], Optional[str]]:
    request_body = operation.request_body
    if request_body is None:
        return None, None
    if not isinstance(request_body, Mapping) or not isinstance(request_body.get("content"), Mapping):
        logger.error(
            "Skipping request body for %s: invalid or unresolved requestBody object structure.",
            operation.operation_id,
        )
        return None, None

    content = request_body["content"]
    media_type = select_media_type(content)
    if media_type is None:
        logger.error(
            "Skipping request body for %s: no suitable media type found in requestBody.content.",
            operation.operation_id,
        )
        return None, None
    if media_type != JSON_MEDIA_TYPE:
        logger.warning(
            'Request body media type "%s" not found for %s. Falling back to "%s".',
            JSON_MEDIA_TYPE,
            operation.operation_id,
            media_type,
        )

    media = content[media_type]
    schema = media.get("schema") if isinstance(media, Mapping) else None
    if not isinstance(schema, Mapping):
        logger.error(
            'Skipping request body for %s: media type "%s" found, but schema is missing '
            "or not an object.",
            operation.operation_id,
            media_type,
        )
        return None, None

    required = request_body.get("required") is True
    description = request_body.get("description") or schema.get("description") or "The request body."
    try:
        descriptor = compiler.compile(schema)
    except Exception:
        logger.error(
            "Failed to convert request body schema for %s", operation.operation_id, exc_info=True
        )
        descriptor = Unconstrained(description="The request body (schema conversion failed).")
        description = request_body.get("description")
    return PropertyDescriptor(descriptor, required=required, description=description), media_type


def build_input_shape(
    operation: ResolvedOperation,
    compiler: SchemaCompiler,
    version: OpenAPIVersion = OpenAPIVersion.V3_0,
) -> InputShape:
    capabilities = version.capabilities
    shape = InputShape(operation_id=operation.operation_id)

    for parameter in operation.parameters:
        name = parameter.get("name")
        location = parameter.get("in")
        if not name:
            continue
        if location == "cookie":
            continue
        if location == "header" and str(name).lower() in EXCLUDED_HEADERS:
            continue

        descriptor = _compile_parameter(parameter, compiler, capabilities)
        description = parameter.get("description") or None
        required = location == "path" or parameter.get("required") is True
        prop = PropertyDescriptor(descriptor, required=required, description=description)
        if location == "path":
            shape.path_parameters[name] = prop
        elif location == "query":
            shape.query_parameters[name] = prop
        elif location == "header":
            shape.header_parameters[name] = prop
        else:
            logger.warning(
                "Ignoring parameter %s of %s with unknown location %r",
                name,
                operation.operation_id,
                location,
            )

    shape.request_body, shape.request_media_type = _build_request_body(operation, compiler)
    return shape
