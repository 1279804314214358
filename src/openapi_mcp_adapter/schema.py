"""Compiles OpenAPI Schema Objects into type descriptors."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from .descriptors import (
    ArrayType,
    BooleanType,
    LazyType,
    LiteralType,
    NullType,
    NumberType,
    ObjectType,
    PropertyDescriptor,
    StringType,
    TypeDescriptor,
    Unconstrained,
    UnionType,
)
from .versions import OpenAPIVersion


logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = ("string", "number", "integer", "boolean", "object", "array", "null")


class NullabilityMode(str, Enum):
    FLAG_BASED = "flag"
    UNION_BASED = "union"


@dataclass
class _Compilation:
    active: Set[int] = field(default_factory=set)
    results: Dict[int, TypeDescriptor] = field(default_factory=dict)


class SchemaCompiler:
    """Pure ``SchemaObject -> TypeDescriptor`` conversion.

    One compiler serves both OpenAPI bands; ``nullability`` captures the only
    semantic difference (``nullable: true`` in 3.0, ``"null"`` in a type list in
    3.1). Each ``compile`` call keeps its own cycle bookkeeping, so a compiler can
    be shared between tools and invocations.
    """

    def __init__(
        self,
        nullability: NullabilityMode = NullabilityMode.FLAG_BASED,
        strict_enums: bool = False,
    ) -> None:
        self.nullability = nullability
        self.strict_enums = strict_enums

    @classmethod
    def for_version(cls, version: OpenAPIVersion, strict_enums: bool = False) -> "SchemaCompiler":
        if version.capabilities.nullable_via_flag:
            return cls(NullabilityMode.FLAG_BASED, strict_enums=strict_enums)
        return cls(NullabilityMode.UNION_BASED, strict_enums=strict_enums)

    def compile(self, schema: Any) -> TypeDescriptor:
        return self._compile(schema, _Compilation())

    def _compile(self, schema: Any, state: _Compilation) -> TypeDescriptor:
        if not isinstance(schema, Mapping):
            return Unconstrained()

        key = id(schema)
        if key in state.results:
            return state.results[key]
        if key in state.active:
            return LazyType(lambda: state.results[key])

        state.active.add(key)
        try:
            descriptor = self._compile_schema(schema, state)
        finally:
            state.active.discard(key)
        state.results[key] = descriptor
        return descriptor

    def _compile_schema(self, schema: Mapping[str, Any], state: _Compilation) -> TypeDescriptor:
        type_tag = schema.get("type")

        if isinstance(type_tag, list):
            tags = [tag for tag in type_tag if tag in PRIMITIVE_TYPES]
            if not tags:
                descriptor: TypeDescriptor = Unconstrained()
            elif len(tags) == 1:
                descriptor = self._compile_tag(tags[0], schema, state)
            else:
                descriptor = UnionType(
                    tuple(self._compile_tag(tag, schema, state) for tag in tags)
                )
        elif type_tag in PRIMITIVE_TYPES:
            descriptor = self._compile_tag(type_tag, schema, state)
        elif type_tag is None and isinstance(schema.get("properties"), Mapping):
            descriptor = self._compile_tag("object", schema, state)
        elif type_tag is None:
            descriptor = self._compile_composition(schema, state)
        else:
            descriptor = Unconstrained()

        if (
            self.nullability is NullabilityMode.FLAG_BASED
            and schema.get("nullable") is True
            and not isinstance(descriptor, (NullType, Unconstrained))
        ):
            descriptor = UnionType((descriptor, NullType()))

        return descriptor.with_description(_description(schema))

    def _compile_tag(self, tag: str, schema: Mapping[str, Any], state: _Compilation) -> TypeDescriptor:
        if tag == "string":
            return self._compile_string(schema)
        if tag in ("number", "integer"):
            return NumberType(
                integer=tag == "integer",
                minimum=_number_or_none(schema.get("minimum")),
                maximum=_number_or_none(schema.get("maximum")),
            )
        if tag == "boolean":
            return BooleanType()
        if tag == "array":
            items = schema.get("items")
            if not isinstance(items, Mapping):
                return ArrayType(Unconstrained())
            return ArrayType(self._compile(items, state))
        if tag == "object":
            return self._compile_object(schema, state)
        return NullType()

    def _compile_string(self, schema: Mapping[str, Any]) -> TypeDescriptor:
        values = tuple(value for value in schema.get("enum") or () if isinstance(value, str))
        if values:
            literal = LiteralType(values)
            if self.strict_enums:
                return literal
            return UnionType((StringType(format=schema.get("format")), literal))
        return StringType(
            pattern=_checked_pattern(schema.get("pattern")),
            format=schema.get("format"),
        )

    def _compile_object(self, schema: Mapping[str, Any], state: _Compilation) -> ObjectType:
        descriptor = ObjectType(title=schema.get("title"), description=_description(schema))

        required = schema.get("required") or []
        properties = schema.get("properties") or {}
        if isinstance(properties, Mapping):
            for name, prop_schema in properties.items():
                descriptor.properties[name] = PropertyDescriptor(
                    self._compile(prop_schema, state),
                    required=name in required,
                )

        for member in _all_of(schema):
            compiled = self._compile(member, state)
            if isinstance(compiled, ObjectType):
                _merge_into(descriptor, compiled)

        additional = schema.get("additionalProperties", True)
        if additional is False:
            descriptor.additional = False
        elif isinstance(additional, Mapping):
            descriptor.additional = self._compile(additional, state)
        return descriptor

    def _compile_composition(self, schema: Mapping[str, Any], state: _Compilation) -> TypeDescriptor:
        for keyword in ("oneOf", "anyOf"):
            members = schema.get(keyword)
            if isinstance(members, list) and members:
                options = tuple(self._compile(member, state) for member in members)
                if len(options) == 1:
                    return options[0]
                return UnionType(options)

        members = _all_of(schema)
        if members:
            compiled = [self._compile(member, state) for member in members]
            if len(compiled) == 1:
                return compiled[0]
            if all(isinstance(item, ObjectType) for item in compiled):
                merged = ObjectType(title=schema.get("title"), description=_description(schema))
                for item in compiled:
                    _merge_into(merged, item)  # type: ignore[arg-type]
                return merged
        # "not" and mixed allOf have no structural equivalent.
        return Unconstrained()


def compile_schema(
    schema: Any, version: OpenAPIVersion = OpenAPIVersion.V3_0, strict_enums: bool = False
) -> TypeDescriptor:
    return SchemaCompiler.for_version(version, strict_enums=strict_enums).compile(schema)


def _all_of(schema: Mapping[str, Any]) -> List[Any]:
    members = schema.get("allOf")
    if isinstance(members, list):
        return members
    return []


def _merge_into(target: ObjectType, source: ObjectType) -> None:
    for name, prop in source.properties.items():
        existing = target.properties.get(name)
        required = prop.required or (existing.required if existing else False)
        target.properties[name] = PropertyDescriptor(prop.descriptor, required=required)
    if source.additional is False:
        target.additional = False


def _description(schema: Mapping[str, Any]) -> Optional[str]:
    description = schema.get("description")
    return description if isinstance(description, str) and description else None


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _checked_pattern(pattern: Any) -> Optional[str]:
    if not isinstance(pattern, str) or not pattern:
        return None
    try:
        re.compile(pattern)
    except re.error as exc:
        logger.warning("Ignoring invalid pattern %r: %s", pattern, exc)
        return None
    return pattern
