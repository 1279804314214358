"""Runtime type descriptors and their pydantic annotations."""

from __future__ import annotations

import keyword
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Annotated, Any, Callable, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, create_model


logger = logging.getLogger(__name__)

_LITERAL_TYPES = (str, int, bool, type(None))


class TypeDescriptor:
    """Base class of the compiled schema variants."""

    description: Optional[str] = None

    def with_description(self, description: Optional[str]) -> "TypeDescriptor":
        if not description or description == self.description:
            return self
        return replace(self, description=description)  # type: ignore[type-var]

    def annotation(self) -> Any:
        return AnnotationBuilder().build(self)

    def validate(self, value: Any) -> Any:
        annotation = self.annotation()
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            return annotation.model_validate(value)
        return TypeAdapter(annotation, config=MODEL_CONFIG).validate_python(value)


@dataclass(frozen=True)
class Unconstrained(TypeDescriptor):
    description: Optional[str] = None


@dataclass(frozen=True)
class StringType(TypeDescriptor):
    pattern: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class NumberType(TypeDescriptor):
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class BooleanType(TypeDescriptor):
    description: Optional[str] = None


@dataclass(frozen=True)
class NullType(TypeDescriptor):
    description: Optional[str] = None


@dataclass(frozen=True)
class LiteralType(TypeDescriptor):
    values: Tuple[Any, ...] = ()
    description: Optional[str] = None


@dataclass(frozen=True)
class ArrayType(TypeDescriptor):
    items: TypeDescriptor = field(default_factory=Unconstrained)
    description: Optional[str] = None


@dataclass(frozen=True)
class UnionType(TypeDescriptor):
    options: Tuple[TypeDescriptor, ...] = ()
    description: Optional[str] = None


@dataclass(frozen=True)
class PropertyDescriptor:
    descriptor: TypeDescriptor
    required: bool = False
    description: Optional[str] = None

    @property
    def effective_description(self) -> Optional[str]:
        return self.description or self.descriptor.description


@dataclass(eq=False)
class ObjectType(TypeDescriptor):
    properties: Dict[str, PropertyDescriptor] = field(default_factory=dict)
    additional: Union[bool, TypeDescriptor] = True
    description: Optional[str] = None
    title: Optional[str] = None

    @property
    def required(self) -> List[str]:
        return [name for name, prop in self.properties.items() if prop.required]


class LazyType(TypeDescriptor):
    """Deferred descriptor resolved on first use.

    Produced for self-referential schemas; the target is the descriptor that was
    still being compiled when the cycle was detected.
    """

    def __init__(self, resolver: Callable[[], TypeDescriptor], description: Optional[str] = None):
        self._resolver = resolver
        self._resolved: Optional[TypeDescriptor] = None
        self.description = description

    def resolve(self) -> TypeDescriptor:
        if self._resolved is None:
            target = self._resolver()
            while isinstance(target, LazyType):
                target = target.resolve()
            self._resolved = target
        return self._resolved

    def with_description(self, description: Optional[str]) -> "LazyType":
        if not description:
            return self
        return LazyType(self._resolver, description=description)

    def __repr__(self) -> str:
        state = "resolved" if self._resolved is not None else "pending"
        return f"LazyType({state})"


MODEL_CONFIG = ConfigDict(extra="allow", regex_engine="python-re")
_CLOSED_MODEL_CONFIG = ConfigDict(extra="ignore", regex_engine="python-re")


def field_name_for(name: str) -> str:
    """Python identifier used for a schema property name."""
    candidate = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in name)
    if not candidate or candidate[0].isdigit() or candidate[0] == "_":
        candidate = f"field_{candidate.lstrip('_')}"
    if keyword.iskeyword(candidate) or hasattr(BaseModel, candidate) or candidate.startswith("model_"):
        candidate = f"{candidate}_"
    return candidate


def model_name_for(name: str) -> str:
    sanitized = "".join(ch if ch.isalnum() else "_" for ch in name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = f"Model_{sanitized}"
    return sanitized


class AnnotationBuilder:
    """Turns descriptors into pydantic annotations.

    Object descriptors with properties become ``create_model`` models; a cycle
    back into one is emitted as a forward reference and every model left
    incomplete is rebuilt in ``build``. A cycle through any other descriptor
    (arrays, unions, maps) has no model to point at and becomes ``Any``.
    """

    def __init__(self, name_hint: str = "Object") -> None:
        self.name_hint = name_hint
        self._models: Dict[int, type[BaseModel]] = {}
        self._building: Dict[int, str] = {}
        self._active: set[int] = set()
        self._created: List[type[BaseModel]] = []
        self._namespace: Dict[str, Any] = {}
        self._used_names: set[str] = set()

    def build(self, descriptor: TypeDescriptor, name: Optional[str] = None) -> Any:
        annotation = self._annotation(descriptor, name or self.name_hint)
        for model in self._created:
            if not model.__pydantic_complete__:
                model.model_rebuild(_types_namespace=self._namespace)
        return annotation

    def _annotation(self, descriptor: TypeDescriptor, name: str) -> Any:
        if isinstance(descriptor, LazyType):
            descriptor = descriptor.resolve()
        if id(descriptor) in self._active:
            logger.debug("Recursive %s at %s; accepting any value", type(descriptor).__name__, name)
            return Any
        if isinstance(descriptor, Unconstrained):
            return Any
        if isinstance(descriptor, StringType):
            if descriptor.pattern:
                return Annotated[str, Field(pattern=descriptor.pattern)]
            return str
        if isinstance(descriptor, NumberType):
            return self._number(descriptor)
        if isinstance(descriptor, BooleanType):
            return bool
        if isinstance(descriptor, NullType):
            return type(None)
        if isinstance(descriptor, LiteralType):
            values = tuple(v for v in descriptor.values if isinstance(v, _LITERAL_TYPES))
            if not values:
                return Any
            return Literal[values]  # type: ignore[valid-type]
        if isinstance(descriptor, ArrayType):
            with self._entered(descriptor):
                return List[self._annotation(descriptor.items, f"{name}Item")]  # type: ignore[misc]
        if isinstance(descriptor, UnionType):
            with self._entered(descriptor):
                return self._union(descriptor, name)
        if isinstance(descriptor, ObjectType):
            return self._object(descriptor, name)
        logger.warning("Unknown descriptor %r; treating as unconstrained", descriptor)
        return Any

    @contextmanager
    def _entered(self, descriptor: TypeDescriptor) -> Iterator[None]:
        key = id(descriptor)
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)

    def _number(self, descriptor: NumberType) -> Any:
        # Integers only satisfy the whole-number part of a fractional bound.
        integral = _bounded(
            int,
            None if descriptor.minimum is None else math.ceil(descriptor.minimum),
            None if descriptor.maximum is None else math.floor(descriptor.maximum),
        )
        if descriptor.integer:
            return integral
        return Union[integral, _bounded(float, descriptor.minimum, descriptor.maximum)]

    def _union(self, descriptor: UnionType, name: str) -> Any:
        members: List[Any] = []
        for index, option in enumerate(descriptor.options):
            member = self._annotation(option, f"{name}Option{index}")
            if member is Any:
                return Any
            if member not in members:
                members.append(member)
        if not members:
            return Any
        if len(members) == 1:
            return members[0]
        return Union[tuple(members)]  # type: ignore[return-value]

    def _object(self, descriptor: ObjectType, name: str) -> Any:
        key = id(descriptor)
        if key in self._models:
            return self._models[key]
        if key in self._building:
            return self._building[key]

        if not descriptor.properties:
            if isinstance(descriptor.additional, TypeDescriptor):
                with self._entered(descriptor):
                    value = self._annotation(descriptor.additional, f"{name}Value")
                return Dict[str, value]  # type: ignore[valid-type]
            return Dict[str, Any]

        model_name = self._unique_name(descriptor.title or name)
        self._building[key] = model_name
        fields: Dict[str, Any] = {}
        try:
            for prop_name, prop in descriptor.properties.items():
                annotation = self._annotation(prop.descriptor, f"{model_name}_{prop_name}")
                field_name = field_name_for(prop_name)
                alias = prop_name if field_name != prop_name else None
                description = prop.effective_description
                if prop.required:
                    fields[field_name] = (annotation, Field(..., alias=alias, description=description))
                else:
                    fields[field_name] = (
                        Optional[annotation],
                        Field(None, alias=alias, description=description),
                    )
        finally:
            del self._building[key]

        config = _CLOSED_MODEL_CONFIG if descriptor.additional is False else MODEL_CONFIG
        model = create_model(
            model_name, __config__=config, __doc__=descriptor.description, **fields
        )
        self._models[key] = model
        self._namespace[model_name] = model
        self._created.append(model)
        return model

    def _unique_name(self, hint: str) -> str:
        base = model_name_for(hint)
        candidate = base
        counter = 1
        while candidate in self._used_names:
            candidate = f"{base}_{counter}"
            counter += 1
        self._used_names.add(candidate)
        return candidate


def _bounded(base: type, minimum: Optional[float], maximum: Optional[float]) -> Any:
    constraints: Dict[str, Any] = {}
    if minimum is not None:
        constraints["ge"] = minimum
    if maximum is not None:
        constraints["le"] = maximum
    if not constraints:
        return base
    return Annotated[base, Field(**constraints)]
