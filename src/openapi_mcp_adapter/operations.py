"""Operation lookup, parameter merging and operationId synthesis."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .models import OpenAPIDocument, ResolvedOperation

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

WEBHOOK_PREFIX = "webhook:"

_PATH_PARAMETER = re.compile(r"\{([^}]+)\}")
_HYPHEN_WORD = re.compile(r"-(\w)")
_UNDERSCORE_WORD = re.compile(r"_(\w)")


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def generate_operation_id(path: str, method: str) -> str:
    """Build a camelCase operationId from method and path.

    ``GET /users/{id}`` becomes ``getUsersById``.
    """
    part = path[1:] if path.startswith("/") else path
    part = _PATH_PARAMETER.sub(lambda match: f"By{_capitalize(match.group(1))}", part)
    part = _HYPHEN_WORD.sub(lambda match: match.group(1).upper(), part)
    part = _UNDERSCORE_WORD.sub(lambda match: match.group(1).upper(), part)

    segments = part.split("/")
    joined = "".join(
        segment if index == 0 else _capitalize(segment) for index, segment in enumerate(segments)
    )
    return f"{method.lower()}{_capitalize(joined)}"


class OperationIdRegistry:
    """Set of claimed operationIds for one synthesis pass."""

    def __init__(self, claimed: Iterable[str] = ()) -> None:
        self._claimed: Set[str] = set(claimed)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._claimed

    def __len__(self) -> int:
        return len(self._claimed)

    def claim(self, operation_id: str) -> bool:
        """Claim an id; False when it was already taken."""
        if operation_id in self._claimed:
            return False
        self._claimed.add(operation_id)
        return True

    def unique(self, base: str) -> str:
        candidate = base
        counter = 1
        while candidate in self._claimed:
            candidate = f"{base}_{counter}"
            counter += 1
        self._claimed.add(candidate)
        return candidate


@dataclass
class OperationIdAssignment:
    generated: Dict[str, str] = field(default_factory=dict)
    duplicates: List[str] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"Duplicate operationId: {operation_id}" for operation_id in self.duplicates]


def iter_operations(
    paths: Optional[Mapping[str, Any]],
) -> Iterator[Tuple[str, str, Dict[str, Any], Mapping[str, Any]]]:
    """Yield ``(path, method, operation, path_item)`` in document order."""
    for path, path_item in (paths or {}).items():
        if not isinstance(path_item, Mapping):
            continue
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if isinstance(operation, Mapping):
                yield path, method, operation, path_item  # type: ignore[misc]


def assign_operation_ids(
    paths: Optional[Mapping[str, Any]],
    registry: Optional[OperationIdRegistry] = None,
) -> OperationIdAssignment:
    """Give every anonymous operation a unique synthesized operationId.

    Explicit ids are claimed first and never renamed. The synthesized id is
    written onto the operation mapping, so a second pass finds nothing to do.
    """
    registry = registry if registry is not None else OperationIdRegistry()
    assignment = OperationIdAssignment()
    anonymous: List[Tuple[str, str, Dict[str, Any]]] = []

    for path, method, operation, _ in iter_operations(paths):
        operation_id = operation.get("operationId")
        if operation_id:
            if not registry.claim(operation_id):
                assignment.duplicates.append(operation_id)
        else:
            anonymous.append((path, method, operation))

    for path, method, operation in anonymous:
        operation_id = registry.unique(generate_operation_id(path, method))
        operation["operationId"] = operation_id
        assignment.generated[f"{method.upper()} {path}"] = operation_id

    return assignment


def merge_parameters(
    path_level: Optional[Iterable[Any]],
    operation_level: Optional[Iterable[Any]],
) -> List[Mapping[str, Any]]:
    """Concatenate path- and operation-level parameters.

    On a duplicate ``(in, name)`` the operation-level entry wins.
    """
    seen: Set[Tuple[Any, Any]] = set()
    merged: List[Mapping[str, Any]] = []
    for parameter in reversed([*(path_level or []), *(operation_level or [])]):
        if not isinstance(parameter, Mapping) or "name" not in parameter or "in" not in parameter:
            continue
        key = (parameter["in"], parameter["name"])
        if key in seen:
            continue
        seen.add(key)
        merged.append(parameter)
    merged.reverse()
    return merged


def _scan(
    items: Optional[Mapping[str, Any]], operation_id: str, webhook: bool
) -> Optional[ResolvedOperation]:
    for path, method, operation, path_item in iter_operations(items):
        if operation.get("operationId") != operation_id:
            continue
        parameters = merge_parameters(path_item.get("parameters"), operation.get("parameters"))
        return ResolvedOperation(
            operation_id=operation_id,
            method=method,
            path=f"{WEBHOOK_PREFIX}{path}" if webhook else path,
            operation=operation,
            parameters=tuple(parameters),
            is_webhook=webhook,
        )
    return None


def find_operation(document: OpenAPIDocument, operation_id: str) -> Optional[ResolvedOperation]:
    found = _scan(document.paths, operation_id, webhook=False)
    if found is None and document.version.capabilities.supports_webhooks and document.webhooks:
        found = _scan(document.webhooks, operation_id, webhook=True)
    return found


def list_operation_ids(document: OpenAPIDocument) -> List[str]:
    """operationIds of path operations in document order (duplicates kept)."""
    return [
        operation["operationId"]
        for _, _, operation, _ in iter_operations(document.paths)
        if operation.get("operationId")
    ]
