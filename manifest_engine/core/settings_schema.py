"""
Room settings schemas: parsing, validation and breaking-change classification.

A manifest's ``settings`` subtree is a small subset of JSON Schema. It is
parsed into a closed set of tagged nodes so validation and diffing are plain
structural recursion:

- ``ObjectNode``: ``{"type": "object", "properties": {...}, "required": [...]}``
- ``ArrayNode``:  ``{"type": "array", "items": {...}}``
- ``LeafNode``:   ``{"type": "string" | "number" | "integer" | "boolean", "enum": [...]}``

Any node may carry ``default``. Defaults are never written into documents;
a required key whose node has a default is treated as implicitly satisfied
when absent. Other JSON Schema keywords (``description``, ``minimum``,
``format``, ...) are accepted and ignored.

This module is part of MANIFEST_ENGINE.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from ..constants import LEAF_TYPES
from ..exceptions import InvalidSettingsSchemaError, SettingsValidationError


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


# ============================================================================
# Schema nodes
# ============================================================================


@dataclass(frozen=True)
class LeafNode:
    type: str
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = MISSING

    kind = "leaf"

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def describe(self) -> str:
        if self.enum is not None:
            return f"{self.type} in {list(self.enum)}"
        return self.type


@dataclass(frozen=True)
class ArrayNode:
    items: "SchemaNode"
    default: Any = MISSING

    kind = "array"

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def describe(self) -> str:
        return "array"


@dataclass(frozen=True)
class ObjectNode:
    properties: Dict[str, "SchemaNode"] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    default: Any = MISSING

    kind = "object"

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def describe(self) -> str:
        return "object"


SchemaNode = Union[ObjectNode, ArrayNode, LeafNode]

EMPTY_SCHEMA = ObjectNode()
"""Schema used for manifests without a ``settings`` subtree: any object is accepted."""


def parse_schema(raw: Any, path: str = "") -> SchemaNode:
    """
    Parse a JSON-Schema-subset dictionary into schema nodes.

    Args:
        raw: Schema dictionary (``None`` yields ``EMPTY_SCHEMA``)
        path: Location of ``raw`` inside the settings schema, for error messages

    Raises:
        InvalidSettingsSchemaError: If the structure is outside the supported subset
    """
    if raw is None and not path:
        return EMPTY_SCHEMA
    where = path or "<root>"
    if not isinstance(raw, dict):
        raise InvalidSettingsSchemaError(f"Schema node at '{where}' must be an object", path)

    node_type = raw.get("type")
    default = raw.get("default", MISSING)

    if node_type == "object":
        properties = raw.get("properties", {})
        if not isinstance(properties, dict):
            raise InvalidSettingsSchemaError(f"'properties' at '{where}' must be an object", path)
        required = raw.get("required", [])
        if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
            raise InvalidSettingsSchemaError(
                f"'required' at '{where}' must be a list of strings", path
            )
        undeclared = [r for r in required if r not in properties]
        if undeclared:
            raise InvalidSettingsSchemaError(
                f"Required properties {undeclared} at '{where}' are not declared in 'properties'",
                path,
            )
        parsed = {
            name: parse_schema(child, _join(path, name)) for name, child in properties.items()
        }
        return ObjectNode(properties=parsed, required=tuple(required), default=default)

    if node_type == "array":
        if "items" not in raw:
            raise InvalidSettingsSchemaError(f"Array schema at '{where}' requires 'items'", path)
        return ArrayNode(items=parse_schema(raw["items"], f"{path}[]"), default=default)

    if node_type in LEAF_TYPES:
        enum_values = raw.get("enum")
        if enum_values is not None:
            if not isinstance(enum_values, list) or not enum_values:
                raise InvalidSettingsSchemaError(
                    f"'enum' at '{where}' must be a non-empty list", path
                )
            enum_values = tuple(enum_values)
        return LeafNode(type=node_type, enum=enum_values, default=default)

    raise InvalidSettingsSchemaError(
        f"Unsupported schema type {node_type!r} at '{where}'; expected one of "
        f"{['object', 'array', *LEAF_TYPES]}",
        path,
    )


# ============================================================================
# Validation
# ============================================================================


@dataclass(frozen=True)
class FieldError:
    """A single way a settings document fails its schema."""

    kind: str  # "missing" | "type" | "enum"
    path: str
    expected: Any
    actual: Any

    MISSING = "missing"
    TYPE = "type"
    ENUM = "enum"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "path": self.path,
            "expected": self.expected,
            "actual": self.actual,
        }


def json_type(value: Any) -> str:
    """Name the JSON type of a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _matches_type(value: Any, expected: str) -> bool:
    actual = json_type(value)
    if expected == "number":
        return actual in ("integer", "number")
    if expected == "integer":
        return actual == "integer" or (actual == "number" and float(value).is_integer())
    return actual == expected


def _enum_contains(values: Tuple[Any, ...], candidate: Any) -> bool:
    # 1 == True in Python; enum membership must not conflate them
    candidate_is_bool = isinstance(candidate, bool)
    return any(v == candidate and isinstance(v, bool) == candidate_is_bool for v in values)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def collect_errors(document: Any, schema: SchemaNode, path: str = "") -> List[FieldError]:
    """
    Return every way ``document`` fails ``schema`` (empty list when valid).
    """
    errors: List[FieldError] = []
    _check(document, schema, path, errors)
    return errors


def _check(value: Any, node: SchemaNode, path: str, errors: List[FieldError]) -> None:
    if isinstance(node, ObjectNode):
        if not isinstance(value, dict):
            errors.append(FieldError(FieldError.TYPE, path, "object", json_type(value)))
            return
        for name in node.required:
            if name not in value and not node.properties[name].has_default:
                errors.append(
                    FieldError(
                        FieldError.MISSING,
                        _join(path, name),
                        node.properties[name].describe(),
                        None,
                    )
                )
        for name, child in node.properties.items():
            if name in value:
                _check(value[name], child, _join(path, name), errors)
        return

    if isinstance(node, ArrayNode):
        if not isinstance(value, (list, tuple)):
            errors.append(FieldError(FieldError.TYPE, path, "array", json_type(value)))
            return
        for index, item in enumerate(value):
            _check(item, node.items, f"{path}[{index}]", errors)
        return

    if not _matches_type(value, node.type):
        errors.append(FieldError(FieldError.TYPE, path, node.type, json_type(value)))
        return
    if node.enum is not None and not _enum_contains(node.enum, value):
        errors.append(FieldError(FieldError.ENUM, path, list(node.enum), value))


def validate(document: Any, schema: SchemaNode, version: Optional[str] = None) -> None:
    """
    Validate a settings document.

    Raises:
        SettingsValidationError: Describing the first failure, with all
            failures in ``errors``
    """
    errors = collect_errors(document, schema)
    if errors:
        first = errors[0]
        raise SettingsValidationError(
            path=first.path or "$",
            expected=first.expected,
            actual=first.actual,
            errors=errors,
            version=version,
        )


def is_valid(document: Any, schema: SchemaNode) -> bool:
    return not collect_errors(document, schema)


# ============================================================================
# Breaking-change classification
# ============================================================================


class Compatibility(str, enum.Enum):
    BREAKING = "BREAKING"
    NON_BREAKING = "NON_BREAKING"


@dataclass(frozen=True)
class SchemaChange:
    """One difference between two settings schemas."""

    path: str
    kind: str
    breaking: bool
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind,
            "breaking": self.breaking,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class SchemaDiff:
    changes: Tuple[SchemaChange, ...] = ()

    @property
    def breaking_changes(self) -> List[SchemaChange]:
        return [c for c in self.changes if c.breaking]

    @property
    def is_breaking(self) -> bool:
        return any(c.breaking for c in self.changes)

    @property
    def classification(self) -> Compatibility:
        return Compatibility.BREAKING if self.is_breaking else Compatibility.NON_BREAKING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classification": self.classification.value,
            "changes": [c.to_dict() for c in self.changes],
        }


def diff_schemas(old: SchemaNode, new: SchemaNode) -> SchemaDiff:
    """
    Compare two settings schemas field by field over the merged key set.
    """
    changes: List[SchemaChange] = []
    _diff(old, new, "", changes)
    return SchemaDiff(tuple(changes))


def diff_classify(old: SchemaNode, new: SchemaNode) -> Compatibility:
    """BREAKING when any change could invalidate a document valid under ``old``."""
    return diff_schemas(old, new).classification


def _diff(old: SchemaNode, new: SchemaNode, path: str, changes: List[SchemaChange]) -> None:
    if old.kind != new.kind:
        changes.append(SchemaChange(path, "kind_changed", True, f"{old.kind} -> {new.kind}"))
        return

    if isinstance(old, LeafNode):
        _diff_leaf(old, new, path, changes)
        return

    if isinstance(old, ArrayNode):
        _diff(old.items, new.items, f"{path}[]", changes)
        return

    for name in [*old.properties, *(k for k in new.properties if k not in old.properties)]:
        child_path = _join(path, name)
        in_old, in_new = name in old.properties, name in new.properties

        if in_old and not in_new:
            changes.append(
                SchemaChange(
                    child_path,
                    "field_removed",
                    breaking=name in old.required,
                    detail="required" if name in old.required else "optional",
                )
            )
            continue

        if in_new and not in_old:
            node = new.properties[name]
            required = name in new.required
            changes.append(
                SchemaChange(
                    child_path,
                    "field_added",
                    breaking=required and not node.has_default,
                    detail=("required" if required else "optional")
                    + (" with default" if node.has_default else ""),
                )
            )
            continue

        was_required, now_required = name in old.required, name in new.required
        if now_required and not was_required:
            has_default = new.properties[name].has_default
            changes.append(
                SchemaChange(
                    child_path,
                    "field_now_required",
                    breaking=not has_default,
                    detail="with default" if has_default else "",
                )
            )
        elif was_required and not now_required:
            changes.append(SchemaChange(child_path, "field_now_optional", breaking=False))

        _diff(old.properties[name], new.properties[name], child_path, changes)


def _diff_leaf(old: LeafNode, new: LeafNode, path: str, changes: List[SchemaChange]) -> None:
    if old.type != new.type:
        changes.append(SchemaChange(path, "type_changed", True, f"{old.type} -> {new.type}"))
        return

    if new.enum is None:
        if old.enum is not None:
            changes.append(SchemaChange(path, "enum_removed", False))
        return

    if old.enum is None:
        changes.append(SchemaChange(path, "enum_added", True, f"{list(new.enum)}"))
        return

    dropped = [v for v in old.enum if not _enum_contains(new.enum, v)]
    if dropped:
        changes.append(SchemaChange(path, "enum_narrowed", True, f"removed {dropped}"))
        return

    added = [v for v in new.enum if not _enum_contains(old.enum, v)]
    if added:
        changes.append(SchemaChange(path, "enum_widened", False, f"added {added}"))
