"""Declarative schemas and the validator that checks values against them.

Schemas are plain data: an ordered mapping of field name to :class:`Field`.
They are interpreted by :func:`validate` and can be rendered as JSON Schema for
structured LLM output and API discovery.

Validation never coerces. ``True`` is not an integer, ``"3"`` is not a number.
An integer is accepted where a number is declared.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from medicine_agent_orchestrator.workflow.errors import ValidationError, ValidationIssue

FieldType = Literal["string", "integer", "number", "boolean", "array", "object", "any"]

_JSON_TYPES: dict[str, str] = {
    "string": "string",
    "integer": "integer",
    "number": "number",
    "boolean": "boolean",
    "array": "array",
    "object": "object",
}


@dataclass(frozen=True, slots=True)
class Field:
    """Description of one value.

    ``items`` describes array elements, ``schema`` describes nested objects.
    Both are optional: an array without ``items`` accepts any elements, an
    object without ``schema`` accepts any mapping.
    """

    type: FieldType
    required: bool = True
    description: str = ""
    items: Field | None = None
    schema: Schema | None = None
    enum: tuple[object, ...] | None = None


@dataclass(frozen=True, slots=True)
class Schema:
    fields: Mapping[str, Field] = field(default_factory=dict)
    allow_extra: bool = False
    description: str = ""

    def required_fields(self) -> list[str]:
        return [name for name, f in self.fields.items() if f.required]

    def to_json_schema(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "object",
            "properties": {name: _field_json_schema(f) for name, f in self.fields.items()},
            "required": self.required_fields(),
            "additionalProperties": self.allow_extra,
        }
        if self.description:
            out["description"] = self.description
        return out


def _field_json_schema(f: Field) -> dict[str, Any]:
    if f.type == "object" and f.schema is not None:
        out = f.schema.to_json_schema()
    elif f.type == "any":
        out = {}
    else:
        out = {"type": _JSON_TYPES[f.type]}
    if f.type == "array" and f.items is not None:
        out["items"] = _field_json_schema(f.items)
    if f.enum is not None:
        out["enum"] = list(f.enum)
    if f.description:
        out["description"] = f.description
    return out


def _type_matches(expected: FieldType, value: object) -> bool:
    if expected == "any":
        return True
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, int | float) and not isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list | tuple)
    if expected == "object":
        return isinstance(value, Mapping)
    return False


def _type_name(value: object) -> str:
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
    if isinstance(value, list | tuple):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _check_field(f: Field, value: object, path: str, issues: list[ValidationIssue]) -> None:
    if not _type_matches(f.type, value):
        issues.append(
            ValidationIssue(path, f"expected {f.type}, got {_type_name(value)}")
        )
        return

    if f.enum is not None and value not in f.enum:
        allowed = ", ".join(repr(v) for v in f.enum)
        issues.append(ValidationIssue(path, f"must be one of {allowed}"))

    if f.type == "array" and f.items is not None:
        assert isinstance(value, list | tuple)
        for idx, item in enumerate(value):
            _check_field(f.items, item, f"{path}[{idx}]", issues)

    if f.type == "object" and f.schema is not None:
        assert isinstance(value, Mapping)
        _check_object(f.schema, value, path, issues)


def _check_object(
    schema: Schema, value: Mapping[str, object], path: str, issues: list[ValidationIssue]
) -> None:
    for name, f in schema.fields.items():
        child = f"{path}.{name}"
        if name not in value or value[name] is None:
            if f.type == "any" and name in value:
                continue
            if f.required:
                issues.append(ValidationIssue(child, "required field is missing"))
            continue
        _check_field(f, value[name], child, issues)

    if not schema.allow_extra:
        for name in value:
            if name not in schema.fields:
                issues.append(ValidationIssue(f"{path}.{name}", "unexpected field"))


def collect_issues(schema: Schema, value: object) -> list[ValidationIssue]:
    if not isinstance(value, Mapping):
        return [ValidationIssue("$", f"expected object, got {_type_name(value)}")]
    issues: list[ValidationIssue] = []
    _check_object(schema, value, "$", issues)
    return issues


def validate(schema: Schema, value: object) -> dict[str, Any]:
    """Validate ``value`` against ``schema``.

    Returns:
        The value as a plain dict (a shallow copy; nested values are shared).

    Raises:
        ValidationError: listing every violation found.
    """

    issues = collect_issues(schema, value)
    if issues:
        raise ValidationError(issues)
    assert isinstance(value, Mapping)
    return dict(value)


def _field_compatible(produced: Field, consumed: Field) -> bool:
    if consumed.type == "any" or produced.type == "any":
        return True
    if produced.type == consumed.type:
        if produced.type == "object" and produced.schema and consumed.schema:
            return not compatibility_problems(produced.schema, consumed.schema)
        return True
    return produced.type == "integer" and consumed.type == "number"


def compatibility_problems(producer: Schema, consumer: Schema) -> list[str]:
    """Structural check that ``producer`` output can be fed to ``consumer``.

    Returns a list of human-readable problems; empty means compatible.
    """

    problems: list[str] = []
    for name, consumed in consumer.fields.items():
        produced = producer.fields.get(name)
        if produced is None:
            if consumed.required and not producer.allow_extra:
                problems.append(f"field '{name}' is required but never produced")
            continue
        if consumed.required and not produced.required:
            problems.append(f"field '{name}' is required but produced as optional")
        if not _field_compatible(produced, consumed):
            problems.append(
                f"field '{name}' is produced as {produced.type} but consumed as {consumed.type}"
            )

    if not consumer.allow_extra:
        for name in producer.fields:
            if name not in consumer.fields:
                problems.append(f"field '{name}' is produced but not accepted")
    return problems
