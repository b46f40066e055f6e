"""Required-answer validation and per-field-type dispatch.

FIELD_KINDS is the one table that says how each field type behaves. The
validator, the persistence filter, and the attachment pipeline all read it,
so adding a FieldType without a row here fails at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, get_args

from formflow.schemas.forms import FieldType, FormField, FormSchema, VisibilityCondition


@dataclass(frozen=True)
class FieldKind:
    # Collects an answer from the learner (display-only types do not).
    interactive: bool
    # Stored inline in submission data; file answers live in the linkage table.
    persist_inline: bool
    attachment: Literal["file", "signature"] | None = None


FIELD_KINDS: dict[str, FieldKind] = {
    "short_text": FieldKind(interactive=True, persist_inline=True),
    "long_text": FieldKind(interactive=True, persist_inline=True),
    "dropdown": FieldKind(interactive=True, persist_inline=True),
    "radio": FieldKind(interactive=True, persist_inline=True),
    "checkbox": FieldKind(interactive=True, persist_inline=True),
    "checkbox_group": FieldKind(interactive=True, persist_inline=True),
    "date": FieldKind(interactive=True, persist_inline=True),
    "number": FieldKind(interactive=True, persist_inline=True),
    "rating": FieldKind(interactive=True, persist_inline=True),
    "signature": FieldKind(interactive=True, persist_inline=True, attachment="signature"),
    "file": FieldKind(interactive=True, persist_inline=False, attachment="file"),
    "static_text": FieldKind(interactive=False, persist_inline=False),
    "image": FieldKind(interactive=False, persist_inline=False),
    "divider": FieldKind(interactive=False, persist_inline=False),
    "group": FieldKind(interactive=False, persist_inline=False),
}

_missing_kinds = set(get_args(FieldType)) ^ set(FIELD_KINDS)
if _missing_kinds:
    raise RuntimeError(f"FIELD_KINDS out of sync with FieldType: {sorted(_missing_kinds)}")


def field_kind(field: FormField | str) -> FieldKind:
    field_type = field if isinstance(field, str) else field.type
    return FIELD_KINDS[field_type]


def iter_fields(schema: FormSchema):
    """Yield fields across all sections in document order."""
    for section in schema.sections:
        yield from section.fields


def is_missing(value: Any) -> bool:
    """None, exactly "" (no trimming), or an empty list count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def validate_required(schema: FormSchema, answers: Mapping[str, Any]) -> dict[str, str]:
    """
    Check required-field satisfaction.

    Returns an ordered {field_id: message} map in document order; empty when
    every required interactive field has an answer. Hidden fields are not
    exempt: visibility is never consulted here.
    """
    errors: dict[str, str] = {}
    for field in iter_fields(schema):
        if not field.required:
            continue
        if not field_kind(field).interactive:
            continue
        if is_missing(answers.get(field.id)):
            errors[field.id] = f"{field.display_label} is required."
    return errors


def split_persistable_answers(
    schema: FormSchema, answers: Mapping[str, Any]
) -> dict[str, Any]:
    """Drop answers for fields whose values are not stored inline (file fields).

    Keys that are not in the schema are kept as-is.
    """
    kinds = {field.id: field_kind(field) for field in iter_fields(schema)}
    persisted: dict[str, Any] = {}
    for key, value in answers.items():
        kind = kinds.get(key)
        if kind is not None and not kind.persist_inline:
            continue
        persisted[key] = value
    return persisted


def fields_with_attachment(
    schema: FormSchema, attachment: Literal["file", "signature"]
) -> list[FormField]:
    return [f for f in iter_fields(schema) if field_kind(f).attachment == attachment]


SIGNATURE_DATA_URL_PREFIX = "data:image/png;base64,"


def is_raw_signature(value: Any) -> bool:
    """A signature still held as a data URL, not yet uploaded to storage."""
    return isinstance(value, str) and value.startswith("data:")


# =============================================================================
# Visibility conditions (available to renderers; not used by validation)
# =============================================================================

def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def evaluate_condition(condition: VisibilityCondition, value: Any) -> bool:
    operator = condition.operator
    expected = condition.value

    if operator == "equals":
        return value == expected
    if operator == "not_equals":
        return value != expected
    if operator in ("in", "not_in"):
        pool = expected if isinstance(expected, list) else [expected]
        if isinstance(value, list):
            hit = any(item in pool for item in value)
        else:
            hit = value in pool
        return hit if operator == "in" else not hit

    left = _as_number(value)
    right = _as_number(expected)
    if left is None or right is None:
        return False
    if operator == "gt":
        return left > right
    if operator == "lt":
        return left < right
    if operator == "gte":
        return left >= right
    if operator == "lte":
        return left <= right
    return True


def is_field_visible(field: FormField, answers: Mapping[str, Any]) -> bool:
    """All conditions must hold (AND)."""
    for condition in field.visibility_conditions or []:
        if not evaluate_condition(condition, answers.get(condition.field_id)):
            return False
    return True
