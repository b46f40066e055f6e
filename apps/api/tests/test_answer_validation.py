from typing import get_args

import pytest

from formflow.schemas.forms import FieldType, FormSchema, VisibilityCondition
from formflow.services.answer_validation import (
    FIELD_KINDS,
    evaluate_condition,
    is_field_visible,
    is_missing,
    split_persistable_answers,
    validate_required,
)
from factories import build_schema


def _schema(*sections) -> FormSchema:
    return FormSchema.model_validate(build_schema(*sections))


def test_field_kinds_cover_every_field_type():
    assert set(FIELD_KINDS) == set(get_args(FieldType))


@pytest.mark.parametrize("value", [None, "", []])
def test_missing_values(value):
    assert is_missing(value) is True


@pytest.mark.parametrize("value", [" ", "x", 0, False, ["a"], 0.0])
def test_present_values(value):
    assert is_missing(value) is False


def test_required_name_missing_reports_label():
    schema = _schema([{"id": "name", "type": "short_text", "label": "Name", "required": True}])

    assert validate_required(schema, {}) == {"name": "Name is required."}
    assert validate_required(schema, {"name": ""}) == {"name": "Name is required."}
    assert validate_required(schema, {"name": "Ada"}) == {}


def test_whitespace_only_answer_counts_as_present():
    schema = _schema([{"id": "name", "type": "short_text", "label": "Name", "required": True}])

    assert validate_required(schema, {"name": "   "}) == {}


def test_label_falls_back_to_field_id():
    schema = _schema([{"id": "dob", "type": "date", "required": True}])

    assert validate_required(schema, {}) == {"dob": "dob is required."}


def test_errors_follow_document_order_across_sections():
    schema = _schema(
        [
            {"id": "b", "type": "short_text", "label": "B", "required": True,
             "layout": {"order": 5}},
            {"id": "a", "type": "number", "label": "A", "required": True,
             "layout": {"order": 1}},
        ],
        [{"id": "c", "type": "checkbox_group", "label": "C", "required": True}],
    )

    errors = validate_required(schema, {"c": []})

    assert list(errors) == ["b", "a", "c"]


def test_display_types_and_optional_fields_are_never_checked():
    schema = _schema(
        [
            {"id": "intro", "type": "static_text", "required": True},
            {"id": "line", "type": "divider", "required": True},
            {"id": "logo", "type": "image", "required": True},
            {"id": "grp", "type": "group", "required": True},
            {"id": "notes", "type": "long_text"},
        ]
    )

    assert validate_required(schema, {}) == {}


def test_hidden_fields_are_still_required():
    schema = _schema(
        [
            {"id": "has_pet", "type": "radio", "label": "Pet?"},
            {
                "id": "pet_name",
                "type": "short_text",
                "label": "Pet name",
                "required": True,
                "visibilityConditions": [
                    {"fieldId": "has_pet", "operator": "equals", "value": "yes"}
                ],
            },
        ]
    )

    assert validate_required(schema, {"has_pet": "no"}) == {"pet_name": "Pet name is required."}


def test_required_file_and_signature_fields():
    schema = _schema(
        [
            {"id": "docs", "type": "file", "label": "Docs", "required": True},
            {"id": "sig", "type": "signature", "label": "Sign", "required": True},
        ]
    )

    errors = validate_required(schema, {"docs": [], "sig": None})
    assert errors == {"docs": "Docs is required.", "sig": "Sign is required."}

    assert validate_required(
        schema, {"docs": [{"fileId": "x"}], "sig": "data:image/png;base64,AAAA"}
    ) == {}


def test_persistable_answers_drop_file_fields_only():
    schema = _schema(
        [
            {"id": "name", "type": "short_text"},
            {"id": "docs", "type": "file"},
        ]
    )

    persisted = split_persistable_answers(schema, {"name": "Ada", "docs": [1], "extra": True})

    assert persisted == {"name": "Ada", "extra": True}


@pytest.mark.parametrize(
    "operator,expected,value,result",
    [
        ("equals", "yes", "yes", True),
        ("not_equals", "yes", "no", True),
        ("in", ["a", "b"], "b", True),
        ("in", ["a", "b"], ["c", "a"], True),
        ("not_in", ["a"], "b", True),
        ("gt", 3, "5", True),
        ("lte", 3, 4, False),
        ("gte", 3, "abc", False),
    ],
)
def test_evaluate_condition(operator, expected, value, result):
    condition = VisibilityCondition(field_id="x", operator=operator, value=expected)

    assert evaluate_condition(condition, value) is result


def test_field_visible_requires_all_conditions():
    schema = _schema(
        [
            {
                "id": "f",
                "type": "short_text",
                "visibilityConditions": [
                    {"fieldId": "a", "operator": "equals", "value": 1},
                    {"fieldId": "b", "operator": "equals", "value": 2},
                ],
            }
        ]
    )
    field = schema.sections[0].fields[0]

    assert is_field_visible(field, {"a": 1, "b": 2}) is True
    assert is_field_visible(field, {"a": 1, "b": 3}) is False
