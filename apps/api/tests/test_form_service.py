import uuid

import pytest

from formflow.services import form_service
from formflow.services.errors import FormNotFound, InvalidFormSchema
from factories import ONBOARDING_SCHEMA, build_schema


def test_parse_schema_accepts_camel_case_blob():
    schema = form_service.parse_schema(ONBOARDING_SCHEMA)

    docs = form_service.flatten_fields(schema)["docs"]
    assert docs.allow_multiple is True
    assert [s.id for s in schema.sections] == ["s1", "s2"]


def test_flatten_fields_keeps_document_order():
    schema = form_service.parse_schema(ONBOARDING_SCHEMA)

    assert list(form_service.flatten_fields(schema)) == ["name", "bio", "intro", "docs", "sig"]


def test_duplicate_field_ids_are_rejected():
    blob = build_schema(
        [{"id": "name", "type": "short_text"}],
        [{"id": "name", "type": "long_text"}],
    )

    with pytest.raises(InvalidFormSchema):
        form_service.parse_schema(blob)


def test_unknown_field_type_is_rejected():
    blob = build_schema([{"id": "x", "type": "slider"}])

    with pytest.raises(InvalidFormSchema):
        form_service.parse_schema(blob)


def test_invalid_schema_is_a_value_error():
    with pytest.raises(ValueError):
        form_service.parse_schema({"sections": "nope"})


def test_create_form_starts_at_version_one(db):
    author = uuid.uuid4()

    form = form_service.create_form(db, "Onboarding", ONBOARDING_SCHEMA, created_by=author)

    assert form.version == 1
    assert form.created_by == author
    assert form_service.get_form_by_id(db, form.id).name == "Onboarding"


def test_get_form_by_id_missing(db):
    with pytest.raises(FormNotFound):
        form_service.get_form_by_id(db, uuid.uuid4())


def test_update_form_bumps_version_only_on_schema_change(db, form):
    form = form_service.update_form(db, form, name="Renamed")
    assert form.version == 1
    assert form.name == "Renamed"

    form = form_service.update_form(db, form, schema=ONBOARDING_SCHEMA)
    assert form.version == 1

    changed = build_schema([{"id": "only", "type": "short_text", "label": "Only"}])
    form = form_service.update_form(db, form, schema=changed)
    assert form.version == 2
    assert list(form_service.flatten_fields(form_service.parse_schema(form.schema_json))) == ["only"]


def test_duplicate_form_uses_copy_prefix(db, form):
    copy = form_service.duplicate_form(db, form.id, created_by=None)

    assert copy.id != form.id
    assert copy.name == "Copy - Onboarding"
    assert copy.version == 1
    assert copy.schema_json == form.schema_json


def test_duplicate_form_name_override(db, form):
    copy = form_service.duplicate_form(db, form.id, created_by=None, name_override="Intake 2")

    assert copy.name == "Intake 2"


def test_list_forms_returns_every_form(db, make_form):
    first = make_form(name="First")
    second = make_form(name="Second")
    form_service.update_form(db, first, name="First (edited)")

    names = [f.name for f in form_service.list_forms(db)]

    assert set(names) == {"First (edited)", "Second"}
    assert len(names) == 2
