"""Form definitions: schema parsing and CRUD."""

import logging
import uuid

from pydantic import ValidationError
from sqlalchemy.orm import Session

from formflow.db.models import Form
from formflow.schemas.forms import FormField, FormSchema
from formflow.services.errors import FormNotFound, InvalidFormSchema

logger = logging.getLogger(__name__)


def parse_schema(schema_json: dict | FormSchema) -> FormSchema:
    """Validate a stored schema blob; field ids must be unique."""
    if isinstance(schema_json, FormSchema):
        schema = schema_json
    else:
        try:
            schema = FormSchema.model_validate(schema_json)
        except ValidationError as exc:
            raise InvalidFormSchema(str(exc)) from exc
    flatten_fields(schema)
    return schema


def flatten_fields(schema: FormSchema) -> dict[str, FormField]:
    fields: dict[str, FormField] = {}
    for section in schema.sections:
        for field in section.fields:
            if field.id in fields:
                raise InvalidFormSchema(f"Duplicate field id: {field.id}")
            fields[field.id] = field
    return fields


def _dump_schema(schema: FormSchema) -> dict:
    return schema.model_dump(mode="json", by_alias=True, exclude_none=True)


def list_forms(db: Session) -> list[Form]:
    return db.query(Form).order_by(Form.updated_at.desc()).all()


def get_form(db: Session, form_id: uuid.UUID) -> Form | None:
    return db.query(Form).filter(Form.id == form_id).first()


def get_form_by_id(db: Session, form_id: uuid.UUID) -> Form:
    form = get_form(db, form_id)
    if not form:
        raise FormNotFound(f"Form {form_id} not found")
    return form


def get_form_schema(db: Session, form_id: uuid.UUID) -> FormSchema:
    return parse_schema(get_form_by_id(db, form_id).schema_json)


def create_form(
    db: Session,
    name: str,
    schema: dict | FormSchema,
    created_by: uuid.UUID | None,
) -> Form:
    parsed = parse_schema(schema)
    form = Form(
        name=name,
        schema_json=_dump_schema(parsed),
        version=1,
        created_by=created_by,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form created form_id=%s", form.id)
    return form


def update_form(
    db: Session,
    form: Form,
    name: str | None = None,
    schema: dict | FormSchema | None = None,
) -> Form:
    """Schema changes bump the form version; renames do not."""
    if name is not None:
        form.name = name
    if schema is not None:
        dumped = _dump_schema(parse_schema(schema))
        if dumped != form.schema_json:
            form.schema_json = dumped
            form.version = (form.version or 1) + 1

    db.commit()
    db.refresh(form)
    return form


def duplicate_form(
    db: Session,
    form_id: uuid.UUID,
    created_by: uuid.UUID | None,
    name_override: str | None = None,
) -> Form:
    source = get_form_by_id(db, form_id)
    copy = Form(
        name=name_override or f"Copy - {source.name}",
        schema_json=dict(source.schema_json),
        version=1,
        created_by=created_by,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)
    logger.info("Form duplicated source_id=%s form_id=%s", form_id, copy.id)
    return copy
