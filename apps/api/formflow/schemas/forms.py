"""Schemas for form definitions and answer values.

The schema blob is produced by the authoring tool in camelCase; models accept
either camelCase or snake_case and serialize back to camelCase.
"""

from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


FieldType = Literal[
    "short_text",
    "long_text",
    "dropdown",
    "radio",
    "checkbox",
    "checkbox_group",
    "date",
    "number",
    "rating",
    "signature",
    "file",
    "static_text",
    "image",
    "divider",
    "group",
]

FormRoleName = Literal["admin", "subadmin", "user", "security"]

VisibilityOperator = Literal[
    "equals",
    "not_equals",
    "in",
    "not_in",
    "gt",
    "lt",
    "gte",
    "lte",
]


class VisibilityCondition(CamelModel):
    field_id: str = Field(..., min_length=1)
    operator: VisibilityOperator
    value: str | int | float | bool | list[str | int | float]


class FormFieldOption(CamelModel):
    value: str
    label: str


class FormFieldValidation(CamelModel):
    min: float | None = None
    max: float | None = None
    max_length: int | None = Field(None, ge=0)
    pattern: str | None = None


class FormFieldLayout(CamelModel):
    width: Literal["full", "half", "third"] | None = None
    order: int | None = None


class FormField(CamelModel):
    id: str = Field(..., min_length=1, max_length=100)
    type: FieldType
    label: str | None = None
    help_text: str | None = None
    required: bool = False
    placeholder: str | None = None
    max_length: int | None = None
    options: list[FormFieldOption] | None = None
    default_value: object | None = None
    validation: FormFieldValidation | None = None
    layout: FormFieldLayout | None = None
    visibility_conditions: list[VisibilityCondition] | None = None
    visible_to_roles: list[FormRoleName] | None = None
    read_only: bool = False
    show_in_summary: bool | None = None
    include_in_pdf: bool | None = None
    pdf_label: str | None = None
    allow_multiple: bool = False

    # Image-specific (type == "image")
    image_url: str | None = None
    image_alt: str | None = None
    image_caption: str | None = None

    # Divider-specific (type == "divider")
    divider_style: Literal["solid", "dashed", "dotted"] | None = None
    divider_color: str | None = None
    divider_thickness: int | None = None
    divider_margin_top: int | None = None
    divider_margin_bottom: int | None = None

    @property
    def display_label(self) -> str:
        return self.label or self.id


class FormSection(CamelModel):
    id: str = Field(..., min_length=1)
    title: str | None = None
    description: str | None = None
    fields: list[FormField] = Field(default_factory=list)


class FormSettings(CamelModel):
    allow_drafts: bool | None = None
    allow_multiple_submissions: bool | None = None
    requires_validation: bool | None = None
    show_submission_to_user: bool | None = None


class FormSchema(CamelModel):
    title: str
    description: str | None = None
    category: str | None = None
    version: int | None = None
    settings: FormSettings = Field(default_factory=FormSettings)
    sections: list[FormSection] = Field(default_factory=list)


# =============================================================================
# Answer values
# =============================================================================

class FileAnswerItem(CamelModel):
    """Reference to an uploaded file; never inline bytes."""

    file_id: UUID
    file_name: str
    storage_bucket: str
    storage_path: str
    uploaded_at: datetime


class SignatureAnswer(CamelModel):
    """Reference to an uploaded signature image."""

    storage_bucket: str
    storage_path: str
    signed_at: datetime


AnswerValue = Union[
    str,
    int,
    float,
    bool,
    list[str],
    list[FileAnswerItem],
    SignatureAnswer,
    None,
]


# =============================================================================
# Form CRUD
# =============================================================================

class FormCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    form_schema: FormSchema = Field(..., alias="schema")


class FormUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    form_schema: FormSchema | None = Field(None, alias="schema")


class FormDuplicate(CamelModel):
    name_override: str | None = Field(None, min_length=1, max_length=150)


class FormSummary(CamelModel):
    id: UUID
    name: str
    version: int
    created_at: datetime


class FormRead(FormSummary):
    form_schema: FormSchema = Field(..., alias="schema")
    created_by: UUID | None = None
