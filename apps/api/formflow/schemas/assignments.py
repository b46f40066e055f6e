"""Schemas for form assignments and the learner's form list."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from formflow.db.enums import AssignmentTargetType, DerivedStatus
from formflow.schemas.forms import CamelModel


class AssignmentCreate(CamelModel):
    target_type: AssignmentTargetType
    target_id: UUID | None = None
    due_at: datetime | None = None

    @model_validator(mode="after")
    def _target_required_for_user(self) -> "AssignmentCreate":
        if self.target_type == AssignmentTargetType.USER and self.target_id is None:
            raise ValueError("A target ID is required for user assignments.")
        return self


class AssignmentRead(CamelModel):
    id: UUID
    form_id: UUID
    target_type: AssignmentTargetType
    target_id: UUID | None
    due_at: datetime | None
    started_at: datetime | None
    created_by: UUID | None
    created_at: datetime


class AssignedFormRead(CamelModel):
    assignment_id: UUID
    form_id: UUID
    form_name: str
    assigned_at: datetime
    due_at: datetime | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    status: DerivedStatus


class OpenAssignmentResponse(CamelModel):
    assignment_id: UUID | None = None
    started_at: datetime | None = None
    is_read_only: bool = Field(False)
