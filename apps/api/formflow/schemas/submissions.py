"""Schemas for submissions, attachments, and review."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from formflow.db.enums import DerivedStatus
from formflow.schemas.forms import AnswerValue, CamelModel, FileAnswerItem, SignatureAnswer


class SubmissionMetadata(CamelModel):
    saved_as_draft_at: datetime | None = None
    last_edited_at: datetime | None = None


class SubmissionData(CamelModel):
    answers: dict[str, AnswerValue] = Field(default_factory=dict)
    metadata: SubmissionMetadata | None = None


class SubmissionRead(CamelModel):
    id: UUID
    form_id: UUID
    user_id: UUID
    status: str
    data: SubmissionData
    submitted_at: datetime | None = None
    review_status: str | None = None
    reviewed_at: datetime | None = None
    reviewer_id: UUID | None = None
    rejection_reason: str | None = None
    version: int
    is_read_only: bool
    derived_status: DerivedStatus


class SubmissionAnswersWrite(CamelModel):
    """Body for draft save, submit, and resubmit."""

    answers: dict[str, AnswerValue] = Field(default_factory=dict)
    submission_id: UUID | None = None
    expected_version: int | None = Field(None, ge=1)


class SubmissionWriteResponse(CamelModel):
    submission_id: UUID
    status: str
    version: int


class FileUploadResponse(FileAnswerItem):
    field_id: str


class SignatureUploadRequest(CamelModel):
    field_id: str = Field(..., min_length=1, max_length=100)
    data_url: str


class SignatureUploadResponse(SignatureAnswer):
    pass


class DownloadUrlResponse(CamelModel):
    download_url: str


class ReviewApprove(CamelModel):
    expected_version: int | None = Field(None, ge=1)


class ReviewReject(CamelModel):
    reason: str = Field(..., max_length=2000)
    expected_version: int | None = Field(None, ge=1)


class UnreviewedSubmissionRead(CamelModel):
    id: UUID
    form_id: UUID
    user_id: UUID
    form_name: str
    submitted_at: datetime | None


SubmissionSort = Literal["form", "learner", "submitted", "reviewed"]
SortDirection = Literal["asc", "desc"]


class SubmissionListRow(CamelModel):
    id: UUID
    form_id: UUID
    form_title: str
    user_id: UUID
    status: DerivedStatus
    submitted_at: datetime | None
    reviewed_at: datetime | None


class SubmissionListResponse(CamelModel):
    rows: list[SubmissionListRow]
    total: int


class SubmissionDetailRead(SubmissionRead):
    form_name: str
    files: dict[str, list[FileAnswerItem]] = Field(default_factory=dict)
