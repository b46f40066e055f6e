"""SQLAlchemy ORM models for forms, assignments, submissions, and file linkage."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formflow.db.base import Base
from formflow.db.enums import SubmissionStatus

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests/dev).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Form(Base):
    """A versioned form definition authored by an admin."""

    __tablename__ = "forms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    schema_json: Mapped[dict] = mapped_column(JsonType, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )


class FormAssignment(Base):
    """Binds a form to one user or to everyone, with an optional due date."""

    __tablename__ = "form_assignments"
    __table_args__ = (
        Index("idx_form_assignments_form", "form_id"),
        Index("idx_form_assignments_target", "target_type", "target_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Set once, on first open of an unsubmitted form.
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    form: Mapped["Form"] = relationship()


class FormSubmission(Base):
    """The single current response of one user to one form."""

    __tablename__ = "form_submissions"
    __table_args__ = (
        UniqueConstraint("form_id", "user_id", name="uq_form_submission_user"),
        Index("idx_form_submissions_form", "form_id"),
        Index("idx_form_submissions_user", "user_id"),
        Index("idx_form_submissions_review", "status", "review_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=SubmissionStatus.NOT_STARTED.value, nullable=False
    )
    # {"answers": {...}, "metadata": {...}}; file answers live in form_submission_files.
    data_json: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    review_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Bumped on every write; callers may pass it back as expected_version.
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    form: Mapped["Form"] = relationship()

    @property
    def answers(self) -> dict:
        return dict((self.data_json or {}).get("answers") or {})

    @property
    def metadata_json(self) -> dict:
        return dict((self.data_json or {}).get("metadata") or {})


class FormSubmissionFile(Base):
    """File linkage row: one uploaded object bound to (submission, field)."""

    __tablename__ = "form_submission_files"
    __table_args__ = (
        Index("idx_form_files_submission_field", "submission_id", "field_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form_submissions.id", ondelete="CASCADE"), nullable=False
    )
    field_key: Mapped[str] = mapped_column(String(100), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_bucket: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    checksum_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    uploaded_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    submission: Mapped["FormSubmission"] = relationship()
