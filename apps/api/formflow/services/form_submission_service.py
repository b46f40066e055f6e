"""Submission lifecycle: draft save, submit, resubmit, and attachments.

One row per (form, user) holds the learner's current answers. Drafts and
submissions overwrite it in place; file answers live in the linkage table and
are merged back in on read.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, BinaryIO, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from formflow.core.config import settings
from formflow.core.structured_logging import build_log_context
from formflow.db.enums import ROLES_CAN_REVIEW, FormRole, ReviewStatus, SubmissionStatus
from formflow.db.models import FormSubmission, FormSubmissionFile
from formflow.schemas.forms import FileAnswerItem, FormField, FormSchema, SignatureAnswer
from formflow.services import attachment_service, form_service
from formflow.services.answer_validation import (
    SIGNATURE_DATA_URL_PREFIX,
    field_kind,
    fields_with_attachment,
    is_missing,
    is_raw_signature,
    split_persistable_answers,
    validate_required,
)
from formflow.services.errors import (
    AuthenticationRequired,
    FileNotFound,
    FormServiceError,
    ReviewStateConflict,
    SignatureUploadFailed,
    StorageAccessDenied,
    SubmissionLocked,
    SubmissionNotFound,
    ValidationFailed,
    check_version,
)
from formflow.services.submission_status import is_read_only

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_user(user_id: uuid.UUID | None) -> uuid.UUID:
    if user_id is None:
        raise AuthenticationRequired("You must be signed in.")
    return user_id


# =============================================================================
# Reads
# =============================================================================

def get_latest_submission(
    db: Session, form_id: uuid.UUID, user_id: uuid.UUID
) -> FormSubmission | None:
    return (
        db.query(FormSubmission)
        .filter(FormSubmission.form_id == form_id, FormSubmission.user_id == user_id)
        .order_by(FormSubmission.created_at.desc())
        .first()
    )


def get_submission(db: Session, submission_id: uuid.UUID) -> FormSubmission | None:
    return db.query(FormSubmission).filter(FormSubmission.id == submission_id).first()


def list_submission_files(db: Session, submission_id: uuid.UUID) -> list[FormSubmissionFile]:
    return (
        db.query(FormSubmissionFile)
        .filter(FormSubmissionFile.submission_id == submission_id)
        .order_by(FormSubmissionFile.created_at.asc(), FormSubmissionFile.id.asc())
        .all()
    )


def to_file_answer(record: FormSubmissionFile) -> FileAnswerItem:
    return FileAnswerItem(
        file_id=record.id,
        file_name=record.file_name,
        storage_bucket=record.storage_bucket,
        storage_path=record.storage_path,
        uploaded_at=record.created_at,
    )


def get_files_for_submission(
    db: Session, submission_id: uuid.UUID
) -> dict[str, list[FileAnswerItem]]:
    """Group linked files by field id, oldest first."""
    grouped: dict[str, list[FileAnswerItem]] = {}
    for record in list_submission_files(db, submission_id):
        grouped.setdefault(record.field_key, []).append(to_file_answer(record))
    return grouped


def merged_answers(db: Session, submission: FormSubmission) -> dict[str, Any]:
    """Stored answers with file answers filled in from the linkage table."""
    answers = submission.answers
    for field_id, items in get_files_for_submission(db, submission.id).items():
        answers[field_id] = [item.model_dump(mode="json", by_alias=True) for item in items]
    return answers


# =============================================================================
# Writes
# =============================================================================

def _load_for_write(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID,
    submission_id: uuid.UUID | None,
) -> FormSubmission | None:
    query = db.query(FormSubmission).with_for_update()
    if submission_id is not None:
        submission = query.filter(FormSubmission.id == submission_id).first()
        if not submission or submission.user_id != user_id or submission.form_id != form_id:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        return submission
    return (
        query.filter(FormSubmission.form_id == form_id, FormSubmission.user_id == user_id)
        .first()
    )


def _reject_raw_signatures(schema: FormSchema, answers: Mapping[str, Any]) -> None:
    for field in fields_with_attachment(schema, "signature"):
        if is_raw_signature(answers.get(field.id)):
            raise ValueError(
                f'Signature for field "{field.display_label}" must be uploaded before saving.'
            )


def _answers_for_validation(
    db: Session,
    schema: FormSchema,
    answers: Mapping[str, Any],
    submission: FormSubmission | None,
) -> dict[str, Any]:
    candidate = dict(answers)
    if submission is None:
        return candidate
    linked = get_files_for_submission(db, submission.id)
    for field in fields_with_attachment(schema, "file"):
        if is_missing(candidate.get(field.id)) and linked.get(field.id):
            candidate[field.id] = linked[field.id]
    return candidate


def _write_answers(
    submission: FormSubmission,
    schema: FormSchema,
    answers: Mapping[str, Any],
    *,
    as_draft: bool,
) -> None:
    now = _now()
    metadata = submission.metadata_json
    metadata["lastEditedAt"] = now.isoformat()
    if as_draft:
        metadata["savedAsDraftAt"] = now.isoformat()
    persisted = split_persistable_answers(schema, answers)
    submission.data_json = {
        "answers": _jsonable(persisted),
        "metadata": metadata,
    }


def _jsonable(answers: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in answers.items():
        if hasattr(value, "model_dump"):
            result[key] = value.model_dump(mode="json", by_alias=True)
        elif isinstance(value, list):
            result[key] = [
                item.model_dump(mode="json", by_alias=True) if hasattr(item, "model_dump") else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def _new_submission(form_id: uuid.UUID, user_id: uuid.UUID) -> FormSubmission:
    return FormSubmission(
        id=uuid.uuid4(),
        form_id=form_id,
        user_id=user_id,
        status=SubmissionStatus.NOT_STARTED.value,
        data_json={"answers": {}},
        version=0,
    )


def _commit(db: Session, submission: FormSubmission) -> FormSubmission:
    submission.version = (submission.version or 0) + 1
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # Another request created the (form, user) row first.
        raise ReviewStateConflict("Submission was modified concurrently. Reload and try again.") from exc
    db.refresh(submission)
    return submission


def save(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID | None,
    answers: Mapping[str, Any],
    submission_id: uuid.UUID | None = None,
    expected_version: int | None = None,
) -> FormSubmission:
    """
    Upsert a draft. No required-field validation.

    Moves not_started to started, and re-opens a rejected submission
    (submitted to started) while keeping its review fields. File answers
    are not written here; they are owned by the linkage table.
    """
    user_id = _require_user(user_id)
    schema = form_service.get_form_schema(db, form_id)
    _reject_raw_signatures(schema, answers)

    submission = _load_for_write(db, form_id, user_id, submission_id)
    if submission is None:
        submission = _new_submission(form_id, user_id)
        db.add(submission)
    else:
        if is_read_only(submission.status, submission.review_status):
            raise SubmissionLocked()
        check_version(submission.version, expected_version)

    if submission.status == SubmissionStatus.NOT_STARTED.value:
        submission.status = SubmissionStatus.STARTED.value
    elif (
        submission.status == SubmissionStatus.SUBMITTED.value
        and submission.review_status == ReviewStatus.REJECTED.value
    ):
        submission.status = SubmissionStatus.STARTED.value

    _write_answers(submission, schema, answers, as_draft=True)
    submission = _commit(db, submission)
    logger.info(
        "Draft saved",
        extra=build_log_context(user_id=user_id, form_id=form_id, submission_id=submission.id),
    )
    return submission


def submit(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID | None,
    answers: Mapping[str, Any],
    submission_id: uuid.UUID | None = None,
    expected_version: int | None = None,
) -> FormSubmission:
    """
    Validate and submit for review.

    Raises ValidationFailed without writing anything when required answers
    are missing. A rejected submission goes through resubmit instead.
    """
    user_id = _require_user(user_id)
    schema = form_service.get_form_schema(db, form_id)
    _reject_raw_signatures(schema, answers)

    submission = _load_for_write(db, form_id, user_id, submission_id)
    field_errors = validate_required(
        schema, _answers_for_validation(db, schema, answers, submission)
    )
    if field_errors:
        db.rollback()
        raise ValidationFailed(field_errors)

    if submission is None:
        submission = _new_submission(form_id, user_id)
        db.add(submission)
    else:
        if submission.review_status == ReviewStatus.REJECTED.value:
            raise ReviewStateConflict("This submission was rejected. Resubmit it instead.")
        if is_read_only(submission.status, submission.review_status):
            raise SubmissionLocked()
        check_version(submission.version, expected_version)

    _write_answers(submission, schema, answers, as_draft=False)
    submission.status = SubmissionStatus.SUBMITTED.value
    submission.submitted_at = _now()
    submission.review_status = ReviewStatus.PENDING.value
    submission = _commit(db, submission)
    logger.info(
        "Submission submitted",
        extra=build_log_context(user_id=user_id, form_id=form_id, submission_id=submission.id),
    )
    return submission


def resubmit(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID | None,
    answers: Mapping[str, Any],
    submission_id: uuid.UUID | None = None,
    expected_version: int | None = None,
) -> FormSubmission:
    """Submit again after a rejection; clears the previous review."""
    user_id = _require_user(user_id)
    schema = form_service.get_form_schema(db, form_id)
    _reject_raw_signatures(schema, answers)

    submission = _load_for_write(db, form_id, user_id, submission_id)
    if submission is None:
        raise SubmissionNotFound(f"No submission for form {form_id}")
    if submission.review_status != ReviewStatus.REJECTED.value:
        raise ReviewStateConflict("Only rejected submissions can be resubmitted.")

    field_errors = validate_required(
        schema, _answers_for_validation(db, schema, answers, submission)
    )
    if field_errors:
        db.rollback()
        raise ValidationFailed(field_errors)
    check_version(submission.version, expected_version)

    _write_answers(submission, schema, answers, as_draft=False)
    submission.status = SubmissionStatus.SUBMITTED.value
    submission.submitted_at = _now()
    submission.review_status = ReviewStatus.PENDING.value
    submission.reviewed_at = None
    submission.reviewer_id = None
    submission.rejection_reason = None
    submission = _commit(db, submission)
    logger.info(
        "Submission resubmitted",
        extra=build_log_context(user_id=user_id, form_id=form_id, submission_id=submission.id),
    )
    return submission


# =============================================================================
# Attachments
# =============================================================================

def _safe_file_name(file_name: str) -> str:
    name = os.path.basename(file_name.replace("\\", "/")).strip()
    return name or "upload"


def _get_field(schema: FormSchema, field_id: str) -> FormField:
    field = form_service.flatten_fields(schema).get(field_id)
    if field is None:
        raise ValueError(f"Unknown field: {field_id}")
    return field


def _get_owned_submission(
    db: Session, form_id: uuid.UUID, user_id: uuid.UUID, submission_id: uuid.UUID
) -> FormSubmission:
    submission = get_submission(db, submission_id)
    if not submission or submission.user_id != user_id or submission.form_id != form_id:
        raise SubmissionNotFound(f"Submission {submission_id} not found")
    return submission


def upload_and_link_file(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID | None,
    submission_id: uuid.UUID,
    field_id: str,
    file_name: str,
    file: BinaryIO,
    content_type: str | None = None,
) -> FileAnswerItem:
    """
    Store an uploaded file and bind it to (submission, field).

    If the linkage row cannot be written the stored object is removed again.
    """
    user_id = _require_user(user_id)
    schema = form_service.get_form_schema(db, form_id)
    field = _get_field(schema, field_id)
    if field_kind(field).attachment != "file":
        raise ValueError(f'Field "{field.display_label}" does not accept files.')

    submission = _get_owned_submission(db, form_id, user_id, submission_id)
    if is_read_only(submission.status, submission.review_status):
        raise SubmissionLocked()

    name = _safe_file_name(file_name)
    file_size = attachment_service.get_file_size(file)
    is_valid, error = attachment_service.validate_file(name, file_size)
    if not is_valid:
        raise ValueError(error)

    checksum = attachment_service.calculate_checksum(file)
    file_id = uuid.uuid4()
    bucket = settings.FORM_UPLOADS_BUCKET
    path = f"user/{user_id}/{form_id}/{submission_id}/{field_id}/{file_id}-{name}"
    log_context = build_log_context(
        user_id=user_id, form_id=form_id, submission_id=submission_id, field_id=field_id
    )

    attachment_service.store_file(
        bucket, path, file, content_type or "application/octet-stream"
    )

    record = FormSubmissionFile(
        id=file_id,
        submission_id=submission_id,
        field_key=field_id,
        file_name=name,
        storage_bucket=bucket,
        storage_path=path,
        content_type=content_type or "application/octet-stream",
        file_size=file_size,
        checksum_sha256=checksum,
        uploaded_by=user_id,
        created_at=_now(),
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("File linkage insert failed; removing stored object", extra=log_context)
        try:
            attachment_service.delete_file(bucket, path)
        except (FormServiceError, OSError):
            logger.warning("Orphaned upload could not be removed", extra=log_context)
        raise
    db.refresh(record)
    logger.info("File uploaded", extra=log_context)
    return to_file_answer(record)


def delete_file(db: Session, user_id: uuid.UUID | None, file_id: uuid.UUID) -> None:
    """Remove the linkage row, then the stored object (best effort)."""
    user_id = _require_user(user_id)
    record = db.query(FormSubmissionFile).filter(FormSubmissionFile.id == file_id).first()
    if not record:
        raise FileNotFound(f"File {file_id} not found")
    submission = get_submission(db, record.submission_id)
    if not submission or submission.user_id != user_id:
        raise FileNotFound(f"File {file_id} not found")
    if is_read_only(submission.status, submission.review_status):
        raise SubmissionLocked()

    bucket, path = record.storage_bucket, record.storage_path
    log_context = build_log_context(
        user_id=user_id, submission_id=submission.id, field_id=record.field_key
    )
    db.delete(record)
    db.commit()

    try:
        attachment_service.delete_file(bucket, path)
    except (FormServiceError, OSError):
        logger.warning("Stored object not removed after unlinking file", extra=log_context)


def upload_signature(
    db: Session,
    form_id: uuid.UUID,
    user_id: uuid.UUID | None,
    field_id: str,
    data_url: str,
) -> SignatureAnswer:
    """Decode a PNG data URL and store it in the signatures bucket."""
    user_id = _require_user(user_id)
    schema = form_service.get_form_schema(db, form_id)
    field = _get_field(schema, field_id)
    if field_kind(field).attachment != "signature":
        raise ValueError(f'Field "{field.display_label}" is not a signature field.')

    if not data_url.startswith(SIGNATURE_DATA_URL_PREFIX):
        raise ValueError("Signature must be a PNG data URL.")
    try:
        content = base64.b64decode(data_url[len(SIGNATURE_DATA_URL_PREFIX):], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Signature data is not valid base64.") from exc
    if not content:
        raise ValueError("Signature is empty.")

    now = _now()
    timestamp = int(now.timestamp() * 1000)
    bucket = settings.SIGNATURES_BUCKET
    path = f"{user_id}/{form_id}/form-{form_id}_user-{user_id}_field-{field_id}_{timestamp}.png"
    try:
        attachment_service.store_file(bucket, path, io.BytesIO(content), "image/png")
    except FormServiceError as exc:
        logger.warning(
            "Signature upload failed",
            extra=build_log_context(user_id=user_id, form_id=form_id, field_id=field_id),
        )
        raise SignatureUploadFailed(field.display_label) from exc

    return SignatureAnswer(storage_bucket=bucket, storage_path=path, signed_at=now)


# =============================================================================
# Downloads
# =============================================================================

def check_object_access(
    user_id: uuid.UUID, role: str | None, bucket: str, path: str
) -> None:
    """Reviewers may read any object; learners only their own."""
    if bucket not in (settings.FORM_UPLOADS_BUCKET, settings.SIGNATURES_BUCKET):
        raise StorageAccessDenied("Unknown storage bucket.")
    if role and FormRole.has_value(role) and FormRole(role) in ROLES_CAN_REVIEW:
        return
    if bucket == settings.FORM_UPLOADS_BUCKET:
        prefix = f"user/{user_id}/"
    else:
        prefix = f"{user_id}/"
    if not path.startswith(prefix) or ".." in path.split("/"):
        raise StorageAccessDenied("You do not have access to this file.")


def resolve_download_url(bucket: str, path: str) -> str:
    """Time-limited URL for a stored object."""
    return attachment_service.generate_signed_url(
        bucket, path, expires_in=settings.SIGNED_URL_EXPIRY_SECONDS
    )
