"""Admin review of submitted forms: approve, reject, and review listings."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from formflow.core.structured_logging import build_log_context
from formflow.db.enums import DerivedStatus, ReviewStatus, SubmissionStatus
from formflow.db.models import Form, FormSubmission
from formflow.services import form_submission_service
from formflow.services.errors import ReviewStateConflict, SubmissionNotFound, check_version
from formflow.services.submission_status import as_utc, derive_status

logger = logging.getLogger(__name__)

REVIEWABLE_STATES = {None, ReviewStatus.PENDING.value}
DEFAULT_PAGE_SIZE = 25
DEFAULT_UNREVIEWED_LIMIT = 5


def _load_reviewable(
    db: Session, submission_id: uuid.UUID, expected_version: int | None
) -> FormSubmission:
    submission = (
        db.query(FormSubmission)
        .filter(FormSubmission.id == submission_id)
        .with_for_update()
        .first()
    )
    if not submission:
        raise SubmissionNotFound(f"Submission {submission_id} not found")
    if submission.status != SubmissionStatus.SUBMITTED.value:
        raise ReviewStateConflict("Submission has not been submitted")
    if submission.review_status not in REVIEWABLE_STATES:
        raise ReviewStateConflict("Submission has already been reviewed")
    check_version(submission.version, expected_version)
    return submission


def approve(
    db: Session,
    submission_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    expected_version: int | None = None,
) -> FormSubmission:
    submission = _load_reviewable(db, submission_id, expected_version)

    submission.review_status = ReviewStatus.APPROVED.value
    submission.reviewed_at = datetime.now(timezone.utc)
    submission.reviewer_id = reviewer_id
    submission.rejection_reason = None
    submission.version = (submission.version or 0) + 1

    db.commit()
    db.refresh(submission)
    logger.info(
        "Submission approved reviewer_id=%s",
        reviewer_id,
        extra=build_log_context(form_id=submission.form_id, submission_id=submission.id),
    )
    return submission


def reject(
    db: Session,
    submission_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    reason: str | None,
    expected_version: int | None = None,
) -> FormSubmission:
    trimmed = (reason or "").strip()
    if not trimmed:
        raise ValueError("A reason for rejection is required.")

    submission = _load_reviewable(db, submission_id, expected_version)

    submission.review_status = ReviewStatus.REJECTED.value
    submission.reviewed_at = datetime.now(timezone.utc)
    submission.reviewer_id = reviewer_id
    submission.rejection_reason = trimmed
    submission.version = (submission.version or 0) + 1

    db.commit()
    db.refresh(submission)
    logger.info(
        "Submission rejected reviewer_id=%s",
        reviewer_id,
        extra=build_log_context(form_id=submission.form_id, submission_id=submission.id),
    )
    return submission


# =============================================================================
# Listings
# =============================================================================

def list_unreviewed_submissions(
    db: Session, limit: int = DEFAULT_UNREVIEWED_LIMIT
) -> list[tuple[FormSubmission, str]]:
    """Submitted and awaiting review, newest first, with the form name."""
    return (
        db.query(FormSubmission, Form.name)
        .join(Form, Form.id == FormSubmission.form_id)
        .filter(
            FormSubmission.status == SubmissionStatus.SUBMITTED.value,
            or_(
                FormSubmission.review_status == ReviewStatus.PENDING.value,
                FormSubmission.review_status.is_(None),
            ),
        )
        .order_by(FormSubmission.submitted_at.desc())
        .limit(limit)
        .all()
    )


def _sort_value(sort: str, submission: FormSubmission, form_name: str):
    if sort == "form":
        return (form_name or "").lower()
    if sort == "learner":
        return str(submission.user_id)
    if sort == "reviewed":
        return submission.reviewed_at
    return submission.submitted_at


def list_all_submissions(
    db: Session,
    search: str | None = None,
    status: DerivedStatus | None = None,
    sort: str = "submitted",
    direction: str = "desc",
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    Paged admin listing of every submission.

    Status filtering uses the derived status, so it runs after the query;
    search matches the form name or the learner id.
    """
    query = db.query(FormSubmission, Form.name).join(Form, Form.id == FormSubmission.form_id)
    if search and search.strip():
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                Form.name.ilike(term),
                cast(FormSubmission.user_id, String).ilike(term),
            )
        )

    rows = []
    for submission, form_name in query.all():
        derived = derive_status(submission.status, submission.review_status)
        if status is not None and derived != status:
            continue
        rows.append(
            {
                "id": submission.id,
                "form_id": submission.form_id,
                "form_title": form_name,
                "user_id": submission.user_id,
                "status": derived,
                "submitted_at": submission.submitted_at,
                "reviewed_at": submission.reviewed_at,
                "_sort": _sort_value(sort, submission, form_name),
            }
        )

    # Missing values sort last in both directions.
    present = [r for r in rows if r["_sort"] is not None]
    missing = [r for r in rows if r["_sort"] is None]
    present.sort(
        key=lambda r: as_utc(r["_sort"]) if isinstance(r["_sort"], datetime) else r["_sort"],
        reverse=direction == "desc",
    )
    ordered = present + missing
    for row in ordered:
        row.pop("_sort")

    total = len(ordered)
    return ordered[offset : offset + limit], total


def get_submission_detail(db: Session, submission_id: uuid.UUID) -> dict:
    """Submission with its form name and linked files, for the review screen."""
    row = (
        db.query(FormSubmission, Form.name)
        .join(Form, Form.id == FormSubmission.form_id)
        .filter(FormSubmission.id == submission_id)
        .first()
    )
    if not row:
        raise SubmissionNotFound(f"Submission {submission_id} not found")
    submission, form_name = row
    return {
        "submission": submission,
        "form_name": form_name,
        "answers": form_submission_service.merged_answers(db, submission),
        "files": form_submission_service.get_files_for_submission(db, submission.id),
    }
