"""Form assignments and the learner's "my forms" listing."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from formflow.db.enums import AssignmentTargetType, DerivedStatus
from formflow.db.models import Form, FormAssignment, FormSubmission
from formflow.services import form_service
from formflow.services.errors import AssignmentNotFound, AuthenticationRequired
from formflow.services.submission_status import derive_status, is_read_only, sort_assigned_forms

logger = logging.getLogger(__name__)


@dataclass
class AssignedForm:
    assignment_id: uuid.UUID
    form_id: uuid.UUID
    form_name: str
    assigned_at: datetime
    due_at: datetime | None
    started_at: datetime | None
    submitted_at: datetime | None
    status: DerivedStatus


def create_assignment(
    db: Session,
    form_id: uuid.UUID,
    target_type: AssignmentTargetType,
    target_id: uuid.UUID | None,
    due_at: datetime | None,
    created_by: uuid.UUID | None,
) -> FormAssignment:
    form_service.get_form_by_id(db, form_id)
    target_type = AssignmentTargetType(target_type)
    if target_type == AssignmentTargetType.USER and target_id is None:
        raise ValueError("A target ID is required for user assignments.")

    assignment = FormAssignment(
        form_id=form_id,
        target_type=target_type.value,
        target_id=target_id if target_type == AssignmentTargetType.USER else None,
        due_at=due_at,
        created_by=created_by,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Assignment created form_id=%s target_type=%s", form_id, target_type.value)
    return assignment


def list_assignments_for_form(db: Session, form_id: uuid.UUID) -> list[FormAssignment]:
    return (
        db.query(FormAssignment)
        .filter(FormAssignment.form_id == form_id)
        .order_by(FormAssignment.created_at.desc())
        .all()
    )


def delete_assignment(db: Session, assignment_id: uuid.UUID) -> None:
    assignment = db.query(FormAssignment).filter(FormAssignment.id == assignment_id).first()
    if not assignment:
        raise AssignmentNotFound(f"Assignment {assignment_id} not found")
    db.delete(assignment)
    db.commit()


def _assignments_for_user(db: Session, user_id: uuid.UUID):
    return db.query(FormAssignment).filter(
        or_(
            FormAssignment.target_type == AssignmentTargetType.ALL.value,
            and_(
                FormAssignment.target_type == AssignmentTargetType.USER.value,
                FormAssignment.target_id == user_id,
            ),
        )
    )


def list_assigned_forms(db: Session, user_id: uuid.UUID | None) -> list[AssignedForm]:
    """
    Forms assigned to the user, directly or via an "all" assignment.

    One row per assignment, status derived from the user's submission, sorted
    actionable-first (see submission_status.listing_sort_key).
    """
    if user_id is None:
        raise AuthenticationRequired("You must be signed in.")

    rows = (
        _assignments_for_user(db, user_id)
        .join(Form, Form.id == FormAssignment.form_id)
        .add_columns(Form.name)
        .all()
    )
    submissions = {
        s.form_id: s
        for s in db.query(FormSubmission).filter(FormSubmission.user_id == user_id).all()
    }

    listed = []
    for assignment, form_name in rows:
        submission = submissions.get(assignment.form_id)
        status = derive_status(
            submission.status if submission else None,
            submission.review_status if submission else None,
            assignment.started_at,
        )
        listed.append(
            AssignedForm(
                assignment_id=assignment.id,
                form_id=assignment.form_id,
                form_name=form_name,
                assigned_at=assignment.created_at,
                due_at=assignment.due_at,
                started_at=assignment.started_at,
                submitted_at=submission.submitted_at if submission else None,
                status=status,
            )
        )
    return sort_assigned_forms(listed)


def mark_assignment_started(
    assignment: FormAssignment | None, submission: FormSubmission | None
) -> bool:
    """Stamp started_at once; never on a read-only submission, never reset."""
    if assignment is None or assignment.started_at is not None:
        return False
    if submission is not None and is_read_only(submission.status, submission.review_status):
        return False
    assignment.started_at = datetime.now(timezone.utc)
    return True


def open_assignment(
    db: Session, form_id: uuid.UUID, user_id: uuid.UUID | None
) -> tuple[FormAssignment | None, bool]:
    """Record that the user opened the form. Returns (assignment, read_only)."""
    if user_id is None:
        raise AuthenticationRequired("You must be signed in.")
    form_service.get_form_by_id(db, form_id)

    assignment = (
        _assignments_for_user(db, user_id)
        .filter(FormAssignment.form_id == form_id)
        .order_by(FormAssignment.created_at.desc())
        .first()
    )
    submission = (
        db.query(FormSubmission)
        .filter(FormSubmission.form_id == form_id, FormSubmission.user_id == user_id)
        .first()
    )
    read_only = submission is not None and is_read_only(
        submission.status, submission.review_status
    )
    if mark_assignment_started(assignment, submission):
        db.commit()
        db.refresh(assignment)
    return assignment, read_only
