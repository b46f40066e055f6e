"""Submission review endpoints (admin)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from formflow.core.deps import get_db, require_csrf_header, require_roles
from formflow.core.http_errors import to_http_exception
from formflow.db.enums import ROLES_CAN_REVIEW, DerivedStatus
from formflow.routers.forms import submission_read
from formflow.schemas.auth import UserSession
from formflow.schemas.submissions import (
    ReviewApprove,
    ReviewReject,
    SortDirection,
    SubmissionDetailRead,
    SubmissionListResponse,
    SubmissionListRow,
    SubmissionSort,
    SubmissionWriteResponse,
    UnreviewedSubmissionRead,
)
from formflow.services import form_review_service
from formflow.services.errors import FormServiceError

router = APIRouter(
    prefix="/submissions",
    tags=["submissions"],
    dependencies=[Depends(require_roles(ROLES_CAN_REVIEW))],
)


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    search: str | None = Query(None, max_length=200),
    status: DerivedStatus | None = Query(None),
    sort: SubmissionSort = Query("submitted"),
    direction: SortDirection = Query("desc", alias="dir"),
    limit: int = Query(25, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = form_review_service.list_all_submissions(
        db,
        search=search,
        status=status,
        sort=sort,
        direction=direction,
        limit=limit,
        offset=offset,
    )
    return SubmissionListResponse(
        rows=[SubmissionListRow(**row) for row in rows],
        total=total,
    )


@router.get("/unreviewed", response_model=list[UnreviewedSubmissionRead])
def list_unreviewed(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return [
        UnreviewedSubmissionRead(
            id=submission.id,
            form_id=submission.form_id,
            user_id=submission.user_id,
            form_name=form_name,
            submitted_at=submission.submitted_at,
        )
        for submission, form_name in form_review_service.list_unreviewed_submissions(db, limit)
    ]


@router.get("/{submission_id}", response_model=SubmissionDetailRead)
def get_submission(submission_id: UUID, db: Session = Depends(get_db)):
    try:
        detail = form_review_service.get_submission_detail(db, submission_id)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    base = submission_read(db, detail["submission"])
    return SubmissionDetailRead(
        **base.model_dump(),
        form_name=detail["form_name"],
        files=detail["files"],
    )


@router.post(
    "/{submission_id}/approve",
    response_model=SubmissionWriteResponse,
    dependencies=[Depends(require_csrf_header)],
)
def approve_submission(
    submission_id: UUID,
    body: ReviewApprove | None = None,
    session: UserSession = Depends(require_roles(ROLES_CAN_REVIEW)),
    db: Session = Depends(get_db),
):
    try:
        submission = form_review_service.approve(
            db,
            submission_id,
            reviewer_id=session.user_id,
            expected_version=body.expected_version if body else None,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionWriteResponse(
        submission_id=submission.id, status=submission.status, version=submission.version
    )


@router.post(
    "/{submission_id}/reject",
    response_model=SubmissionWriteResponse,
    dependencies=[Depends(require_csrf_header)],
)
def reject_submission(
    submission_id: UUID,
    body: ReviewReject,
    session: UserSession = Depends(require_roles(ROLES_CAN_REVIEW)),
    db: Session = Depends(get_db),
):
    try:
        submission = form_review_service.reject(
            db,
            submission_id,
            reviewer_id=session.user_id,
            reason=body.reason,
            expected_version=body.expected_version,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SubmissionWriteResponse(
        submission_id=submission.id, status=submission.status, version=submission.version
    )
