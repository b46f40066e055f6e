"""Form authoring, learner submission, and attachment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from sqlalchemy.orm import Session

from formflow.core.config import settings
from formflow.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from formflow.core.http_errors import to_http_exception
from formflow.core.rate_limit import limiter
from formflow.db.enums import ROLES_CAN_AUTHOR
from formflow.db.models import Form as FormModel
from formflow.db.models import FormSubmission
from formflow.schemas.assignments import (
    AssignedFormRead,
    AssignmentCreate,
    AssignmentRead,
    OpenAssignmentResponse,
)
from formflow.schemas.auth import UserSession
from formflow.schemas.forms import FormCreate, FormDuplicate, FormRead, FormSummary, FormUpdate
from formflow.schemas.submissions import (
    FileUploadResponse,
    SignatureUploadRequest,
    SignatureUploadResponse,
    SubmissionAnswersWrite,
    SubmissionData,
    SubmissionRead,
    SubmissionWriteResponse,
)
from formflow.services import (
    form_assignment_service,
    form_service,
    form_submission_service,
)
from formflow.services.errors import FormServiceError
from formflow.services.submission_status import derive_status, is_read_only

router = APIRouter(prefix="/forms", tags=["forms"])


def _form_read(form: FormModel) -> FormRead:
    return FormRead(
        id=form.id,
        name=form.name,
        version=form.version,
        created_at=form.created_at,
        form_schema=form_service.parse_schema(form.schema_json),
        created_by=form.created_by,
    )


def submission_read(db: Session, submission: FormSubmission) -> SubmissionRead:
    return SubmissionRead(
        id=submission.id,
        form_id=submission.form_id,
        user_id=submission.user_id,
        status=submission.status,
        data=SubmissionData(
            answers=form_submission_service.merged_answers(db, submission),
            metadata=submission.metadata_json or None,
        ),
        submitted_at=submission.submitted_at,
        review_status=submission.review_status,
        reviewed_at=submission.reviewed_at,
        reviewer_id=submission.reviewer_id,
        rejection_reason=submission.rejection_reason,
        version=submission.version,
        is_read_only=is_read_only(submission.status, submission.review_status),
        derived_status=derive_status(submission.status, submission.review_status),
    )


def _write_response(submission: FormSubmission) -> SubmissionWriteResponse:
    return SubmissionWriteResponse(
        submission_id=submission.id,
        status=submission.status,
        version=submission.version,
    )


# =============================================================================
# Authoring (admin)
# =============================================================================

@router.get(
    "",
    response_model=list[FormSummary],
    dependencies=[Depends(require_roles(ROLES_CAN_AUTHOR))],
)
def list_forms(db: Session = Depends(get_db)):
    return [
        FormSummary(id=f.id, name=f.name, version=f.version, created_at=f.created_at)
        for f in form_service.list_forms(db)
    ]


@router.post(
    "",
    response_model=FormRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def create_form(
    body: FormCreate,
    session: UserSession = Depends(require_roles(ROLES_CAN_AUTHOR)),
    db: Session = Depends(get_db),
):
    try:
        form = form_service.create_form(db, body.name, body.form_schema, session.user_id)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return _form_read(form)


# =============================================================================
# Learner listing
# =============================================================================

@router.get("/mine", response_model=list[AssignedFormRead])
def list_my_forms(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    rows = form_assignment_service.list_assigned_forms(db, session.user_id)
    return [AssignedFormRead.model_validate(row, from_attributes=True) for row in rows]


@router.delete(
    "/files/{file_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_csrf_header)],
)
def delete_file(
    file_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        form_submission_service.delete_file(db, session.user_id, file_id)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{form_id}", response_model=FormRead)
def get_form(
    form_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        form = form_service.get_form_by_id(db, form_id)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return _form_read(form)


@router.patch(
    "/{form_id}",
    response_model=FormRead,
    dependencies=[
        Depends(require_roles(ROLES_CAN_AUTHOR)),
        Depends(require_csrf_header),
    ],
)
def update_form(
    form_id: UUID,
    body: FormUpdate,
    db: Session = Depends(get_db),
):
    try:
        form = form_service.get_form_by_id(db, form_id)
        form = form_service.update_form(db, form, name=body.name, schema=body.form_schema)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return _form_read(form)


@router.post(
    "/{form_id}/duplicate",
    response_model=FormRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def duplicate_form(
    form_id: UUID,
    body: FormDuplicate | None = None,
    session: UserSession = Depends(require_roles(ROLES_CAN_AUTHOR)),
    db: Session = Depends(get_db),
):
    try:
        form = form_service.duplicate_form(
            db,
            form_id,
            created_by=session.user_id,
            name_override=body.name_override if body else None,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return _form_read(form)


@router.post(
    "/{form_id}/open",
    response_model=OpenAssignmentResponse,
    dependencies=[Depends(require_csrf_header)],
)
def open_form(
    form_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        assignment, read_only = form_assignment_service.open_assignment(
            db, form_id, session.user_id
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return OpenAssignmentResponse(
        assignment_id=assignment.id if assignment else None,
        started_at=assignment.started_at if assignment else None,
        is_read_only=read_only,
    )


# =============================================================================
# Submission lifecycle (learner)
# =============================================================================

@router.get("/{form_id}/submission", response_model=SubmissionRead | None)
def get_my_submission(
    form_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    submission = form_submission_service.get_latest_submission(db, form_id, session.user_id)
    if not submission:
        return None
    return submission_read(db, submission)


def _write(operation, form_id: UUID, body: SubmissionAnswersWrite, session: UserSession, db: Session):
    try:
        submission = operation(
            db,
            form_id,
            session.user_id,
            body.answers,
            submission_id=body.submission_id,
            expected_version=body.expected_version,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _write_response(submission)


@router.put(
    "/{form_id}/submission/draft",
    response_model=SubmissionWriteResponse,
    dependencies=[Depends(require_csrf_header)],
)
def save_draft(
    form_id: UUID,
    body: SubmissionAnswersWrite,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _write(form_submission_service.save, form_id, body, session, db)


@router.post(
    "/{form_id}/submission/submit",
    response_model=SubmissionWriteResponse,
    dependencies=[Depends(require_csrf_header)],
)
def submit(
    form_id: UUID,
    body: SubmissionAnswersWrite,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _write(form_submission_service.submit, form_id, body, session, db)


@router.post(
    "/{form_id}/submission/resubmit",
    response_model=SubmissionWriteResponse,
    dependencies=[Depends(require_csrf_header)],
)
def resubmit(
    form_id: UUID,
    body: SubmissionAnswersWrite,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _write(form_submission_service.resubmit, form_id, body, session, db)


# =============================================================================
# Attachments
# =============================================================================

@router.post(
    "/{form_id}/submission/{submission_id}/files",
    response_model=FileUploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(settings.RATE_LIMIT_UPLOADS)
def upload_file(
    request: Request,
    form_id: UUID,
    submission_id: UUID,
    field_id: str = Form(...),
    file: UploadFile = File(...),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        item = form_submission_service.upload_and_link_file(
            db,
            form_id,
            session.user_id,
            submission_id,
            field_id,
            file.filename or "upload",
            file.file,
            file.content_type,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return FileUploadResponse(field_id=field_id, **item.model_dump())


@router.post(
    "/{form_id}/signatures",
    response_model=SignatureUploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(settings.RATE_LIMIT_UPLOADS)
def upload_signature(
    request: Request,
    form_id: UUID,
    body: SignatureUploadRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        answer = form_submission_service.upload_signature(
            db, form_id, session.user_id, body.field_id, body.data_url
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SignatureUploadResponse(**answer.model_dump())


# =============================================================================
# Assignments (admin)
# =============================================================================

@router.get(
    "/{form_id}/assignments",
    response_model=list[AssignmentRead],
    dependencies=[Depends(require_roles(ROLES_CAN_AUTHOR))],
)
def list_assignments(form_id: UUID, db: Session = Depends(get_db)):
    return [
        AssignmentRead.model_validate(a, from_attributes=True)
        for a in form_assignment_service.list_assignments_for_form(db, form_id)
    ]


@router.post(
    "/{form_id}/assignments",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def create_assignment(
    form_id: UUID,
    body: AssignmentCreate,
    session: UserSession = Depends(require_roles(ROLES_CAN_AUTHOR)),
    db: Session = Depends(get_db),
):
    try:
        assignment = form_assignment_service.create_assignment(
            db,
            form_id,
            body.target_type,
            body.target_id,
            body.due_at,
            created_by=session.user_id,
        )
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AssignmentRead.model_validate(assignment, from_attributes=True)
