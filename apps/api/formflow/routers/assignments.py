"""Assignment management endpoints (admin)."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from formflow.core.deps import get_db, require_csrf_header, require_roles
from formflow.core.http_errors import to_http_exception
from formflow.db.enums import ROLES_CAN_AUTHOR
from formflow.services import form_assignment_service
from formflow.services.errors import FormServiceError

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.delete(
    "/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[
        Depends(require_roles(ROLES_CAN_AUTHOR)),
        Depends(require_csrf_header),
    ],
)
def delete_assignment(assignment_id: UUID, db: Session = Depends(get_db)):
    try:
        form_assignment_service.delete_assignment(db, assignment_id)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
