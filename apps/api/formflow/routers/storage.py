"""Download links for stored uploads and signatures."""

import os

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from formflow.core.config import settings
from formflow.core.deps import get_current_session
from formflow.core.http_errors import to_http_exception
from formflow.schemas.auth import UserSession
from formflow.schemas.submissions import DownloadUrlResponse
from formflow.services import attachment_service, form_submission_service
from formflow.services.errors import FormServiceError

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/download-url", response_model=DownloadUrlResponse)
def get_download_url(
    bucket: str = Query(..., min_length=1),
    path: str = Query(..., min_length=1),
    session: UserSession = Depends(get_current_session),
):
    try:
        form_submission_service.check_object_access(
            session.user_id, session.role.value, bucket, path
        )
        url = form_submission_service.resolve_download_url(bucket, path)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    return DownloadUrlResponse(download_url=url)


@router.get("/local/{bucket}/{path:path}")
def download_local_file(
    bucket: str,
    path: str,
    session: UserSession = Depends(get_current_session),
):
    """Serve objects from the local backend (development only)."""
    if settings.STORAGE_BACKEND != "local":
        raise HTTPException(status_code=404, detail="File not found")
    try:
        form_submission_service.check_object_access(
            session.user_id, session.role.value, bucket, path
        )
        full_path = attachment_service.local_path(bucket, path)
    except FormServiceError as exc:
        raise to_http_exception(exc) from exc
    if not os.path.exists(full_path):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(full_path, filename=os.path.basename(path))
