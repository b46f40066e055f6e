"""Translate form service exceptions into HTTP responses."""

from fastapi import HTTPException

from formflow.services.errors import (
    AssignmentNotFound,
    AuthenticationRequired,
    FileNotFound,
    FormNotFound,
    FormServiceError,
    InvalidFormSchema,
    ReviewStateConflict,
    SignatureUploadFailed,
    StorageAccessDenied,
    SubmissionNotFound,
    UploadFailed,
    UploadsInProgress,
    ValidationFailed,
    VersionConflict,
)


def to_http_exception(exc: FormServiceError) -> HTTPException:
    if isinstance(exc, AuthenticationRequired):
        return HTTPException(status_code=401, detail="Not authenticated")
    if isinstance(exc, FormNotFound):
        return HTTPException(status_code=404, detail="Form not found")
    if isinstance(exc, SubmissionNotFound):
        return HTTPException(status_code=404, detail="Submission not found")
    if isinstance(exc, AssignmentNotFound):
        return HTTPException(status_code=404, detail="Assignment not found")
    if isinstance(exc, FileNotFound):
        return HTTPException(status_code=404, detail="File not found")
    if isinstance(exc, ValidationFailed):
        return HTTPException(
            status_code=422,
            detail={"message": str(exc), "fieldErrors": exc.field_errors},
        )
    if isinstance(exc, InvalidFormSchema):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, StorageAccessDenied):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (UploadFailed, SignatureUploadFailed)):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, VersionConflict):
        return HTTPException(
            status_code=409,
            detail=f"Version conflict: expected {exc.expected}, got {exc.actual}",
        )
    if isinstance(exc, (ReviewStateConflict, UploadsInProgress)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
