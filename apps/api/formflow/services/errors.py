"""Exceptions raised by the form services and the client pipeline.

Routers translate these into HTTP responses; the client raises the same
classes locally so callers handle one taxonomy on both sides.
"""


class FormServiceError(Exception):
    """Base exception for form service errors."""

    pass


class AuthenticationRequired(FormServiceError):
    """No current user id is available."""

    pass


class FormNotFound(FormServiceError):
    """Form not found."""

    pass


class InvalidFormSchema(FormServiceError, ValueError):
    """Schema blob failed validation (bad shape or duplicate field ids)."""

    pass


class SubmissionNotFound(FormServiceError):
    """Submission not found (or not owned by the caller)."""

    pass


class AssignmentNotFound(FormServiceError):
    """Assignment not found."""

    pass


class FileNotFound(FormServiceError):
    """Submission file not found."""

    pass


class ValidationFailed(FormServiceError):
    """Required answers are missing. Computed before any write."""

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        super().__init__("Please complete all required fields.")


class UploadFailed(FormServiceError):
    """File upload failed; the item may be retried on its own."""

    retryable = True

    def __init__(self, message: str = "Failed to upload file. Please try again."):
        super().__init__(message)


class SignatureUploadFailed(FormServiceError):
    """A captured signature could not be stored; aborts the enclosing save/submit."""

    def __init__(self, field_label: str):
        self.field_label = field_label
        super().__init__(f'Failed to save signature for field "{field_label}". Please try again.')


class StorageAccessDenied(FormServiceError):
    """Object storage refused the operation."""

    pass


class ReviewStateConflict(FormServiceError):
    """Transition not allowed from the submission's current review state."""

    pass


class SubmissionLocked(ReviewStateConflict):
    """Submission is read-only (submitted and not rejected, or approved)."""

    def __init__(self, message: str = "This submission can no longer be edited."):
        super().__init__(message)


class UploadsInProgress(FormServiceError):
    """Save/submit attempted while uploads are still running."""

    def __init__(self, message: str = "Please wait for all uploads to finish before saving."):
        super().__init__(message)


class VersionConflict(FormServiceError):
    """Raised when expected_version doesn't match current version."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version conflict: expected {expected}, got {actual}")


def check_version(current_version: int, expected_version: int | None) -> None:
    """
    Check if expected version matches current.

    A missing expected_version means last-write-wins.

    Raises:
        VersionConflict if mismatch
    """
    if expected_version is None:
        return
    if current_version != expected_version:
        raise VersionConflict(expected_version, current_version)
