"""Transport used by the client-side form session.

FormBackend is what FormSession talks to; HttpFormBackend implements it over
the HTTP API with an httpx.AsyncClient. Tests substitute an in-memory fake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol
from uuid import UUID

import httpx
from pydantic_core import to_jsonable_python

from formflow.core.csrf import CSRF_HEADER, CSRF_HEADER_VALUE
from formflow.schemas.forms import FileAnswerItem, FormRead, SignatureAnswer
from formflow.schemas.submissions import (
    FileUploadResponse,
    SignatureUploadResponse,
    SubmissionRead,
    SubmissionWriteResponse,
)
from formflow.services.errors import (
    AuthenticationRequired,
    FileNotFound,
    FormNotFound,
    FormServiceError,
    ReviewStateConflict,
    StorageAccessDenied,
    SubmissionNotFound,
    UploadFailed,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class LocalFile:
    """A file picked by the learner, not yet uploaded."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class FormBackend(Protocol):
    async def get_form(self, form_id: UUID) -> FormRead: ...

    async def get_submission(self, form_id: UUID) -> SubmissionRead | None: ...

    async def open_form(self, form_id: UUID) -> None: ...

    async def save_draft(
        self, form_id: UUID, answers: Mapping[str, Any], submission_id: UUID | None
    ) -> UUID: ...

    async def submit(
        self, form_id: UUID, answers: Mapping[str, Any], submission_id: UUID | None
    ) -> UUID: ...

    async def resubmit(
        self, form_id: UUID, answers: Mapping[str, Any], submission_id: UUID | None
    ) -> UUID: ...

    async def upload_file(
        self,
        form_id: UUID,
        submission_id: UUID,
        field_id: str,
        file: LocalFile,
        on_progress: ProgressCallback,
    ) -> FileAnswerItem: ...

    async def delete_file(self, file_id: UUID) -> None: ...

    async def upload_signature(
        self, form_id: UUID, field_id: str, data_url: str
    ) -> SignatureAnswer: ...

    async def get_download_url(self, bucket: str, path: str) -> str: ...


def encode_answers(answers: Mapping[str, Any]) -> dict[str, Any]:
    return to_jsonable_python(dict(answers), by_alias=True)


class _ProgressReader:
    """File-like wrapper reporting read progress as a 0..100 percentage."""

    def __init__(self, content: bytes, on_progress: ProgressCallback):
        self._content = content
        self._offset = 0
        self._on_progress = on_progress

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._content) - self._offset
        chunk = self._content[self._offset : self._offset + size]
        self._offset += len(chunk)
        if self._content:
            self._on_progress(min(99, int(self._offset * 100 / len(self._content))))
        return chunk

    def seek(self, offset: int, whence: int = 0) -> int:
        if whence == 0:
            self._offset = offset
        elif whence == 1:
            self._offset += offset
        else:
            self._offset = len(self._content) + offset
        return self._offset

    def tell(self) -> int:
        return self._offset


def _detail(response: httpx.Response) -> Any:
    try:
        return response.json().get("detail")
    except ValueError:
        return response.text


def raise_for_response(response: httpx.Response, *, not_found: type[FormServiceError] = FormNotFound) -> None:
    """Map an error response back onto the service exception taxonomy."""
    if response.is_success:
        return
    detail = _detail(response)
    code = response.status_code
    if code == 401:
        raise AuthenticationRequired(str(detail))
    if code == 404:
        raise not_found(str(detail))
    if code == 422 and isinstance(detail, dict) and "fieldErrors" in detail:
        raise ValidationFailed(detail["fieldErrors"])
    if code == 403:
        raise StorageAccessDenied(str(detail))
    if code == 409:
        raise ReviewStateConflict(str(detail))
    if code >= 500:
        raise UploadFailed()
    raise FormServiceError(str(detail))


class HttpFormBackend:
    """FormBackend over the HTTP API. The client must carry the session cookie."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client
        self._headers = {CSRF_HEADER: CSRF_HEADER_VALUE}

    async def get_form(self, form_id: UUID) -> FormRead:
        response = await self._client.get(f"/forms/{form_id}")
        raise_for_response(response)
        return FormRead.model_validate(response.json())

    async def get_submission(self, form_id: UUID) -> SubmissionRead | None:
        response = await self._client.get(f"/forms/{form_id}/submission")
        raise_for_response(response)
        body = response.json()
        return SubmissionRead.model_validate(body) if body else None

    async def open_form(self, form_id: UUID) -> None:
        response = await self._client.post(f"/forms/{form_id}/open", headers=self._headers)
        raise_for_response(response)

    async def _write(
        self,
        method: str,
        url: str,
        answers: Mapping[str, Any],
        submission_id: UUID | None,
    ) -> UUID:
        payload = {
            "answers": encode_answers(answers),
            "submissionId": str(submission_id) if submission_id else None,
        }
        response = await self._client.request(method, url, json=payload, headers=self._headers)
        raise_for_response(response, not_found=SubmissionNotFound)
        return SubmissionWriteResponse.model_validate(response.json()).submission_id

    async def save_draft(self, form_id, answers, submission_id) -> UUID:
        return await self._write("PUT", f"/forms/{form_id}/submission/draft", answers, submission_id)

    async def submit(self, form_id, answers, submission_id) -> UUID:
        return await self._write("POST", f"/forms/{form_id}/submission/submit", answers, submission_id)

    async def resubmit(self, form_id, answers, submission_id) -> UUID:
        return await self._write("POST", f"/forms/{form_id}/submission/resubmit", answers, submission_id)

    async def upload_file(self, form_id, submission_id, field_id, file, on_progress) -> FileAnswerItem:
        on_progress(0)
        reader = _ProgressReader(file.content, on_progress)
        try:
            response = await self._client.post(
                f"/forms/{form_id}/submission/{submission_id}/files",
                data={"field_id": field_id},
                files={"file": (file.name, reader, file.content_type)},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("File upload request failed: %s", type(exc).__name__)
            raise UploadFailed() from exc
        if response.status_code >= 500:
            raise UploadFailed()
        raise_for_response(response, not_found=SubmissionNotFound)
        on_progress(100)
        return FileAnswerItem.model_validate(
            FileUploadResponse.model_validate(response.json()).model_dump()
        )

    async def delete_file(self, file_id: UUID) -> None:
        response = await self._client.delete(f"/forms/files/{file_id}", headers=self._headers)
        raise_for_response(response, not_found=FileNotFound)

    async def upload_signature(self, form_id, field_id, data_url) -> SignatureAnswer:
        response = await self._client.post(
            f"/forms/{form_id}/signatures",
            json={"fieldId": field_id, "dataUrl": data_url},
            headers=self._headers,
        )
        raise_for_response(response)
        return SignatureAnswer.model_validate(
            SignatureUploadResponse.model_validate(response.json()).model_dump()
        )

    async def get_download_url(self, bucket: str, path: str) -> str:
        response = await self._client.get(
            "/storage/download-url", params={"bucket": bucket, "path": path}
        )
        raise_for_response(response)
        return response.json()["downloadUrl"]
