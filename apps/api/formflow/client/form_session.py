"""Client-side editing session for one learner and one form.

Holds the in-memory answer map and drives the attachment pipeline: a lazy
draft is created before the first upload, files upload concurrently through
the UploadQueue, and raw signature data URLs are uploaded on save/submit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from formflow.client.backend import FormBackend, LocalFile, ProgressCallback
from formflow.client.upload_queue import UploadItem, UploadQueue
from formflow.db.enums import ReviewStatus
from formflow.schemas.forms import FileAnswerItem, FormField, FormSchema
from formflow.services.answer_validation import (
    field_kind,
    fields_with_attachment,
    is_raw_signature,
    validate_required,
)
from formflow.services.errors import (
    FormServiceError,
    SignatureUploadFailed,
    SubmissionLocked,
    UploadsInProgress,
    ValidationFailed,
)
from formflow.services.form_service import flatten_fields

logger = logging.getLogger(__name__)

DRAFT_FAILED_MESSAGE = "Could not create a draft to save files."


class FormSession:
    def __init__(
        self,
        backend: FormBackend,
        form_id: UUID,
        schema: FormSchema,
        answers: dict[str, Any] | None = None,
        submission_id: UUID | None = None,
        review_status: str | None = None,
        read_only: bool = False,
    ):
        self.backend = backend
        self.form_id = form_id
        self.schema = schema
        self.answers: dict[str, Any] = dict(answers or {})
        self.submission_id = submission_id
        self.review_status = review_status
        self.read_only = read_only
        self._fields = flatten_fields(schema)
        self._draft_lock = asyncio.Lock()
        self.queue = UploadQueue(self._upload_item, self._on_upload_success)

    @classmethod
    async def open(cls, backend: FormBackend, form_id: UUID) -> "FormSession":
        """Load the form and the learner's latest submission, and mark the assignment started."""
        form = await backend.get_form(form_id)
        submission = await backend.get_submission(form_id)
        await backend.open_form(form_id)
        if submission is None:
            return cls(backend, form_id, form.form_schema)
        return cls(
            backend,
            form_id,
            form.form_schema,
            answers=dict(submission.data.answers),
            submission_id=submission.id,
            review_status=submission.review_status,
            read_only=submission.is_read_only,
        )

    # -------------------------------------------------------------------------
    # Answers
    # -------------------------------------------------------------------------

    def _field(self, field_id: str) -> FormField:
        try:
            return self._fields[field_id]
        except KeyError:
            raise ValueError(f"Unknown field: {field_id}") from None

    def set_answer(self, field_id: str, value: Any) -> None:
        field = self._field(field_id)
        if field_kind(field).attachment == "file":
            raise ValueError("File answers change through add_files/remove_file.")
        self.answers[field_id] = value

    def validate(self) -> dict[str, str]:
        return validate_required(self.schema, self.answers)

    @property
    def uploads_in_progress(self) -> bool:
        return self.queue.is_uploading

    # -------------------------------------------------------------------------
    # File uploads
    # -------------------------------------------------------------------------

    async def _ensure_submission(self) -> UUID:
        async with self._draft_lock:
            if self.submission_id is None:
                self.submission_id = await self.backend.save_draft(self.form_id, {}, None)
            return self.submission_id

    async def _upload_item(self, item: UploadItem, on_progress: ProgressCallback) -> FileAnswerItem:
        return await self.backend.upload_file(
            self.form_id, self.submission_id, item.field_id, item.file, on_progress
        )

    def _on_upload_success(self, item: UploadItem, answer: FileAnswerItem) -> None:
        current = self.answers.get(item.field_id)
        items = list(current) if isinstance(current, list) else []
        items.append(answer)
        self.answers[item.field_id] = items

    async def add_files(self, field_id: str, files: list[LocalFile]) -> list[UploadItem]:
        """
        Queue files for a file field and start uploading them.

        Creates the submission first when none exists yet. Returns the queued
        items immediately; await wait_for_uploads() to let them settle.
        """
        if self.read_only:
            raise SubmissionLocked()
        field = self._field(field_id)
        if field_kind(field).attachment != "file":
            raise ValueError(f'Field "{field.display_label}" does not accept files.')
        if not files:
            return []
        if not field.allow_multiple:
            files = files[:1]

        items = self.queue.enqueue(field_id, files)
        if self.submission_id is None:
            try:
                await self._ensure_submission()
            except FormServiceError:
                logger.warning("Lazy draft creation failed form_id=%s", self.form_id)
                self.queue.fail(items, DRAFT_FAILED_MESSAGE)
                return items

        for item in items:
            self.queue.start(item)
        return items

    async def wait_for_uploads(self) -> None:
        await self.queue.wait()

    async def retry_upload(self, item_id: str) -> UploadItem:
        if self.submission_id is None:
            try:
                await self._ensure_submission()
            except FormServiceError:
                item = self.queue.get(item_id)
                self.queue.fail([item], DRAFT_FAILED_MESSAGE)
                return item
        return await self.queue.retry(item_id)

    async def remove_file(self, field_id: str, file_id: UUID) -> None:
        """Delete the stored file, then drop exactly that entry from the answer."""
        if self.read_only:
            raise SubmissionLocked()
        await self.backend.delete_file(file_id)
        current = self.answers.get(field_id)
        if not isinstance(current, list):
            return
        self.answers[field_id] = [
            entry for entry in current if _file_id(entry) != file_id
        ]

    # -------------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------------

    async def _upload_signatures(self) -> dict[str, Any]:
        """Upload raw signature data URLs and return the stored references by field id.

        Nothing is written to ``self.answers`` here; callers merge the result only
        after the backend accepts the save, so a failure keeps the raw values.
        """
        uploaded: dict[str, Any] = {}
        for field in fields_with_attachment(self.schema, "signature"):
            value = self.answers.get(field.id)
            if not is_raw_signature(value):
                continue
            try:
                uploaded[field.id] = await self.backend.upload_signature(
                    self.form_id, field.id, value
                )
            except FormServiceError as exc:
                raise SignatureUploadFailed(field.display_label) from exc
        return uploaded

    # -------------------------------------------------------------------------
    # Save / submit
    # -------------------------------------------------------------------------

    def _guard(self) -> None:
        if self.read_only:
            raise SubmissionLocked()
        if self.uploads_in_progress:
            raise UploadsInProgress()

    async def save(self) -> UUID:
        self._guard()
        uploaded = await self._upload_signatures()
        payload = {**self.answers, **uploaded}
        self.submission_id = await self.backend.save_draft(
            self.form_id, payload, self.submission_id
        )
        self.answers.update(uploaded)
        return self.submission_id

    async def submit(self) -> UUID:
        """Validate locally, upload signatures, then submit (or resubmit after a rejection)."""
        self._guard()
        field_errors = self.validate()
        if field_errors:
            raise ValidationFailed(field_errors)
        uploaded = await self._upload_signatures()
        payload = {**self.answers, **uploaded}
        if self.review_status == ReviewStatus.REJECTED.value:
            self.submission_id = await self.backend.resubmit(
                self.form_id, payload, self.submission_id
            )
        else:
            self.submission_id = await self.backend.submit(
                self.form_id, payload, self.submission_id
            )
        self.answers.update(uploaded)
        self.review_status = ReviewStatus.PENDING.value
        self.read_only = True
        return self.submission_id


def _file_id(entry: Any) -> UUID | None:
    if isinstance(entry, FileAnswerItem):
        return entry.file_id
    if isinstance(entry, dict):
        raw = entry.get("fileId") or entry.get("file_id")
        return UUID(str(raw)) if raw else None
    return None
