"""Client-side form session: lazy draft, concurrent uploads, signatures."""

import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from formflow.client import FormSession, HttpFormBackend, LocalFile, UploadStatus
from formflow.client.form_session import DRAFT_FAILED_MESSAGE
from formflow.schemas.forms import FileAnswerItem, FormRead, FormSchema, SignatureAnswer
from formflow.services import form_submission_service
from formflow.services.errors import (
    FormServiceError,
    SignatureUploadFailed,
    StorageAccessDenied,
    SubmissionLocked,
    UploadFailed,
    UploadsInProgress,
    ValidationFailed,
)
from factories import ONBOARDING_SCHEMA, PNG_DATA_URL, build_schema


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
FORM_ID = uuid.uuid4()


class FakeBackend:
    """In-memory FormBackend; uploads can be gated or made to fail by file name."""

    def __init__(self, schema: dict = ONBOARDING_SCHEMA):
        self.form = FormRead(
            id=FORM_ID,
            name="Onboarding",
            version=1,
            created_at=NOW,
            form_schema=FormSchema.model_validate(schema),
        )
        self.submission = None
        self.calls: list[tuple] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.fail_uploads: set[str] = set()
        self.crash_uploads: set[str] = set()
        self.fail_draft = False
        self.fail_signature = False
        self.fail_signature_fields: set[str] = set()
        self.draft_id = uuid.uuid4()

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_form(self, form_id):
        return self.form

    async def get_submission(self, form_id):
        return self.submission

    async def open_form(self, form_id):
        self.calls.append(("open_form", form_id))

    async def save_draft(self, form_id, answers, submission_id):
        self.calls.append(("save_draft", dict(answers), submission_id))
        await asyncio.sleep(0)
        if self.fail_draft:
            raise FormServiceError("database unavailable")
        return submission_id or self.draft_id

    async def submit(self, form_id, answers, submission_id):
        self.calls.append(("submit", dict(answers), submission_id))
        return submission_id or self.draft_id

    async def resubmit(self, form_id, answers, submission_id):
        self.calls.append(("resubmit", dict(answers), submission_id))
        return submission_id

    async def upload_file(self, form_id, submission_id, field_id, file, on_progress):
        self.calls.append(("upload_file", file.name, submission_id))
        on_progress(50)
        gate = self.gates.get(file.name)
        if gate is not None:
            await gate.wait()
        if file.name in self.crash_uploads:
            self.crash_uploads.discard(file.name)
            raise RuntimeError("connection reset")
        if file.name in self.fail_uploads:
            self.fail_uploads.discard(file.name)
            raise UploadFailed()
        return FileAnswerItem(
            file_id=uuid.uuid4(),
            file_name=file.name,
            storage_bucket="form-uploads",
            storage_path=f"user/x/{file.name}",
            uploaded_at=NOW,
        )

    async def delete_file(self, file_id):
        self.calls.append(("delete_file", file_id))

    async def upload_signature(self, form_id, field_id, data_url):
        self.calls.append(("upload_signature", field_id, data_url))
        if self.fail_signature or field_id in self.fail_signature_fields:
            raise UploadFailed()
        return SignatureAnswer(
            storage_bucket="signatures", storage_path=f"x/{field_id}.png", signed_at=NOW
        )

    async def get_download_url(self, bucket, path):
        return f"/storage/local/{bucket}/{path}"


def _files(*names: str) -> list[LocalFile]:
    return [LocalFile(name, b"data", "application/pdf") for name in names]


async def _settled(*items) -> None:
    while any(item.status == UploadStatus.UPLOADING for item in items):
        await asyncio.sleep(0)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def session(backend) -> FormSession:
    return await FormSession.open(backend, FORM_ID)


# =============================================================================
# Lazy draft
# =============================================================================

@pytest.mark.asyncio
async def test_first_upload_creates_draft_once(backend, session):
    await asyncio.gather(
        session.add_files("docs", _files("a.pdf")),
        session.add_files("docs", _files("b.pdf")),
    )
    await session.wait_for_uploads()

    assert backend.count("save_draft") == 1
    assert session.submission_id == backend.draft_id
    uploads = [call for call in backend.calls if call[0] == "upload_file"]
    assert {call[2] for call in uploads} == {backend.draft_id}


@pytest.mark.asyncio
async def test_existing_submission_skips_draft(backend):
    session = FormSession(backend, FORM_ID, backend.form.form_schema, submission_id=uuid.uuid4())

    await session.add_files("docs", _files("a.pdf"))
    await session.wait_for_uploads()

    assert backend.count("save_draft") == 0


@pytest.mark.asyncio
async def test_draft_failure_fails_the_whole_batch(backend, session):
    backend.fail_draft = True

    items = await session.add_files("docs", _files("a.pdf", "b.pdf"))

    assert [item.status for item in items] == [UploadStatus.ERROR, UploadStatus.ERROR]
    assert {item.error for item in items} == {DRAFT_FAILED_MESSAGE}
    assert backend.count("upload_file") == 0

    backend.fail_draft = False
    retried = await session.retry_upload(items[0].id)

    assert retried.status == UploadStatus.SUCCESS
    assert items[1].status == UploadStatus.ERROR
    assert [entry.file_name for entry in session.answers["docs"]] == ["a.pdf"]


# =============================================================================
# Concurrent uploads
# =============================================================================

@pytest.mark.asyncio
async def test_answers_follow_completion_order(backend, session):
    for name in ("a.pdf", "b.pdf", "c.pdf"):
        backend.gates[name] = asyncio.Event()

    items = await session.add_files("docs", _files("a.pdf", "b.pdf", "c.pdf"))
    by_name = {item.file.name: item for item in items}
    assert session.uploads_in_progress is True

    for name in ("c.pdf", "a.pdf", "b.pdf"):
        backend.gates[name].set()
        await _settled(by_name[name])

    assert [entry.file_name for entry in session.answers["docs"]] == ["c.pdf", "a.pdf", "b.pdf"]
    assert all(item.progress == 100 for item in items)
    assert session.uploads_in_progress is False


@pytest.mark.asyncio
async def test_one_failure_does_not_affect_others(backend, session):
    backend.fail_uploads = {"b.pdf"}

    items = await session.add_files("docs", _files("a.pdf", "b.pdf", "c.pdf"))
    await session.wait_for_uploads()

    assert [item.status for item in items] == [
        UploadStatus.SUCCESS,
        UploadStatus.ERROR,
        UploadStatus.SUCCESS,
    ]
    assert items[1].error == "Failed to upload file. Please try again."
    assert len(session.answers["docs"]) == 2

    await session.retry_upload(items[1].id)

    assert items[1].status == UploadStatus.SUCCESS
    assert len(session.answers["docs"]) == 3
    assert backend.count("upload_file") == 4


@pytest.mark.asyncio
async def test_unexpected_uploader_error_marks_item_failed(backend, session, caplog):
    backend.crash_uploads = {"b.pdf"}

    items = await session.add_files("docs", _files("a.pdf", "b.pdf"))
    await session.wait_for_uploads()

    assert [item.status for item in items] == [UploadStatus.SUCCESS, UploadStatus.ERROR]
    assert items[1].error == "Failed to upload file. Please try again."
    assert "Unexpected upload error" in caplog.text
    assert not session.uploads_in_progress

    await session.retry_upload(items[1].id)

    assert items[1].status == UploadStatus.SUCCESS
    assert len(session.answers["docs"]) == 2


@pytest.mark.asyncio
async def test_only_failed_items_can_be_retried(session):
    [item] = await session.add_files("docs", _files("a.pdf"))
    await session.wait_for_uploads()

    with pytest.raises(ValueError):
        await session.retry_upload(item.id)


@pytest.mark.asyncio
async def test_remove_file_keeps_the_rest_in_order(backend, session):
    await session.add_files("docs", _files("a.pdf", "b.pdf", "c.pdf"))
    await session.wait_for_uploads()
    before = list(session.answers["docs"])

    await session.remove_file("docs", before[1].file_id)

    assert session.answers["docs"] == [before[0], before[2]]
    assert ("delete_file", before[1].file_id) in backend.calls


@pytest.mark.asyncio
async def test_single_file_field_keeps_first_file():
    backend = FakeBackend(build_schema([{"id": "cv", "type": "file", "label": "CV"}]))
    session = await FormSession.open(backend, FORM_ID)

    items = await session.add_files("cv", _files("one.pdf", "two.pdf"))
    await session.wait_for_uploads()

    assert [item.file.name for item in items] == ["one.pdf"]
    assert [entry.file_name for entry in session.answers["cv"]] == ["one.pdf"]


@pytest.mark.asyncio
async def test_files_only_for_file_fields(session):
    with pytest.raises(ValueError):
        await session.add_files("name", _files("a.pdf"))
    with pytest.raises(ValueError):
        session.set_answer("docs", [])


# =============================================================================
# Save and submit guards
# =============================================================================

@pytest.mark.asyncio
async def test_save_blocked_while_uploading(backend, session):
    backend.gates["a.pdf"] = asyncio.Event()
    await session.add_files("docs", _files("a.pdf"))

    with pytest.raises(UploadsInProgress):
        await session.save()
    with pytest.raises(UploadsInProgress):
        await session.submit()

    backend.gates["a.pdf"].set()
    await session.wait_for_uploads()
    await session.save()

    assert backend.count("save_draft") == 2


@pytest.mark.asyncio
async def test_submit_validates_before_any_request(backend, session):
    with pytest.raises(ValidationFailed) as exc_info:
        await session.submit()

    assert exc_info.value.field_errors == {"name": "Name is required."}
    assert [call[0] for call in backend.calls] == ["open_form"]


@pytest.mark.asyncio
async def test_submit_locks_session(backend, session):
    session.set_answer("name", "Ada")

    await session.submit()

    assert backend.count("submit") == 1
    assert session.read_only is True
    with pytest.raises(SubmissionLocked):
        await session.save()
    with pytest.raises(SubmissionLocked):
        await session.add_files("docs", _files("a.pdf"))


@pytest.mark.asyncio
async def test_rejected_submission_is_resubmitted(backend):
    submission_id = uuid.uuid4()
    session = FormSession(
        backend,
        FORM_ID,
        backend.form.form_schema,
        answers={"name": "Ada"},
        submission_id=submission_id,
        review_status="rejected",
    )

    await session.submit()

    assert backend.count("resubmit") == 1
    assert backend.count("submit") == 0
    assert session.review_status == "pending"


# =============================================================================
# Signatures
# =============================================================================

@pytest.mark.asyncio
async def test_save_uploads_raw_signature_first(backend, session):
    session.set_answer("sig", PNG_DATA_URL)

    await session.save()

    assert [call[0] for call in backend.calls[-2:]] == ["upload_signature", "save_draft"]
    saved_answers = backend.calls[-1][1]
    assert isinstance(saved_answers["sig"], SignatureAnswer)
    assert saved_answers["sig"].storage_bucket == "signatures"


@pytest.mark.asyncio
async def test_stored_signature_is_not_uploaded_again(backend, session):
    session.set_answer("sig", PNG_DATA_URL)
    await session.save()
    await session.save()

    assert backend.count("upload_signature") == 1


@pytest.mark.asyncio
async def test_signature_failure_aborts_save(backend, session):
    backend.fail_signature = True
    session.set_answer("sig", PNG_DATA_URL)

    with pytest.raises(SignatureUploadFailed) as exc_info:
        await session.save()

    assert exc_info.value.field_label == "Signature"
    assert backend.count("save_draft") == 0
    assert session.answers["sig"] == PNG_DATA_URL


TWO_SIGNATURE_SCHEMA = build_schema(
    [
        {"id": "learner_sig", "type": "signature", "label": "Learner signature"},
        {"id": "witness_sig", "type": "signature", "label": "Witness signature"},
    ]
)


@pytest.mark.asyncio
async def test_partial_signature_failure_leaves_answers_unchanged():
    backend = FakeBackend(TWO_SIGNATURE_SCHEMA)
    backend.fail_signature_fields = {"witness_sig"}
    session = await FormSession.open(backend, FORM_ID)
    session.set_answer("learner_sig", PNG_DATA_URL)
    session.set_answer("witness_sig", PNG_DATA_URL)
    before = dict(session.answers)

    with pytest.raises(SignatureUploadFailed) as exc_info:
        await session.save()

    assert exc_info.value.field_label == "Witness signature"
    assert session.answers == before
    assert backend.count("upload_signature") == 2
    assert backend.count("save_draft") == 0


@pytest.mark.asyncio
async def test_failed_draft_save_keeps_raw_signature(backend, session):
    backend.fail_draft = True
    session.set_answer("sig", PNG_DATA_URL)

    with pytest.raises(FormServiceError):
        await session.save()

    assert session.answers["sig"] == PNG_DATA_URL

    backend.fail_draft = False
    await session.save()

    assert backend.count("upload_signature") == 2
    assert isinstance(session.answers["sig"], SignatureAnswer)


@pytest.mark.asyncio
async def test_non_png_data_url_is_sent_for_upload(backend, session):
    jpeg = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="
    session.set_answer("sig", jpeg)

    await session.save()

    assert ("upload_signature", "sig", jpeg) in backend.calls
    assert isinstance(backend.calls[-1][1]["sig"], SignatureAnswer)


# =============================================================================
# Against the HTTP API
# =============================================================================

@pytest.mark.asyncio
async def test_http_backend_full_flow(learner_client, db, form):
    session = await FormSession.open(HttpFormBackend(learner_client), form.id)
    session.set_answer("name", "Ada")
    session.set_answer("sig", PNG_DATA_URL)

    [item] = await session.add_files("docs", [LocalFile("cv.pdf", b"%PDF-1.4", "application/pdf")])
    await session.wait_for_uploads()
    assert item.status == UploadStatus.SUCCESS

    await session.submit()

    db.expire_all()
    stored = form_submission_service.get_submission(db, session.submission_id)
    assert stored.status == "submitted"
    assert stored.answers["name"] == "Ada"
    assert stored.answers["sig"]["storageBucket"] == "signatures"
    files = form_submission_service.get_files_for_submission(db, stored.id)
    assert [f.file_name for f in files["docs"]] == ["cv.pdf"]


@pytest.mark.asyncio
async def test_http_backend_maps_validation_errors(learner_client, form):
    backend = HttpFormBackend(learner_client)

    with pytest.raises(ValidationFailed) as exc_info:
        await backend.submit(form.id, {"bio": "x"}, None)

    assert exc_info.value.field_errors == {"name": "Name is required."}


@pytest.mark.asyncio
async def test_http_backend_download_url_respects_ownership(learner_client, form):
    backend = HttpFormBackend(learner_client)
    signature = await backend.upload_signature(form.id, "sig", PNG_DATA_URL)

    url = await backend.get_download_url(signature.storage_bucket, signature.storage_path)
    assert url.endswith(signature.storage_path)

    with pytest.raises(StorageAccessDenied):
        await backend.get_download_url("form-uploads", f"user/{uuid.uuid4()}/x.pdf")


@pytest.mark.asyncio
async def test_http_backend_rejects_non_png_signature(learner_client, form):
    session = await FormSession.open(HttpFormBackend(learner_client), form.id)
    session.set_answer("sig", "data:image/jpeg;base64,/9j/4AAQSkZJRg==")

    with pytest.raises(SignatureUploadFailed):
        await session.save()

    assert session.submission_id is None
    assert session.answers["sig"].startswith("data:image/jpeg")
