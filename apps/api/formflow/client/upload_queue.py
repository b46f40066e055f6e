"""Concurrent upload queue for file fields.

Each queued file gets its own asyncio task; tasks resolve independently so a
failed upload never cancels the others. Failed items stay in the queue and
can be retried one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from formflow.client.backend import LocalFile, ProgressCallback
from formflow.schemas.forms import FileAnswerItem
from formflow.services.errors import FormServiceError, UploadFailed

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class UploadItem:
    field_id: str
    file: LocalFile
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: str | None = None
    result: FileAnswerItem | None = None


Uploader = Callable[[UploadItem, ProgressCallback], Awaitable[FileAnswerItem]]
SuccessHandler = Callable[[UploadItem, FileAnswerItem], None]


class UploadQueue:
    def __init__(self, uploader: Uploader, on_success: SuccessHandler):
        self._uploader = uploader
        self._on_success = on_success
        self._items: dict[str, UploadItem] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def items(self) -> list[UploadItem]:
        return list(self._items.values())

    def get(self, item_id: str) -> UploadItem:
        return self._items[item_id]

    @property
    def is_uploading(self) -> bool:
        return any(item.status == UploadStatus.UPLOADING for item in self._items.values())

    def enqueue(self, field_id: str, files: list[LocalFile]) -> list[UploadItem]:
        items = [UploadItem(field_id=field_id, file=f) for f in files]
        for item in items:
            self._items[item.id] = item
        return items

    def fail(self, items: list[UploadItem], message: str) -> None:
        for item in items:
            item.status = UploadStatus.ERROR
            item.error = message

    def start(self, item: UploadItem) -> asyncio.Task:
        # Flip synchronously so the save guard sees it before the task runs.
        item.status = UploadStatus.UPLOADING
        item.progress = 0
        item.error = None
        task = asyncio.create_task(self._run(item))
        self._tasks[item.id] = task
        return task

    async def retry(self, item_id: str) -> UploadItem:
        item = self._items[item_id]
        if item.status != UploadStatus.ERROR:
            raise ValueError("Only failed uploads can be retried.")
        await self.start(item)
        return item

    async def wait(self) -> None:
        """Wait for every started upload to settle."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, item: UploadItem) -> None:
        def on_progress(percent: int) -> None:
            item.progress = max(0, min(100, int(percent)))

        try:
            result = await self._uploader(item, on_progress)
        except FormServiceError as exc:
            item.status = UploadStatus.ERROR
            item.error = str(exc) or str(UploadFailed())
            logger.warning("Upload failed field_id=%s", item.field_id)
            return
        except Exception:
            item.status = UploadStatus.ERROR
            item.error = str(UploadFailed())
            logger.exception("Unexpected upload error field_id=%s", item.field_id)
            return

        item.status = UploadStatus.SUCCESS
        item.progress = 100
        item.result = result
        self._on_success(item, result)
