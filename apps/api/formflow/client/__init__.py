"""Async client for filling in forms: answer map, uploads, and signatures."""

from formflow.client.backend import FormBackend, HttpFormBackend, LocalFile
from formflow.client.form_session import FormSession
from formflow.client.upload_queue import UploadItem, UploadQueue, UploadStatus

__all__ = [
    "FormBackend",
    "FormSession",
    "HttpFormBackend",
    "LocalFile",
    "UploadItem",
    "UploadQueue",
    "UploadStatus",
]
