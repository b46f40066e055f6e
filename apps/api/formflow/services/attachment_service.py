"""Object storage for form uploads and signatures (local or S3 backend)."""

import hashlib
import logging
import os
from typing import BinaryIO

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from formflow.core.config import settings
from formflow.services.errors import StorageAccessDenied, UploadFailed

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

BLOCKED_EXTENSIONS = {
    "exe", "bat", "cmd", "com", "msi", "scr", "pif",
    "sh", "bash", "ps1", "vbs", "js", "jar", "dll", "app",
}
ACCESS_DENIED_CODES = {"AccessDenied", "403", "Forbidden", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


def _get_storage_backend() -> str:
    return settings.STORAGE_BACKEND


def _get_local_storage_path() -> str:
    path = settings.LOCAL_STORAGE_PATH
    os.makedirs(path, exist_ok=True)
    return path


def local_path(bucket: str, path: str) -> str:
    root = os.path.realpath(_get_local_storage_path())
    full = os.path.realpath(os.path.join(root, bucket, path))
    if not full.startswith(root + os.sep):
        raise StorageAccessDenied("Storage path escapes the storage root.")
    return full


def get_s3_client() -> BaseClient:
    """S3 client for the form-upload and signature buckets; honours a custom endpoint."""
    style = settings.S3_URL_STYLE.strip().lower()
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION or None,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=settings.S3_ENDPOINT_URL.rstrip("/") or None,
        config=Config(s3={"addressing_style": style}) if style in {"path", "virtual"} else None,
    )


def _translate_client_error(exc: ClientError) -> Exception:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    if code in ACCESS_DENIED_CODES:
        return StorageAccessDenied("You do not have access to this file.")
    return UploadFailed()


# =============================================================================
# File Operations
# =============================================================================

def calculate_checksum(file: BinaryIO) -> str:
    """Calculate SHA-256 checksum of file."""
    sha256 = hashlib.sha256()
    file.seek(0)
    for chunk in iter(lambda: file.read(8192), b""):
        sha256.update(chunk)
    file.seek(0)
    return sha256.hexdigest()


def get_file_size(file: BinaryIO) -> int:
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)
    return size


def validate_file(filename: str, file_size: int) -> tuple[bool, str | None]:
    """
    Validate file against the blocked-extension list and the size limit.

    Returns (is_valid, error_message)
    """
    if not filename or not filename.strip():
        return False, "File name is required"

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext in BLOCKED_EXTENSIONS:
        return False, f"File extension '.{ext}' not allowed"

    if file_size > settings.MAX_UPLOAD_BYTES:
        max_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        return False, f"File size exceeds {max_mb:.0f} MB limit"

    return True, None


def store_file(bucket: str, path: str, file: BinaryIO, content_type: str) -> None:
    """Store file to configured backend."""
    backend = _get_storage_backend()
    file.seek(0)

    if backend == "s3":
        s3 = get_s3_client()
        try:
            s3.upload_fileobj(file, bucket, path, ExtraArgs={"ContentType": content_type})
        except ClientError as exc:
            logger.warning("S3 upload failed bucket=%s code=%s", bucket, exc.response.get("Error", {}).get("Code"))
            raise _translate_client_error(exc) from exc
        except BotoCoreError as exc:
            logger.warning("S3 upload failed bucket=%s error=%s", bucket, type(exc).__name__)
            raise UploadFailed() from exc
    else:
        full = local_path(bucket, path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        try:
            with open(full, "wb") as f:
                f.write(file.read())
        except OSError as exc:
            logger.warning("Local upload failed bucket=%s error=%s", bucket, type(exc).__name__)
            raise UploadFailed() from exc


def generate_signed_url(bucket: str, path: str, expires_in: int | None = None) -> str:
    """Generate a time-limited download URL."""
    backend = _get_storage_backend()
    ttl = expires_in or settings.SIGNED_URL_EXPIRY_SECONDS

    if backend == "s3":
        s3 = get_s3_client()
        try:
            return s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=ttl,
            )
        except ClientError as exc:
            raise _translate_client_error(exc) from exc

    # Local: served by the dev file route only
    return f"/storage/local/{bucket}/{path}"


def delete_file(bucket: str, path: str) -> None:
    """Delete file from storage."""
    backend = _get_storage_backend()

    if backend == "s3":
        s3 = get_s3_client()
        try:
            s3.delete_object(Bucket=bucket, Key=path)
        except ClientError as exc:
            raise _translate_client_error(exc) from exc
    else:
        full = local_path(bucket, path)
        if os.path.exists(full):
            os.remove(full)
