"""
File Storage

Adapter-based blob storage for attachments.

Keys are tenant-prefixed:

    <organization_id>/<subdirectory>/<uuid>/<sanitized filename>

so one organization's files can never collide with (or be addressed as)
another's. StorageService validates uploads and delegates to the adapter
selected by STORAGE_BACKEND ("local" for development, "s3" for any
S3-compatible store).
"""
import mimetypes
import os
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from ethicsdesk.config import get_settings
from ethicsdesk.core.exceptions import InvalidInputError, StorageFileNotFoundError
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SUBDIRECTORY = "files"
DEFAULT_MIME_TYPE = "application/octet-stream"
MAX_FILENAME_LENGTH = 255

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass
class FileInput:
    content: bytes
    filename: str
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class UploadOptions:
    subdirectory: str = DEFAULT_SUBDIRECTORY
    filename: Optional[str] = None


@dataclass
class UploadResult:
    key: str
    url: str
    size: int
    mime_type: str
    filename: str


@dataclass
class DownloadResult:
    content: bytes
    mime_type: str
    size: int
    filename: str


def sanitize_filename(filename: str) -> str:
    """
    Strip directories and unsafe characters from a client-supplied name.

    "../../etc/passwd" -> "passwd", "my report.pdf" -> "my_report.pdf"
    """
    sanitized = os.path.basename((filename or "").replace("\\", "/"))
    sanitized = _UNSAFE_FILENAME_CHARS.sub("_", sanitized)
    if not sanitized or sanitized == "_" or sanitized in (".", ".."):
        sanitized = "file"
    if len(sanitized) > MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(sanitized)
        sanitized = stem[:MAX_FILENAME_LENGTH - len(ext)] + ext
    return sanitized


def guess_mime_type(filename: str) -> str:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or DEFAULT_MIME_TYPE


def build_key(organization_id: str, subdirectory: str, filename: str) -> str:
    return f"{organization_id}/{subdirectory}/{uuid.uuid4()}/{filename}"


class StorageAdapter(ABC):
    """Interface every storage backend implements."""

    @abstractmethod
    def upload(self, file: FileInput, organization_id: str, options: Optional[UploadOptions] = None) -> UploadResult:
        ...

    @abstractmethod
    def download(self, key: str) -> DownloadResult:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...


class LocalStorageAdapter(StorageAdapter):
    """
    Stores files on the local file system.

    Intended for development and tests. URLs are relative paths
    (/uploads/<key>) and signed URLs ignore the expiry.
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def upload(self, file: FileInput, organization_id: str, options: Optional[UploadOptions] = None) -> UploadResult:
        options = options or UploadOptions()
        filename = sanitize_filename(options.filename or file.filename)
        key = build_key(organization_id, options.subdirectory, filename)

        path = self._full_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(file.content)

        logger.debug(f"File uploaded: {key}")
        return UploadResult(
            key=key,
            url=self._build_url(key),
            size=file.size,
            mime_type=file.mime_type,
            filename=filename,
        )

    def download(self, key: str) -> DownloadResult:
        path = self._full_path(key)
        if not path.is_file():
            raise StorageFileNotFoundError(key)
        content = path.read_bytes()
        return DownloadResult(
            content=content,
            mime_type=guess_mime_type(path.name),
            size=len(content),
            filename=path.name,
        )

    def delete(self, key: str) -> None:
        path = self._full_path(key)
        if not path.is_file():
            raise StorageFileNotFoundError(key)
        path.unlink()
        self._prune_empty_directories(path.parent)
        logger.debug(f"File deleted: {key}")

    def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        if not self.exists(key):
            raise StorageFileNotFoundError(key)
        return self._build_url(key)

    def exists(self, key: str) -> bool:
        return self._full_path(key).is_file()

    def _full_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise InvalidInputError(f"Invalid storage key: {key}")
        return path

    def _prune_empty_directories(self, directory: Path) -> None:
        while directory != self.base_path and self.base_path in directory.parents:
            if any(directory.iterdir()):
                return
            directory.rmdir()
            directory = directory.parent

    @staticmethod
    def _build_url(key: str) -> str:
        return f"/uploads/{key}"


class S3StorageAdapter(StorageAdapter):
    """Stores files in an S3-compatible bucket."""

    def __init__(self, bucket: str, client=None):
        if not bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        self.bucket = bucket
        self.client = client or get_s3_client()

    def upload(self, file: FileInput, organization_id: str, options: Optional[UploadOptions] = None) -> UploadResult:
        options = options or UploadOptions()
        filename = sanitize_filename(options.filename or file.filename)
        key = build_key(organization_id, options.subdirectory, filename)

        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=file.content,
            ContentType=file.mime_type,
            Metadata={"organization_id": organization_id, "original_filename": filename},
        )
        logger.debug(f"File uploaded to s3://{self.bucket}/{key}")
        return UploadResult(
            key=key,
            url=self.get_signed_url(key),
            size=file.size,
            mime_type=file.mime_type,
            filename=filename,
        )

    def download(self, key: str) -> DownloadResult:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise StorageFileNotFoundError(key)
            raise
        content = response["Body"].read()
        return DownloadResult(
            content=content,
            mime_type=response.get("ContentType") or guess_mime_type(key),
            size=len(content),
            filename=key.rsplit("/", 1)[-1],
        )

    def delete(self, key: str) -> None:
        if not self.exists(key):
            raise StorageFileNotFoundError(key)
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.debug(f"File deleted from s3://{self.bucket}/{key}")

    def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise
        return True


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")


def get_s3_client():
    """S3 client for the configured (possibly S3-compatible) endpoint."""
    settings = get_settings()
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION or None,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=settings.S3_ENDPOINT_URL.rstrip("/") or None,
    )


def mime_type_allowed(mime_type: str, allowed: List[str]) -> bool:
    """
    Match against an allow-list supporting wildcards.

    "image/*" matches any image type; "application/vnd.openxmlformats-officedocument.*"
    matches every subtype starting with that prefix.
    """
    mime_type = (mime_type or "").lower()
    for pattern in allowed:
        pattern = pattern.lower()
        if pattern.endswith("*"):
            if mime_type.startswith(pattern[:-1]):
                return True
        elif mime_type == pattern:
            return True
    return False


class StorageService:
    """Validates uploads, then delegates to the configured adapter."""

    def __init__(self, adapter: StorageAdapter, max_file_size: int, allowed_mime_types: List[str]):
        self.adapter = adapter
        self.max_file_size = max_file_size
        self.allowed_mime_types = allowed_mime_types

    def upload(self, file: Optional[FileInput], organization_id: str, options: Optional[UploadOptions] = None) -> UploadResult:
        if not organization_id:
            raise InvalidInputError("Organization ID is required")
        if file is None or not file.content:
            raise InvalidInputError("No file provided")
        if file.size > self.max_file_size:
            raise InvalidInputError(
                f"File size {file.size} exceeds maximum allowed size of {self.max_file_size} bytes"
            )
        if not mime_type_allowed(file.mime_type, self.allowed_mime_types):
            raise InvalidInputError(f"File type {file.mime_type} is not allowed")

        result = self.adapter.upload(file, organization_id, options)
        logger.info(
            f"Stored {result.filename} ({result.size} bytes)",
            extra={"organization_id": organization_id}
        )
        return result

    def download(self, key: str) -> DownloadResult:
        return self.adapter.download(key)

    def delete(self, key: str) -> None:
        self.adapter.delete(key)

    def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        return self.adapter.get_signed_url(key, expires_in)

    def exists(self, key: str) -> bool:
        return self.adapter.exists(key)


def create_storage_adapter(backend: str) -> StorageAdapter:
    settings = get_settings()
    if backend == "local":
        return LocalStorageAdapter(settings.STORAGE_LOCAL_PATH)
    if backend == "s3":
        return S3StorageAdapter(settings.S3_BUCKET)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")


@lru_cache()
def get_storage_service() -> StorageService:
    """FastAPI dependency; one service per process."""
    settings = get_settings()
    return StorageService(
        create_storage_adapter(settings.STORAGE_BACKEND),
        max_file_size=settings.STORAGE_MAX_FILE_SIZE,
        allowed_mime_types=settings.STORAGE_ALLOWED_MIME_TYPES,
    )
