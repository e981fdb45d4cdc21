from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi import HTTPException

from ethicsdesk.core.exceptions import StorageFileNotFoundError
from ethicsdesk.services.storage import (
    FileInput,
    LocalStorageAdapter,
    S3StorageAdapter,
    StorageService,
    UploadOptions,
    create_storage_adapter,
    guess_mime_type,
    mime_type_allowed,
    sanitize_filename,
)

ORG_ID = "11111111-1111-1111-1111-111111111111"
ALLOWED = ["image/*", "application/pdf", "application/vnd.openxmlformats-officedocument.*"]


@pytest.fixture
def adapter(tmp_path):
    return LocalStorageAdapter(str(tmp_path / "uploads"))


@pytest.fixture
def service(adapter):
    return StorageService(adapter, max_file_size=1024, allowed_mime_types=ALLOWED)


def _pdf(content=b"%PDF-1.4 test", filename="report.pdf"):
    return FileInput(content=content, filename=filename, mime_type="application/pdf")


class TestSanitizeFilename:
    @pytest.mark.parametrize("raw,expected", [
        ("report.pdf", "report.pdf"),
        ("my report (final).pdf", "my_report__final_.pdf"),
        ("../../etc/passwd", "passwd"),
        ("..\\..\\windows\\system.ini", "system.ini"),
        ("", "file"),
        ("..", "file"),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_filename(raw) == expected

    def test_long_names_keep_extension(self):
        sanitized = sanitize_filename("a" * 300 + ".pdf")
        assert len(sanitized) == 255
        assert sanitized.endswith(".pdf")


def test_guess_mime_type():
    assert guess_mime_type("scan.png") == "image/png"
    assert guess_mime_type("blob") == "application/octet-stream"


@pytest.mark.parametrize("mime_type,allowed", [
    ("image/png", True),
    ("application/pdf", True),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", True),
    ("application/x-msdownload", False),
    ("text/html", False),
])
def test_mime_type_allow_list(mime_type, allowed):
    assert mime_type_allowed(mime_type, ALLOWED) is allowed


class TestLocalStorageAdapter:
    def test_upload_download_round_trip(self, adapter):
        result = adapter.upload(_pdf(), ORG_ID, UploadOptions(subdirectory="cases"))

        assert result.key.startswith(f"{ORG_ID}/cases/")
        assert result.key.endswith("/report.pdf")
        assert result.url == f"/uploads/{result.key}"
        assert adapter.exists(result.key)

        downloaded = adapter.download(result.key)
        assert downloaded.content == b"%PDF-1.4 test"
        assert downloaded.mime_type == "application/pdf"
        assert downloaded.filename == "report.pdf"

    def test_delete_prunes_empty_directories(self, adapter):
        result = adapter.upload(_pdf(), ORG_ID)

        adapter.delete(result.key)

        assert not adapter.exists(result.key)
        assert not (adapter.base_path / ORG_ID).exists()
        assert adapter.base_path.exists()

    def test_missing_key(self, adapter):
        with pytest.raises(StorageFileNotFoundError):
            adapter.download(f"{ORG_ID}/files/nope/missing.pdf")
        with pytest.raises(StorageFileNotFoundError):
            adapter.delete(f"{ORG_ID}/files/nope/missing.pdf")

    def test_key_escaping_base_path_is_rejected(self, adapter):
        with pytest.raises(HTTPException) as exc:
            adapter.download("../../etc/passwd")
        assert exc.value.status_code == 400

    def test_signed_url(self, adapter):
        result = adapter.upload(_pdf(), ORG_ID)
        assert adapter.get_signed_url(result.key, expires_in=60) == result.url


class TestStorageService:
    def test_requires_organization(self, service):
        with pytest.raises(HTTPException, match="Organization ID is required"):
            service.upload(_pdf(), "")

    def test_requires_file(self, service):
        with pytest.raises(HTTPException, match="No file provided"):
            service.upload(_pdf(content=b""), ORG_ID)

    def test_rejects_oversized_file(self, service):
        with pytest.raises(HTTPException, match="exceeds maximum"):
            service.upload(_pdf(content=b"x" * 2048), ORG_ID)

    def test_rejects_disallowed_type(self, service):
        exe = FileInput(content=b"MZ", filename="setup.exe", mime_type="application/x-msdownload")
        with pytest.raises(HTTPException, match="not allowed"):
            service.upload(exe, ORG_ID)

    def test_delegates_valid_upload(self, service):
        result = service.upload(_pdf(), ORG_ID)
        assert service.exists(result.key)


class TestS3StorageAdapter:
    def test_upload_puts_object_under_tenant_prefix(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://signed"
        adapter = S3StorageAdapter("bucket", client=client)

        result = adapter.upload(_pdf(), ORG_ID, UploadOptions(subdirectory="cases"))

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["Key"] == result.key
        assert kwargs["ContentType"] == "application/pdf"
        assert result.key.startswith(f"{ORG_ID}/cases/")
        assert result.url == "https://signed"

    def test_exists_is_false_for_missing_object(self):
        client = MagicMock()
        client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")
        adapter = S3StorageAdapter("bucket", client=client)

        assert adapter.exists("missing") is False
        with pytest.raises(StorageFileNotFoundError):
            adapter.delete("missing")

    def test_download_missing_object(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        adapter = S3StorageAdapter("bucket", client=client)

        with pytest.raises(StorageFileNotFoundError):
            adapter.download("missing")

    def test_requires_bucket(self):
        with pytest.raises(ValueError):
            S3StorageAdapter("", client=MagicMock())


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        create_storage_adapter("ftp")
