"""Tests for the S3 and cache service upload backends."""

import hashlib
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from s3_cache.errors import CacheServiceError, CacheValidationError
from s3_cache.models import CompressionMethod
from s3_cache.uploaders import ActionsCacheUploader, S3Uploader
from s3_cache.uploaders.actions_cache_uploader import get_cache_version
from s3_cache.uploaders.s3_uploader import parse_endpoint

RESULTS_URL = "https://results.actions.test/"
UPLOAD_URL = "https://blob.test/cache/entry?sig=abc"


# ============================================================================
# S3Uploader
# ============================================================================


@pytest.mark.parametrize(
    "endpoint, secure, expected",
    [
        ("s3.amazonaws.com", True, ("s3.amazonaws.com", True)),
        ("minio.local:9000", True, ("minio.local:9000", True)),
        ("http://minio.local:9000", True, ("minio.local:9000", False)),
        ("https://minio.local/some/path", True, ("minio.local", True)),
        ("minio.local/bucket", False, ("minio.local", False)),
    ],
)
def test_parse_endpoint(endpoint, secure, expected):
    assert parse_endpoint(endpoint, secure) == expected


def test_port_overrides_endpoint_port():
    uploader = S3Uploader("minio.local:9000", port=9100, client=MagicMock())

    assert uploader.endpoint == "minio.local:9100"


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("[::1]:9000", "[::1]:9100"),
        ("http://[fd00::5]", "[fd00::5]:9100"),
        ("10.0.0.7:9000", "10.0.0.7:9100"),
    ],
)
def test_port_override_keeps_address(endpoint, expected):
    uploader = S3Uploader(endpoint, port=9100, client=MagicMock())

    assert uploader.endpoint == expected


def test_builds_minio_client():
    uploader = S3Uploader(
        "http://minio.local:9000", access_key="ak", secret_key="sk", region="us-east-1"
    )

    assert uploader.secure is False
    assert uploader.client is not None


def test_upload_file(tmp_path):
    archive = tmp_path / "cache.tgz"
    archive.write_bytes(b"data")
    client = MagicMock()
    client.fput_object.return_value = SimpleNamespace(etag="etag-1")
    uploader = S3Uploader("s3.amazonaws.com", client=client)

    assert uploader.upload_file("ci-cache", "deps/cache.tgz", archive) == "etag-1"
    client.fput_object.assert_called_once_with(
        bucket_name="ci-cache", object_name="deps/cache.tgz", file_path=str(archive)
    )


def test_upload_errors_propagate(tmp_path):
    client = MagicMock()
    client.fput_object.side_effect = PermissionError("Access Denied")
    uploader = S3Uploader("s3.amazonaws.com", client=client)

    with pytest.raises(PermissionError):
        uploader.upload_file("ci-cache", "deps/cache.tgz", tmp_path / "cache.tgz")


# ============================================================================
# ActionsCacheUploader
# ============================================================================


def test_cache_version_matches_cache_action_scheme():
    expected = hashlib.sha256(b"node_modules|dist|zstd|1.0").hexdigest()

    version = get_cache_version(["node_modules", "dist"], CompressionMethod.ZSTD, windows=False)

    assert version == expected


def test_cache_version_windows_only():
    linux = get_cache_version(["dist"], CompressionMethod.GZIP, windows=False)
    windows = get_cache_version(["dist"], CompressionMethod.GZIP, windows=True)

    assert linux != windows


class FakeCacheService:
    """Records requests and answers like the cache service."""

    def __init__(self, create_ok=True, finalize_ok=True, upload_status=201):
        self.create_ok = create_ok
        self.finalize_ok = finalize_ok
        self.upload_status = upload_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/CreateCacheEntry"):
            return httpx.Response(
                200, json={"ok": self.create_ok, "signed_upload_url": UPLOAD_URL}
            )
        if request.url.path.endswith("/FinalizeCacheEntryUpload"):
            return httpx.Response(200, json={"ok": self.finalize_ok, "entry_id": "77"})
        if request.url.host == "blob.test":
            return httpx.Response(self.upload_status)
        return httpx.Response(404)


def make_uploader(service, builder=None, **kwargs):
    values = {
        "results_url": RESULTS_URL,
        "runtime_token": "runtime-token",
        "archive_builder": builder or MagicMock(),
        "transport": httpx.MockTransport(service),
    }
    values.update(kwargs)
    return ActionsCacheUploader(**values)


def test_save_with_prebuilt_artifact(artifact):
    service = FakeCacheService()
    builder = MagicMock()
    uploader = make_uploader(service, builder)

    entry_id = uploader.save(["dist"], "deps-abc123", artifact=artifact)

    assert entry_id == 77
    builder.build.assert_not_called()
    # caller owns a prebuilt artifact
    assert artifact.path.exists()

    create, upload, finalize = service.requests
    assert create.url.path == (
        "/twirp/github.actions.results.api.v1.CacheService/CreateCacheEntry"
    )
    assert create.headers["Authorization"] == "Bearer runtime-token"
    body = json.loads(create.content)
    assert body["key"] == "deps-abc123"
    assert body["version"] == get_cache_version(["dist"], CompressionMethod.GZIP)

    assert str(upload.url) == UPLOAD_URL
    assert upload.headers["x-ms-blob-type"] == "BlockBlob"
    assert "Authorization" not in upload.headers
    assert upload.content == b"fake archive"

    assert json.loads(finalize.content)["sizeBytes"] == str(artifact.size_bytes)


def test_save_builds_and_removes_own_archive(artifact):
    service = FakeCacheService()
    builder = MagicMock()
    builder.build.return_value = artifact
    uploader = make_uploader(service, builder)

    uploader.save(["dist"], "deps-abc123")

    builder.build.assert_called_once_with(["dist"], debug=False)
    assert not artifact.path.parent.exists()


def test_reservation_refused(artifact):
    uploader = make_uploader(FakeCacheService(create_ok=False))

    with pytest.raises(CacheServiceError, match="Unable to reserve cache"):
        uploader.save(["dist"], "deps-abc123", artifact=artifact)


def test_blob_upload_failure(artifact):
    uploader = make_uploader(FakeCacheService(upload_status=403))

    with pytest.raises(CacheServiceError, match="403"):
        uploader.save(["dist"], "deps-abc123", artifact=artifact)


def test_finalize_refused(artifact):
    uploader = make_uploader(FakeCacheService(finalize_ok=False))

    with pytest.raises(CacheServiceError, match="finalize"):
        uploader.save(["dist"], "deps-abc123", artifact=artifact)


def test_service_unreachable(artifact):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    uploader = make_uploader(handler)

    with pytest.raises(CacheServiceError, match="request failed"):
        uploader.save(["dist"], "deps-abc123", artifact=artifact)


def test_missing_runtime_configuration(artifact):
    uploader = make_uploader(FakeCacheService(), results_url=None)

    with pytest.raises(CacheServiceError, match="ACTIONS_RESULTS_URL"):
        uploader.save(["dist"], "deps-abc123", artifact=artifact)


@pytest.mark.parametrize("key", ["a" * 513, "deps,abc"])
def test_invalid_keys_rejected(key, artifact):
    service = FakeCacheService()
    uploader = make_uploader(service)

    with pytest.raises(CacheValidationError):
        uploader.save(["dist"], key, artifact=artifact)
    assert service.requests == []


def test_empty_paths_rejected(artifact):
    with pytest.raises(CacheValidationError):
        make_uploader(FakeCacheService()).save([], "deps-abc123", artifact=artifact)
