"""
Fallback persistence through the GitHub Actions cache service.

Entries are written with the same key/version scheme the hosted cache
action uses, so a regular cache restore can read them back.
"""

import hashlib
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import httpx
import structlog

from ..archive import ArchiveBuilder, remove_artifact
from ..errors import CacheServiceError, CacheValidationError
from ..models import ArchiveArtifact, CompressionMethod

logger = structlog.get_logger()

SERVICE_PATH = "twirp/github.actions.results.api.v1.CacheService"
VERSION_SALT = "1.0"
MAX_KEY_LENGTH = 512


def get_cache_version(
    paths: Sequence[str],
    compression_method: Optional[CompressionMethod] = None,
    windows: Optional[bool] = None,
) -> str:
    """Version hash scoping an entry to its paths and compression method."""
    components = list(paths)
    if compression_method:
        components.append(compression_method.value)
    if windows is None:
        windows = os.name == "nt"
    if windows:
        components.append("windows-only")
    components.append(VERSION_SALT)
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def validate_key(key: str) -> None:
    if len(key) > MAX_KEY_LENGTH:
        raise CacheValidationError(
            f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters."
        )
    if "," in key:
        raise CacheValidationError(f"Key Validation Error: {key} cannot contain commas.")


class ActionsCacheUploader:
    """Saves paths to the platform cache service under a key."""

    def __init__(
        self,
        results_url: Optional[str],
        runtime_token: Optional[str],
        archive_builder: ArchiveBuilder,
        debug: bool = False,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize cache service uploader.

        Args:
            results_url: ACTIONS_RESULTS_URL of the runner
            runtime_token: ACTIONS_RUNTIME_TOKEN of the runner
            archive_builder: Builder used to package the paths
            debug: List archive contents after building
            timeout: HTTP timeout in seconds
            transport: Optional custom transport (useful for testing)
        """
        self.results_url = results_url
        self.runtime_token = runtime_token
        self.archive_builder = archive_builder
        self.debug = debug
        self.timeout = timeout
        self.transport = transport

    def save(
        self,
        paths: Sequence[str],
        key: str,
        artifact: Optional[ArchiveArtifact] = None,
    ) -> int:
        """
        Store ``paths`` in the cache service as ``key``.

        Args:
            paths: Path patterns, as configured
            key: Cache key
            artifact: An archive of ``paths`` that was already built; built
                here (and removed afterwards) when not given

        Returns:
            Cache entry id

        Raises:
            CacheValidationError: If the key or paths are not acceptable
            CacheServiceError: If the service is unavailable or refuses the entry
        """
        validate_key(key)
        if not paths:
            raise CacheValidationError(
                "Path Validation Error: At least one directory or file path is required"
            )
        if not self.results_url or not self.runtime_token:
            raise CacheServiceError(
                "Cache service is not available: ACTIONS_RESULTS_URL or "
                "ACTIONS_RUNTIME_TOKEN is not set"
            )

        owned = artifact is None
        if owned:
            artifact = self.archive_builder.build(paths, debug=self.debug)
        try:
            version = get_cache_version(paths, artifact.compression_method)
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                upload_url = self._create_entry(client, key, version)
                self._upload_blob(client, upload_url, artifact.path, artifact.size_bytes)
                entry_id = self._finalize_entry(client, key, version, artifact.size_bytes)
        finally:
            if owned:
                remove_artifact(artifact)

        logger.info("Cache saved to cache service", key=key, entry_id=entry_id)
        return entry_id

    def _service_url(self, method: str) -> str:
        return f"{self.results_url.rstrip('/')}/{SERVICE_PATH}/{method}"

    def _call(self, client: httpx.Client, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = client.post(
                self._service_url(method),
                json=body,
                headers={
                    "Authorization": f"Bearer {self.runtime_token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise CacheServiceError(
                f"{method} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CacheServiceError(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise CacheServiceError(f"{method} returned invalid JSON") from e

    def _create_entry(self, client: httpx.Client, key: str, version: str) -> str:
        data = self._call(client, "CreateCacheEntry", {"key": key, "version": version})
        upload_url = data.get("signed_upload_url") or data.get("signedUploadUrl")
        if not data.get("ok") or not upload_url:
            raise CacheServiceError(
                f"Unable to reserve cache with key {key}, another job may be "
                "creating this cache."
            )
        return upload_url

    def _upload_blob(
        self, client: httpx.Client, upload_url: str, archive_path: Path, size_bytes: int
    ) -> None:
        # Signed URL carries its own credentials; no bearer token here
        try:
            with open(archive_path, "rb") as f:
                response = client.put(
                    upload_url,
                    content=f,
                    headers={
                        "x-ms-blob-type": "BlockBlob",
                        "Content-Type": "application/octet-stream",
                        "Content-Length": str(size_bytes),
                    },
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CacheServiceError(
                f"Cache upload failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CacheServiceError(f"Cache upload failed: {e}") from e

    def _finalize_entry(
        self, client: httpx.Client, key: str, version: str, size_bytes: int
    ) -> int:
        data = self._call(
            client,
            "FinalizeCacheEntryUpload",
            {"key": key, "version": version, "sizeBytes": str(size_bytes)},
        )
        if not data.get("ok"):
            raise CacheServiceError(f"Unable to finalize cache with key {key}")
        entry_id = data.get("entry_id") or data.get("entryId") or 0
        return int(entry_id)
