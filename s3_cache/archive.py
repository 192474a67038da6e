"""
Tar archive creation for cache paths.

Compression is delegated to the system ``tar`` (and ``zstd`` when present),
the same tools the restore side uses to unpack.
"""

import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Union

import structlog

from .errors import ArchiveError
from .models import ArchiveArtifact, CompressionMethod
from .paths import get_workspace, resolve_paths

logger = structlog.get_logger()

MANIFEST_FILE_NAME = "manifest.txt"
ZSTD_LONG_MIN_VERSION = (1, 3, 2)

CACHE_FILE_NAMES = {
    CompressionMethod.GZIP: "cache.tgz",
    CompressionMethod.ZSTD: "cache.tzst",
    CompressionMethod.ZSTD_WITHOUT_LONG: "cache.tzst",
}


def get_cache_file_name(method: CompressionMethod) -> str:
    """Archive file name for a compression method; stable across runs."""
    return CACHE_FILE_NAMES[method]


def _parse_version(output: str) -> Optional[tuple]:
    match = re.search(r"v?(\d+)\.(\d+)\.(\d+)", output)
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


def _compression_args(method: CompressionMethod, decompress: bool = False) -> List[str]:
    if method == CompressionMethod.ZSTD:
        program = "zstdmt -d --long=30" if decompress else "zstdmt --long=30"
        return ["--use-compress-program", program]
    if method == CompressionMethod.ZSTD_WITHOUT_LONG:
        return ["--use-compress-program", "zstdmt -d" if decompress else "zstdmt"]
    return ["-z"]


class ArchiveBuilder:
    """Builds the compressed tar archive for a set of cache paths."""

    def __init__(
        self,
        workspace: Optional[Union[str, Path]] = None,
        temp_root: Optional[Union[str, Path]] = None,
        compression_method: Optional[CompressionMethod] = None,
        timeout: Optional[int] = None,
    ):
        """
        Initialize archive builder.

        Args:
            workspace: Directory archive paths are relative to
            temp_root: Parent for per-invocation temp dirs (RUNNER_TEMP)
            compression_method: Force a method instead of probing for zstd
            timeout: Seconds to allow each tar invocation
        """
        self.workspace = get_workspace(workspace)
        self.temp_root = Path(temp_root) if temp_root else None
        self.timeout = timeout
        self._compression_method = compression_method
        self.tar_path = shutil.which("tar")

    def get_compression_method(self) -> CompressionMethod:
        """Pick zstd when the runner has it, otherwise gzip."""
        if self._compression_method is not None:
            return self._compression_method

        zstd_path = shutil.which("zstd")
        if not zstd_path:
            self._compression_method = CompressionMethod.GZIP
            return self._compression_method

        try:
            result = subprocess.run(
                [zstd_path, "--version"], capture_output=True, text=True, timeout=30
            )
            version = _parse_version(result.stdout + result.stderr)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("zstd version probe failed", error=str(e))
            version = None

        if version is None:
            method = CompressionMethod.GZIP
        elif version < ZSTD_LONG_MIN_VERSION:
            method = CompressionMethod.ZSTD_WITHOUT_LONG
        else:
            method = CompressionMethod.ZSTD

        self._compression_method = method
        return method

    def create_temp_directory(self) -> Path:
        """Fresh directory owned by this invocation."""
        if self.temp_root:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="s3-cache-", dir=self.temp_root))

    def _run_tar(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess:
        if not self.tar_path:
            raise ArchiveError("tar not found on PATH")
        try:
            result = subprocess.run(
                [self.tar_path, *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ArchiveError(f"tar timed out after {self.timeout}s") from e
        except OSError as e:
            raise ArchiveError(f"tar could not be started: {e}") from e

        if result.returncode != 0:
            raise ArchiveError(
                f"tar failed with exit code {result.returncode}: {result.stderr.strip()}"
            )
        return result

    def create_tar(
        self,
        archive_folder: Path,
        paths: Sequence[str],
        method: CompressionMethod,
    ) -> ArchiveArtifact:
        """
        Write ``paths`` into a compressed archive inside ``archive_folder``.

        Paths are passed to tar through a manifest so their order, and with it
        the archive layout, follows the resolved order.
        """
        cache_file_name = get_cache_file_name(method)
        archive_path = archive_folder / cache_file_name
        manifest_path = archive_folder / MANIFEST_FILE_NAME
        manifest_path.write_text("\n".join(paths) + "\n", encoding="utf-8")

        args = [
            "--posix",
            "-cf",
            str(archive_path),
            "--exclude",
            cache_file_name,
            "-P",
            "-C",
            str(self.workspace),
            "--files-from",
            str(manifest_path),
            *_compression_args(method),
        ]
        self._run_tar(args, cwd=archive_folder)

        if not archive_path.exists():
            raise ArchiveError(f"Archive was not created: {archive_path}")

        artifact = ArchiveArtifact(
            path=archive_path,
            compression_method=method,
            cache_file_name=cache_file_name,
            size_bytes=archive_path.stat().st_size,
        )
        logger.debug(
            "Archive created", path=str(archive_path), size_bytes=artifact.size_bytes
        )
        return artifact

    def list_tar(self, archive_path: Path, method: CompressionMethod) -> str:
        """Log the archive contents (debug mode only)."""
        args = ["-tvf", str(archive_path), "-P", *_compression_args(method, decompress=True)]
        result = self._run_tar(args, cwd=archive_path.parent)
        for line in result.stdout.splitlines():
            logger.debug(line)
        return result.stdout

    def build(self, patterns: Sequence[str], debug: bool = False) -> ArchiveArtifact:
        """
        Resolve patterns and archive them into a new temp directory.

        The temp directory is removed again if anything fails, so callers
        only own it once an artifact is returned.
        """
        method = self.get_compression_method()
        cache_paths = resolve_paths(patterns, self.workspace)
        logger.debug("Cache paths", paths=cache_paths)

        archive_folder = self.create_temp_directory()
        try:
            artifact = self.create_tar(archive_folder, cache_paths, method)
            if debug:
                self.list_tar(artifact.path, method)
        except Exception:
            shutil.rmtree(archive_folder, ignore_errors=True)
            raise

        logger.debug("Archive path", path=str(artifact.path))
        return artifact


def remove_artifact(artifact: ArchiveArtifact) -> None:
    """Delete the temp directory holding an artifact."""
    shutil.rmtree(artifact.path.parent, ignore_errors=True)
