"""Shared pytest fixtures for s3_cache tests."""

import os
from pathlib import Path

import pytest

from s3_cache.config import SaveSettings
from s3_cache.models import ArchiveArtifact, CompressionMethod

ENV_PREFIXES = ("INPUT_", "STATE_", "GITHUB_", "RUNNER_", "ACTIONS_")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the runner environment of whoever runs the tests out of settings."""
    for name in list(os.environ):
        if name.upper().startswith(ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings():
    """Factory for settings with all required inputs filled in."""

    def _make(**overrides) -> SaveSettings:
        values = {
            "github_token": "ghp_test",
            "save_on_failure": True,
            "bucket": "ci-cache",
            "key": "deps-abc123",
            "path": "node_modules\ndist",
            "github_repository": "octo/repo",
            "github_run_id": 42,
        }
        values.update(overrides)
        return SaveSettings(**values)

    return _make


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Workspace with a couple of files and directories to archive."""
    root = tmp_path / "workspace"
    (root / "node_modules" / "left-pad").mkdir(parents=True)
    (root / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1\n")
    (root / "dist").mkdir()
    (root / "dist" / "app.bin").write_bytes(b"\x00\x01\x02")
    (root / "dist" / "app.map").write_text("{}")
    (root / "README.md").write_text("# test\n")
    return root


@pytest.fixture
def artifact(tmp_path) -> ArchiveArtifact:
    """A prebuilt archive inside its own temp directory."""
    folder = tmp_path / "archive"
    folder.mkdir()
    path = folder / "cache.tgz"
    path.write_bytes(b"fake archive")
    return ArchiveArtifact(
        path=path,
        compression_method=CompressionMethod.GZIP,
        cache_file_name="cache.tgz",
        size_bytes=path.stat().st_size,
    )
