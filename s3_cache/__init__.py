"""
S3 Cache Save

Archive CI cache paths and persist them to S3-compatible object storage,
falling back to the GitHub Actions cache service.
"""

from .config import PlatformCapabilities, SaveSettings
from .gate import CacheDecisionEngine
from .models import (
    ArchiveArtifact,
    CompressionMethod,
    JobConclusion,
    SaveOutcome,
    SaveResult,
)
from .pipeline import PersistenceOrchestrator, run_save_step, save_cache

__version__ = "1.0.0"

__all__ = [
    "ArchiveArtifact",
    "CacheDecisionEngine",
    "CompressionMethod",
    "JobConclusion",
    "PersistenceOrchestrator",
    "PlatformCapabilities",
    "SaveOutcome",
    "SaveResult",
    "SaveSettings",
    "run_save_step",
    "save_cache",
]
