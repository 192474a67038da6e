"""
Cache save orchestration.

The gate decides whether to save, the orchestrator archives and uploads
with an optional fallback, and ``run_save_step`` is the single boundary
that keeps any remaining error from failing the job.
"""

import posixpath
from pathlib import Path
from typing import Optional, Protocol, Sequence

import structlog

from .archive import ArchiveBuilder, remove_artifact
from .config import PlatformCapabilities, SaveSettings
from .gate import CacheDecisionEngine, JobProbe
from .github_api import JobOutcomeProbe
from .models import ArchiveArtifact, SaveOutcome, SaveResult
from .uploaders import ActionsCacheUploader, S3Uploader

logger = structlog.get_logger()


class ObjectStore(Protocol):
    def upload_file(self, bucket: str, object_name: str, file_path: Path) -> str: ...


class FallbackCache(Protocol):
    def save(
        self,
        paths: Sequence[str],
        key: str,
        artifact: Optional[ArchiveArtifact] = None,
    ) -> int: ...


class PersistenceOrchestrator:
    """Primary upload to object storage with a contained fallback."""

    def __init__(
        self,
        object_store: ObjectStore,
        fallback: Optional[FallbackCache],
        capabilities: PlatformCapabilities,
        archive_builder: ArchiveBuilder,
        debug: bool = False,
    ):
        self.object_store = object_store
        self.fallback = fallback
        self.capabilities = capabilities
        self.archive_builder = archive_builder
        self.debug = debug
        self.last_object_name: Optional[str] = None

    def persist(
        self,
        paths: Sequence[str],
        bucket: str,
        key: str,
        use_fallback: bool,
    ) -> SaveOutcome:
        """
        Archive ``paths`` and upload the archive to ``bucket`` under ``key``.

        Errors while resolving, archiving or uploading are contained here.
        An error from the fallback itself is not: no other backend is left.
        """
        artifact = None
        try:
            try:
                artifact = self.archive_builder.build(paths, debug=self.debug)
                object_name = posixpath.join(key, artifact.cache_file_name)
                logger.info(f"Uploading tar to s3. Bucket: {bucket}, Object: {object_name}")
                self.object_store.upload_file(bucket, object_name, artifact.path)
                self.last_object_name = object_name
                logger.info("Cache saved to s3 successfully")
                return SaveOutcome.SAVED_PRIMARY
            except Exception as e:
                logger.info(f"Save s3 cache failed: {e}")

            return self._save_fallback(paths, key, use_fallback, artifact)
        finally:
            if artifact is not None:
                remove_artifact(artifact)

    def _save_fallback(
        self,
        paths: Sequence[str],
        key: str,
        use_fallback: bool,
        artifact: Optional[ArchiveArtifact],
    ) -> SaveOutcome:
        if not use_fallback:
            logger.debug("Skipped fallback cache")
            return SaveOutcome.FAILED_CONTAINED

        if not self.capabilities.supports_fallback_cache:
            logger.warning("Cache fallback is not supported on GitHub Enterprise Server.")
            return SaveOutcome.FAILED_CONTAINED

        if self.fallback is None:
            logger.warning("No fallback cache configured, not saving cache")
            return SaveOutcome.FAILED_CONTAINED

        logger.info("Saving cache using fallback")
        # Reuse the archive if it was built before the upload failed
        self.fallback.save(paths, key, artifact=artifact)
        logger.info("Save cache using fallback successfully")
        return SaveOutcome.SAVED_FALLBACK


def build_orchestrator(settings: SaveSettings) -> PersistenceOrchestrator:
    """Wire the real backends from settings."""
    archive_builder = ArchiveBuilder(
        workspace=settings.github_workspace,
        temp_root=settings.runner_temp,
    )
    object_store = S3Uploader(
        settings.endpoint,
        access_key=settings.access_key,
        secret_key=settings.secret_key,
        session_token=settings.session_token,
        region=settings.region,
        secure=not settings.insecure,
        port=settings.port,
    )
    fallback = ActionsCacheUploader(
        settings.actions_results_url,
        settings.actions_runtime_token,
        archive_builder,
        debug=settings.debug,
    )
    return PersistenceOrchestrator(
        object_store,
        fallback,
        settings.capabilities,
        archive_builder,
        debug=settings.debug,
    )


def build_probe(settings: SaveSettings) -> JobOutcomeProbe:
    return JobOutcomeProbe(
        settings.github_token,
        settings.github_repository,
        settings.github_run_id,
        job_id=settings.job_id,
        job_name=settings.github_job,
        runner_name=settings.runner_name,
        api_url=settings.github_api_url,
    )


def save_cache(
    settings: SaveSettings,
    probe: Optional[JobProbe] = None,
    orchestrator: Optional[PersistenceOrchestrator] = None,
    gate: Optional[CacheDecisionEngine] = None,
) -> SaveResult:
    """
    Run one save invocation: gate, then persist.

    Fallback failures propagate; use ``run_save_step`` to contain them.
    """
    logger.debug("Runner diagnostics", **settings.diagnostics())

    gate = gate or CacheDecisionEngine()
    skip = gate.evaluate(
        settings.save_on_failure,
        settings.restored_key_match,
        probe or build_probe(settings),
    )
    if skip is not None:
        return SaveResult(outcome=skip)

    orchestrator = orchestrator or build_orchestrator(settings)
    outcome = orchestrator.persist(
        settings.paths, settings.bucket, settings.key, settings.use_fallback
    )
    object_name = orchestrator.last_object_name if outcome == SaveOutcome.SAVED_PRIMARY else None
    return SaveResult(outcome=outcome, object_name=object_name)


def run_save_step(
    settings: Optional[SaveSettings] = None,
    probe: Optional[JobProbe] = None,
    orchestrator: Optional[PersistenceOrchestrator] = None,
) -> SaveResult:
    """
    Top-level boundary: never raises.

    Anything that escapes ``save_cache`` (including settings that fail to
    load) is logged as a warning and reported as a contained failure.
    """
    try:
        if settings is None:
            settings = SaveSettings()
        result = save_cache(settings, probe=probe, orchestrator=orchestrator)
    except Exception as e:
        logger.warning(f"Cache save failed: {e}")
        return SaveResult(outcome=SaveOutcome.FAILED_CONTAINED, error=str(e))

    logger.info("Cache save finished", outcome=result.outcome.value)
    return result
