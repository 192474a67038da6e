"""
Data models for the cache save step.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class CompressionMethod(str, Enum):
    """Archive compression negotiated from the tools available on the runner."""

    GZIP = "gzip"
    ZSTD = "zstd"
    # zstd older than 1.3.2 has no --long support
    ZSTD_WITHOUT_LONG = "zstd-without-long"


class JobConclusion(str, Enum):
    """Outcome of the running job as reported by the GitHub API."""

    SUCCESS = "success"
    FAILURE = "failure"
    OTHER = "other"


class SaveOutcome(str, Enum):
    """Terminal result of one save invocation."""

    SKIPPED_JOB_FAILED = "skipped-job-failed"
    SKIPPED_EXACT_MATCH = "skipped-exact-match"
    SAVED_PRIMARY = "saved-primary"
    SAVED_FALLBACK = "saved-fallback"
    FAILED_CONTAINED = "failed-contained"


class WorkflowStep(BaseModel):
    """A single step of a workflow job."""

    name: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    number: int = 0


class WorkflowJob(BaseModel):
    """Subset of the GitHub workflow job payload used by the status probe."""

    id: int
    name: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    runner_name: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)

    @property
    def job_conclusion(self) -> JobConclusion:
        """
        Map the job payload onto a JobConclusion.

        A job that is still running (which is the case while this step
        executes inside it) has no conclusion yet, so it is derived from
        the steps that have already finished.
        """
        if self.conclusion is not None:
            if self.conclusion == "success":
                return JobConclusion.SUCCESS
            if self.conclusion == "failure":
                return JobConclusion.FAILURE
            return JobConclusion.OTHER

        step_conclusions = [s.conclusion for s in self.steps if s.conclusion]
        if "failure" in step_conclusions:
            return JobConclusion.FAILURE
        if "cancelled" in step_conclusions:
            return JobConclusion.OTHER
        return JobConclusion.SUCCESS


class ArchiveArtifact(BaseModel):
    """A compressed archive built for a single invocation."""

    path: Path
    compression_method: CompressionMethod
    cache_file_name: str
    size_bytes: int = 0


class SaveResult(BaseModel):
    """What the top-level boundary reports back to its caller."""

    outcome: SaveOutcome
    object_name: Optional[str] = None
    error: Optional[str] = None
