"""
Decides whether a save should happen at all.
"""

from typing import Callable, Optional

import structlog

from .models import JobConclusion, SaveOutcome

logger = structlog.get_logger()

JobProbe = Callable[[], Optional[JobConclusion]]


class CacheDecisionEngine:
    """Runs the job-outcome and exact-key-match checks, in that order."""

    def evaluate(
        self,
        save_on_failure: bool,
        restored_key_match: bool,
        probe: JobProbe,
    ) -> Optional[SaveOutcome]:
        """
        Evaluate the gate.

        Args:
            save_on_failure: Save even when the job is failing
            restored_key_match: Restore step hit the exact key
            probe: Returns the current job conclusion; only called when
                ``save_on_failure`` is False

        Returns:
            The skip outcome, or None if the save should proceed
        """
        if not save_on_failure and self._job_failing(probe):
            logger.info("Job is not successful, not saving cache")
            return SaveOutcome.SKIPPED_JOB_FAILED

        if restored_key_match:
            logger.info("Cache was exact key match, not saving")
            return SaveOutcome.SKIPPED_EXACT_MATCH

        return None

    def should_proceed(
        self,
        save_on_failure: bool,
        restored_key_match: bool,
        probe: JobProbe,
    ) -> bool:
        return self.evaluate(save_on_failure, restored_key_match, probe) is None

    def _job_failing(self, probe: JobProbe) -> bool:
        # An unknown job status never blocks the save
        try:
            conclusion = probe()
        except Exception as e:
            logger.warning(f"Could not determine job status, saving anyway: {e}")
            return False

        if conclusion is None:
            return False
        return conclusion != JobConclusion.SUCCESS
