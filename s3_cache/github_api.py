"""
Job status lookup against the GitHub REST API.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from .errors import JobStatusError
from .models import JobConclusion, WorkflowJob

logger = structlog.get_logger()

API_VERSION = "2022-11-28"
JOBS_PAGE_SIZE = 100


class JobOutcomeProbe:
    """
    Determines how the currently running job is doing.

    The job is identified explicitly: by ``job_id`` when known, otherwise by
    the runner it is executing on, otherwise by its name. If none of these
    single out exactly one job the probe is inconclusive and returns None.
    """

    def __init__(
        self,
        token: str,
        repository: str,
        run_id: Optional[int],
        job_id: Optional[int] = None,
        job_name: Optional[str] = None,
        runner_name: Optional[str] = None,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self.repository = repository
        self.run_id = run_id
        self.job_id = job_id
        self.job_name = job_name
        self.runner_name = runner_name
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def __call__(self) -> Optional[JobConclusion]:
        return self.conclusion()

    def conclusion(self) -> Optional[JobConclusion]:
        """
        Fetch the conclusion of the current job.

        Returns:
            The job conclusion, or None if the job could not be identified

        Raises:
            JobStatusError: If the API could not be queried
        """
        with self._client() as client:
            job = self._find_job(client)

        if job is None:
            logger.warning(
                "Could not identify the current job, treating job status as unknown",
                run_id=self.run_id,
            )
            return None

        result = job.job_conclusion
        logger.info(
            "Job status",
            job_id=job.id,
            status=job.status,
            conclusion=result.value,
        )
        return result

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            },
            timeout=self.timeout,
            transport=self.transport,
        )

    def _repo_path(self) -> str:
        owner, _, repo = self.repository.partition("/")
        if not owner or not repo:
            raise JobStatusError(f"Invalid repository: {self.repository!r}")
        return f"/repos/{owner}/{repo}"

    def _get(self, client: httpx.Client, path: str, params: Optional[Dict] = None) -> Any:
        try:
            response = client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise JobStatusError(
                f"GitHub API returned {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            raise JobStatusError(f"GitHub API request failed: {e}") from e
        except ValueError as e:
            raise JobStatusError(f"GitHub API returned invalid JSON for {path}") from e

    def get_job(self, client: httpx.Client, job_id: int) -> WorkflowJob:
        data = self._get(client, f"{self._repo_path()}/actions/jobs/{job_id}")
        try:
            return WorkflowJob.model_validate(data)
        except ValidationError as e:
            raise JobStatusError(f"Malformed job payload: {e}") from e

    def list_jobs(self, client: httpx.Client) -> List[WorkflowJob]:
        """All jobs of the current run attempt, across pages."""
        if self.run_id is None:
            raise JobStatusError("GITHUB_RUN_ID is not set")

        path = f"{self._repo_path()}/actions/runs/{self.run_id}/jobs"
        jobs: List[WorkflowJob] = []
        page = 1
        while True:
            data = self._get(client, path, params={"per_page": JOBS_PAGE_SIZE, "page": page})
            try:
                batch = [WorkflowJob.model_validate(j) for j in data["jobs"]]
                total = int(data.get("total_count", 0))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                raise JobStatusError(f"Malformed job list payload: {e}") from e

            jobs.extend(batch)
            if not batch or len(jobs) >= total:
                return jobs
            page += 1

    def _find_job(self, client: httpx.Client) -> Optional[WorkflowJob]:
        if self.job_id is not None:
            return self.get_job(client, self.job_id)

        jobs = self.list_jobs(client)

        if self.runner_name:
            match = _single(j for j in jobs if j.runner_name == self.runner_name)
            if match:
                return match

        if self.job_name:
            match = _single(j for j in jobs if j.name == self.job_name)
            if match:
                return match

        return None


def _single(candidates) -> Optional[WorkflowJob]:
    """The one candidate, preferring running jobs when several match."""
    candidates = list(candidates)
    if len(candidates) > 1:
        candidates = [j for j in candidates if j.status == "in_progress"]
    return candidates[0] if len(candidates) == 1 else None
