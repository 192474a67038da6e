"""
Configuration for the cache save step.

Action inputs reach the process as ``INPUT_<NAME>`` environment variables and
state saved by the restore step as ``STATE_<NAME>``; runner metadata comes
from the usual ``GITHUB_*`` / ``RUNNER_*`` variables.
"""

from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Only these variables are ever written to the log
DIAGNOSTIC_ENV_VARS = (
    "GITHUB_REPOSITORY",
    "GITHUB_RUN_ID",
    "GITHUB_JOB",
    "GITHUB_SERVER_URL",
    "RUNNER_NAME",
    "RUNNER_OS",
)


class PlatformCapabilities(BaseModel):
    """What the CI host supports, injected into the orchestrator."""

    supports_fallback_cache: bool = True

    @classmethod
    def from_server_url(cls, server_url: str) -> "PlatformCapabilities":
        """
        Detect capabilities from GITHUB_SERVER_URL.

        github.com and GHE.com data residency hosts run the cache service;
        any other host is a GitHub Enterprise Server instance, which does not.
        """
        hostname = (urlparse(server_url).hostname or "github.com").upper()
        hosted = (
            hostname == "GITHUB.COM"
            or hostname.endswith(".GHE.COM")
            or hostname.endswith(".LOCALHOST")
        )
        return cls(supports_fallback_cache=hosted)


class SaveSettings(BaseSettings):
    """Inputs and runner environment for one save invocation."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    # Action inputs
    github_token: str = Field(validation_alias="INPUT_GITHUBTOKEN")
    save_on_failure: bool = Field(validation_alias="INPUT_SAVEONFAILURE")
    bucket: str = Field(validation_alias="INPUT_BUCKET")
    key: str = Field(validation_alias="INPUT_KEY")
    path: str = Field(validation_alias="INPUT_PATH")
    use_fallback: bool = Field(default=True, validation_alias="INPUT_USE-FALLBACK")
    job_id: Optional[int] = Field(default=None, validation_alias="INPUT_JOB-ID")

    # Object storage
    endpoint: str = Field(default="s3.amazonaws.com", validation_alias="INPUT_ENDPOINT")
    port: Optional[int] = Field(default=None, validation_alias="INPUT_PORT")
    insecure: bool = Field(default=False, validation_alias="INPUT_INSECURE")
    access_key: Optional[str] = Field(default=None, validation_alias="INPUT_ACCESSKEY")
    secret_key: Optional[str] = Field(default=None, validation_alias="INPUT_SECRETKEY")
    session_token: Optional[str] = Field(
        default=None, validation_alias="INPUT_SESSIONTOKEN"
    )
    region: Optional[str] = Field(default=None, validation_alias="INPUT_REGION")

    # State left behind by the restore step
    matched_key: Optional[str] = Field(default=None, validation_alias="STATE_CACHE_RESULT")

    # Runner environment
    github_repository: str = Field(default="", validation_alias="GITHUB_REPOSITORY")
    github_run_id: Optional[int] = Field(default=None, validation_alias="GITHUB_RUN_ID")
    github_job: Optional[str] = Field(default=None, validation_alias="GITHUB_JOB")
    github_server_url: str = Field(
        default="https://github.com", validation_alias="GITHUB_SERVER_URL"
    )
    github_api_url: str = Field(
        default="https://api.github.com", validation_alias="GITHUB_API_URL"
    )
    github_workspace: Optional[Path] = Field(
        default=None, validation_alias="GITHUB_WORKSPACE"
    )
    runner_name: Optional[str] = Field(default=None, validation_alias="RUNNER_NAME")
    runner_os: Optional[str] = Field(default=None, validation_alias="RUNNER_OS")
    runner_temp: Optional[Path] = Field(default=None, validation_alias="RUNNER_TEMP")
    runner_debug: bool = Field(default=False, validation_alias="RUNNER_DEBUG")
    actions_results_url: Optional[str] = Field(
        default=None, validation_alias="ACTIONS_RESULTS_URL"
    )
    actions_runtime_token: Optional[str] = Field(
        default=None, validation_alias="ACTIONS_RUNTIME_TOKEN"
    )

    @property
    def paths(self) -> List[str]:
        """Multiline ``path`` input as a list, blank lines dropped."""
        return [line.strip() for line in self.path.splitlines() if line.strip()]

    @property
    def restored_key_match(self) -> bool:
        """Whether the restore step hit the exact primary key."""
        return is_exact_key_match(self.key, self.matched_key)

    @property
    def capabilities(self) -> PlatformCapabilities:
        return PlatformCapabilities.from_server_url(self.github_server_url)

    @property
    def debug(self) -> bool:
        return self.runner_debug

    def diagnostics(self) -> Dict[str, str]:
        """Allow-listed runner metadata for the debug log."""
        values = {
            "GITHUB_REPOSITORY": self.github_repository,
            "GITHUB_RUN_ID": str(self.github_run_id or ""),
            "GITHUB_JOB": self.github_job or "",
            "GITHUB_SERVER_URL": self.github_server_url,
            "RUNNER_NAME": self.runner_name or "",
            "RUNNER_OS": self.runner_os or "",
        }
        return {name: values[name] for name in DIAGNOSTIC_ENV_VARS}


def is_exact_key_match(key: str, matched_key: Optional[str]) -> bool:
    """True when the restored key is the requested key, ignoring case."""
    if not matched_key:
        return False
    return matched_key.casefold() == key.casefold()
