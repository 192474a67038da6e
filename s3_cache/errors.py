"""
Exceptions raised by the cache save step.
"""


class CacheSaveError(Exception):
    """Base class for all cache save errors."""


class PathResolutionError(CacheSaveError):
    """No usable paths could be resolved from the configured patterns."""


class ArchiveError(CacheSaveError):
    """Creating or listing the tar archive failed."""


class JobStatusError(CacheSaveError):
    """The job status lookup against the GitHub API failed."""


class CacheServiceError(CacheSaveError):
    """The GitHub Actions cache service refused or failed a request."""


class CacheValidationError(CacheSaveError):
    """A cache key or path list is not acceptable to the cache service."""
