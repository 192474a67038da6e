"""
Expansion of the configured ``path`` patterns into concrete paths.
"""

import glob
import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

from .errors import PathResolutionError

logger = structlog.get_logger()


def get_workspace(workspace: Optional[Union[str, Path]] = None) -> Path:
    """Directory archive paths are made relative to."""
    return Path(workspace or os.getenv("GITHUB_WORKSPACE") or os.getcwd()).resolve()


def _expand(pattern: str, root: Path) -> List[str]:
    """Expand a single pattern into absolute paths, sorted for stable archives."""
    pattern = os.path.expanduser(pattern)
    if not os.path.isabs(pattern):
        pattern = str(root / pattern)

    if glob.has_magic(pattern):
        matches = glob.glob(pattern, recursive=True, include_hidden=True)
        return sorted(os.path.normpath(m) for m in matches)
    if os.path.lexists(pattern):
        return [os.path.normpath(pattern)]
    return []


def _relative(path: str, root: Path) -> str:
    rel = os.path.relpath(path, root).replace(os.sep, "/")
    return rel or "."


def resolve_paths(
    patterns: Iterable[str], workspace: Optional[Union[str, Path]] = None
) -> List[str]:
    """
    Resolve path patterns into an ordered list of workspace-relative paths.

    Args:
        patterns: Patterns as configured, one per entry. ``!`` negates,
            ``#`` starts a comment, ``~`` expands to the home directory.
        workspace: Base directory (defaults to GITHUB_WORKSPACE or cwd)

    Returns:
        Paths in order of first appearance, without duplicates

    Raises:
        PathResolutionError: If no pattern matched anything
    """
    root = get_workspace(workspace)
    resolved: List[str] = []

    for raw in patterns:
        pattern = raw.strip()
        if not pattern or pattern.startswith("#"):
            continue

        if pattern.startswith("!"):
            excluded = {_relative(m, root) for m in _expand(pattern[1:].strip(), root)}
            resolved = [
                p
                for p in resolved
                if p not in excluded and not any(p.startswith(f"{e}/") for e in excluded)
            ]
            continue

        matches = _expand(pattern, root)
        if not matches:
            logger.debug("Pattern matched nothing", pattern=pattern)
        for match in matches:
            rel = _relative(match, root)
            if rel not in resolved:
                resolved.append(rel)

    if not resolved:
        raise PathResolutionError(
            "Path(s) specified for caching do not exist, hence no cache is being saved."
        )
    return resolved
