"""
CLI entry point for the cache save step.

Normally run as the post step of the action with everything supplied through
``INPUT_*`` variables; flags override them for local use.
"""

import argparse
import sys
from typing import List, Optional

import structlog

from . import __version__
from .config import SaveSettings
from .models import SaveOutcome
from .pipeline import run_save_step
from .workflow_log import configure_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3-cache-save",
        description="Archive cache paths and upload them to S3-compatible storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --bucket ci-cache --key deps-abc123 --path node_modules
  %(prog)s --bucket ci-cache --key deps-abc123 --path '~/.cache/pip' --no-use-fallback
        """,
    )
    parser.add_argument("--bucket", help="Destination bucket")
    parser.add_argument("--key", help="Cache key (object prefix)")
    parser.add_argument(
        "--path",
        action="append",
        dest="paths",
        help="Path pattern to archive (repeatable)",
    )
    parser.add_argument("--endpoint", help="S3 endpoint (default: s3.amazonaws.com)")
    parser.add_argument(
        "--save-on-failure",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Save even if the job is failing",
    )
    parser.add_argument(
        "--use-fallback",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fall back to the GitHub Actions cache if the upload fails",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging (same as RUNNER_DEBUG=1)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def settings_overrides(args: argparse.Namespace) -> dict:
    """CLI values keyed by settings field, unset flags left out."""
    overrides = {
        "bucket": args.bucket,
        "key": args.key,
        "path": "\n".join(args.paths) if args.paths else None,
        "endpoint": args.endpoint,
        "save_on_failure": args.save_on_failure,
        "use_fallback": args.use_fallback,
        "runner_debug": True if args.debug else None,
    }
    return {k: v for k, v in overrides.items() if v is not None}


def main(argv: Optional[List[str]] = None) -> int:
    """Run the save step. Always returns 0: a cache miss must not fail the job."""
    args = build_parser().parse_args(argv)

    overrides = {
        SaveSettings.model_fields[name].validation_alias: value
        for name, value in settings_overrides(args).items()
    }
    try:
        settings = SaveSettings(**overrides)
    except Exception as e:
        configure_logging(debug=args.debug)
        logger.warning(f"Invalid cache save configuration: {e}")
        return 0

    configure_logging(debug=settings.debug)
    result = run_save_step(settings)
    if result.outcome == SaveOutcome.SAVED_PRIMARY and result.object_name:
        logger.info("Cache object", object=result.object_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
