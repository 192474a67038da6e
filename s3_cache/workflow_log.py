"""
Logging setup for running inside a GitHub Actions job.

Events are rendered as workflow commands so warnings show up as annotations
and debug lines only appear when step debug logging is enabled.
"""

import logging
import sys

import structlog

WORKFLOW_COMMANDS = {
    "debug": "debug",
    "warning": "warning",
    "error": "error",
    "critical": "error",
}


def escape_data(message: str) -> str:
    """Escape a message for use inside a workflow command."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def render_workflow_command(logger, method_name: str, event_dict: dict) -> str:
    """structlog renderer producing ``::warning::`` style lines."""
    level = event_dict.pop("level", method_name)
    event = str(event_dict.pop("event", ""))
    event_dict.pop("timestamp", None)

    extras = " ".join(f"{k}={v}" for k, v in event_dict.items())
    message = f"{event} {extras}" if extras else event

    command = WORKFLOW_COMMANDS.get(level)
    if command:
        return f"::{command}::{escape_data(message)}"
    return message


def configure_logging(debug: bool = False) -> None:
    """Configure structlog for the job log."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            render_workflow_command,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
