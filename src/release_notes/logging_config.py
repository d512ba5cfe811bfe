"""Structured logging configuration.

Three output modes, picked from the environment:
- development: pretty, colorized console output
- production: one JSON object per line
- github-actions: plain console output, with warnings additionally surfaced
  as ``::warning::`` workflow commands so they show up as annotations on
  the run. The single ``::error::`` line for a failed run is written by the
  entry point, not here

Usage:
    from release_notes.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("window_resolved", current_tag="v1.2.0", previous_tag="v1.1.0")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

_ANNOTATION_LEVELS = {"warning": "warning"}


def resolve_environment(environment: str | None = None) -> str:
    """Pick the logging mode; GITHUB_ACTIONS=true wins over the default."""
    if environment:
        return environment
    if os.environ.get("ENVIRONMENT"):
        return os.environ["ENVIRONMENT"]
    if os.environ.get("GITHUB_ACTIONS", "").lower() == "true":
        return "github-actions"
    return "development"


def escape_workflow_data(text: str) -> str:
    """Escape a message for use in a ``::command::`` line."""
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def github_annotation(_logger: Any, method_name: str, event_dict: dict) -> dict:
    """Emit a ``::warning::`` workflow command for warning events.

    The event itself still flows on to the renderer.
    """
    command = _ANNOTATION_LEVELS.get(method_name)
    if command:
        context = " ".join(
            f"{key}={value}"
            for key, value in event_dict.items()
            if key not in ("event", "level", "timestamp", "exc_info")
        )
        message = f"{event_dict.get('event', '')} {context}".strip()
        print(f"::{command}::{escape_workflow_data(message)}", file=sys.stdout)
    return event_dict


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog for the process.

    Args:
        environment: "development", "production" or "github-actions".
                     Detected from ENVIRONMENT / GITHUB_ACTIONS if not given.
        log_level: DEBUG, INFO, WARNING or ERROR. Reads LOG_LEVEL if not
                   given; RUNNER_DEBUG=1 forces DEBUG.
    """
    env = resolve_environment(environment)
    level = log_level or os.environ.get("LOG_LEVEL", "INFO")
    if os.environ.get("RUNNER_DEBUG") == "1":
        level = "DEBUG"

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=env == "development")

    if env == "github-actions":
        processors.append(github_annotation)

    structlog.configure(
        processors=[
            *processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        # stderr keeps stdout free for workflow commands and --dry-run output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request at INFO through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
