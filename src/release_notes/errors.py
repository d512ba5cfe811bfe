"""Exceptions raised by the release notes pipeline.

Network failures are not wrapped: ``httpx`` errors propagate unchanged to
the top level, where they abort the run with a single message.
"""

from __future__ import annotations


class ReleaseNotesError(Exception):
    """Base class for errors this package raises itself."""


class ConfigurationError(ReleaseNotesError):
    """A required input is missing or unusable."""


class ResolutionError(ReleaseNotesError):
    """A tag could not be resolved to a commit timestamp."""

    def __init__(self, tag: str, reason: str = "") -> None:
        self.tag = tag
        message = f"Unable to determine commit date for tag {tag}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
