"""Small pure helpers shared across the pipeline.

Everything here takes plain values and returns plain values: string
coercion for action inputs, ISO timestamp arithmetic, and sanitizing text
before it is embedded in the rendered markdown.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any

TRUE_STRINGS = frozenset({"1", "true", "yes", "y", "on"})
FALSE_STRINGS = frozenset({"0", "false", "no", "n", "off"})

_NEWLINES = re.compile(r"\r?\n")


def to_bool(value: Any, default: bool = False) -> bool:
    """Coerce an action input string to a bool.

    Unrecognized values (including None and the empty string) return
    ``default`` rather than raising.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    return default


def clamp_int(value: Any, default: int, minimum: int, maximum: int) -> int:
    """Parse an int and clamp it into ``[minimum, maximum]``.

    Unparseable values return ``default`` unclamped.
    """
    if value is None or value == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return max(minimum, min(maximum, number))


def parse_comma_separated(value: str | None) -> list[str]:
    """Split "a, B ,,c" into ["a", "b", "c"]."""
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_iso(moment: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_days_ago(days: int, now: datetime | None = None) -> str:
    """ISO timestamp for ``now - days``."""
    return format_iso((now or utc_now()) - timedelta(days=days))


def escape_md(text: Any) -> str:
    """Flatten text onto one line so it can't break a markdown list item."""
    if text is None:
        return ""
    return _NEWLINES.sub(" ", str(text)).strip()
