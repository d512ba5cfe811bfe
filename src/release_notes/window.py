"""Release window resolution.

Works out which tags bound this release and the timestamp PRs must have
merged after:

    trigger     tags    current   previous   baseline
    tag push    >=2     pushed    next-older previous tag's commit date
    tag push    1       pushed    -          now - lookback
    other       >=2     newest    2nd newest previous tag's commit date
    other       1       newest    -          current tag's commit date
    any         0       -         -          now - lookback

A pushed tag that isn't in the listed history (listing cap, replication
lag) is logged as a warning and the run falls back to the "other" rows,
so the newest listed tag stands in for the pushed one.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

from release_notes.context.github import GitHubClientProtocol
from release_notes.context.tags import list_tags, resolve_tag_timestamp
from release_notes.logging_config import get_logger
from release_notes.schemas import ReleaseWindow, Tag, TriggerContext
from release_notes.utils import clamp_int, iso_days_ago

logger = get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 30
MIN_LOOKBACK_DAYS = 1
MAX_LOOKBACK_DAYS = 3650

TimestampResolver = Callable[[str], Awaitable[str]]


async def resolve_window(
    trigger: TriggerContext,
    tags: Sequence[Tag],
    lookback_days: int,
    resolve_timestamp: TimestampResolver,
    now: datetime | None = None,
) -> ReleaseWindow:
    """Derive the ReleaseWindow for a run.

    Args:
        trigger: What started the run
        tags: Tag history, newest first
        lookback_days: Fallback window in days (clamped to 1-3650)
        resolve_timestamp: Coroutine mapping a tag name to its commit date
        now: Clock override for the lookback fallback

    Raises:
        ResolutionError: If a tag needed for the baseline has no commit date
    """
    lookback = clamp_int(
        lookback_days, DEFAULT_LOOKBACK_DAYS, MIN_LOOKBACK_DAYS, MAX_LOOKBACK_DAYS
    )
    names = [tag.name for tag in tags]
    tag_push = trigger.is_tag_push

    current: str | None = trigger.pushed_tag if tag_push else None
    previous: str | None = None
    located = False

    if current is not None:
        if current in names:
            located = True
            index = names.index(current)
            if index + 1 < len(names):
                previous = names[index + 1]
        else:
            logger.warning(
                "pushed_tag_not_in_history",
                pushed_tag=current,
                listed_tags=len(names),
                fallback_tag=names[0] if names else None,
            )
            current = None

    if not located:
        if len(names) >= 2:
            current, previous = names[0], names[1]
        elif len(names) == 1:
            current = names[0]

    if previous is not None:
        baseline = await resolve_timestamp(previous)
    elif current is not None and not tag_push:
        baseline = await resolve_timestamp(current)
    else:
        baseline = iso_days_ago(lookback, now)

    window = ReleaseWindow(
        current_tag=current, previous_tag=previous, baseline_timestamp=baseline
    )
    logger.info(
        "window_resolved",
        current_tag=window.current_tag or "(none)",
        previous_tag=window.previous_tag or "(none)",
        baseline=window.baseline_timestamp,
    )
    return window


async def resolve_release_window(
    client: GitHubClientProtocol,
    trigger: TriggerContext,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    max_tags: int = 200,
    now: datetime | None = None,
) -> ReleaseWindow:
    """List the repository's tags and resolve the window against them."""
    repo = trigger.repository
    tags = await list_tags(client, repo, max_tags=max_tags)

    async def timestamp(tag_name: str) -> str:
        return await resolve_tag_timestamp(client, repo, tag_name)

    return await resolve_window(trigger, tags, lookback_days, timestamp, now=now)
