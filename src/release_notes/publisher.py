"""Publishing sinks for rendered release notes.

- Summary: appended to the job summary file ($GITHUB_STEP_SUMMARY), or
  stdout outside Actions. Always written.
- Release: on tag pushes, the GitHub release for the tag is updated if it
  exists and created otherwise.
- Preview: on pull_request events, one comment per PR, found again on later
  runs by a hidden marker and edited in place.

Both upserts branch on an explicit Found / NotFound lookup, so running the
same publish twice updates instead of duplicating. There is no rollback: if
a later sink fails, earlier ones stay written.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TextIO

from release_notes.classifier import ClassifierConfig, assign_section, should_exclude
from release_notes.config import ActionConfig
from release_notes.context.github import PAGE_SIZE, GitHubClientProtocol
from release_notes.context.pulls import normalize_item
from release_notes.logging_config import get_logger
from release_notes.renderer import format_line
from release_notes.schemas import (
    ChangeRequestRecord,
    Found,
    Lookup,
    NotFound,
    TriggerContext,
    UpsertAction,
    UpsertResult,
)

logger = get_logger(__name__)

PREVIEW_MARKER = "<!-- release-notes-preview:v0 -->"


# ---------------------------------------------------------------------------
# Summary sink
# ---------------------------------------------------------------------------


class StepSummary:
    """Appends markdown to the job summary.

    Each ``write`` is a single append followed by a newline.
    """

    def __init__(self, path: str | Path | None = None, stream: TextIO | None = None) -> None:
        self._path = Path(path) if path else None
        self._stream = stream

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StepSummary:
        env = os.environ if environ is None else environ
        return cls(path=env.get("GITHUB_STEP_SUMMARY") or None)

    def write(self, markdown: str) -> None:
        text = f"{markdown}\n"
        if self._path is not None:
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(text)
        else:
            (self._stream or sys.stdout).write(text)


# ---------------------------------------------------------------------------
# Release sink
# ---------------------------------------------------------------------------


async def upsert_release(
    client: GitHubClientProtocol, repo: str, tag: str, body: str, draft: bool
) -> UpsertResult:
    """Update the release for ``tag`` or create it if the lookup misses."""
    lookup = await client.get_release_by_tag(repo, tag)

    if isinstance(lookup, Found):
        updated = await client.update_release(
            repo, lookup.value["id"], body=body, draft=draft
        )
        return UpsertResult(action=UpsertAction.UPDATED, url=updated.get("html_url", ""))

    created = await client.create_release(
        repo, tag_name=tag, name=f"Release {tag}", body=body, draft=draft
    )
    return UpsertResult(action=UpsertAction.CREATED, url=created.get("html_url", ""))


# ---------------------------------------------------------------------------
# Preview sink
# ---------------------------------------------------------------------------


def record_from_payload(pull_request: dict[str, Any]) -> ChangeRequestRecord:
    """Normalize the event payload's pull_request like a search result."""
    return normalize_item(pull_request)


def render_preview_body(record: ChangeRequestRecord, config: ClassifierConfig) -> str:
    if should_exclude(record, config):
        placement = "This PR will be left out of the release notes by the label filters."
    else:
        placement = f"This PR will appear in section: **{assign_section(record, config)}**"

    return "\n".join(
        [
            "### Release Notes Preview",
            PREVIEW_MARKER,
            "",
            placement,
            "",
            "Sample entry:",
            format_line(record),
            "",
        ]
    )


async def find_preview_comment(
    client: GitHubClientProtocol, repo: str, issue_number: int
) -> Lookup:
    """Scan the PR's comments for one carrying PREVIEW_MARKER."""
    page = 1
    while True:
        comments = await client.list_comments(repo, issue_number, page=page, per_page=PAGE_SIZE)
        for comment in comments:
            if PREVIEW_MARKER in (comment.get("body") or ""):
                return Found(comment)
        if len(comments) < PAGE_SIZE:
            return NotFound(reason="no comment with preview marker")
        page += 1


async def upsert_preview_comment(
    client: GitHubClientProtocol, repo: str, issue_number: int, body: str
) -> UpsertResult:
    """Edit the existing preview comment or create the first one."""
    lookup = await find_preview_comment(client, repo, issue_number)

    if isinstance(lookup, Found):
        existing = lookup.value
        await client.update_comment(repo, existing["id"], body)
        return UpsertResult(action=UpsertAction.UPDATED, url=existing.get("html_url", ""))

    created = await client.create_comment(repo, issue_number, body)
    return UpsertResult(action=UpsertAction.CREATED, url=created.get("html_url", ""))


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class Publisher:
    """Runs the sinks for one pipeline run.

    Usage:
        publisher = Publisher(client, config, StepSummary.from_env())
        publisher.publish_summary(markdown)
        release = await publisher.publish_release(trigger, markdown)
        preview = await publisher.publish_preview(trigger)
    """

    def __init__(
        self,
        client: GitHubClientProtocol,
        config: ActionConfig,
        summary: StepSummary,
    ) -> None:
        self.client = client
        self.config = config
        self.summary = summary

    def publish_summary(self, markdown: str) -> None:
        self.summary.write(markdown)

    async def publish_release(
        self, trigger: TriggerContext, markdown: str
    ) -> UpsertResult | None:
        """Create or update the release for the pushed tag, when enabled.

        Keyed on the tag named by the trigger, never on the window: a pushed
        tag missing from the listed history still gets its own release.
        """
        if not self.config.create_release:
            return None

        tag = trigger.pushed_tag
        if not tag:
            logger.info("release_skipped", reason="not a tag push")
            self.summary.write("\n---\nRelease creation skipped (not a tag push).\n")
            return None

        result = await upsert_release(
            self.client, trigger.repository, tag, markdown, self.config.draft
        )
        logger.info("release_upserted", tag=tag, action=result.action.value, url=result.url)
        kind = "Draft release" if self.config.draft else "Release"
        self.summary.write(f"\n---\n{kind} {result.action.value}: {result.url}\n")
        return result

    async def publish_preview(self, trigger: TriggerContext) -> UpsertResult | None:
        """Post or refresh the preview comment on pull_request events."""
        if not (self.config.preview_on_pr and trigger.event_name == "pull_request"):
            return None

        pull_request = trigger.pull_request
        if not pull_request or not pull_request.get("number"):
            logger.warning("preview_skipped", reason="event payload has no pull request number")
            return None

        record = record_from_payload(pull_request)
        body = render_preview_body(record, self.config.classifier_config())
        result = await upsert_preview_comment(
            self.client, trigger.repository, record.number, body
        )
        logger.info(
            "preview_comment_upserted",
            pr_number=record.number,
            action=result.action.value,
            url=result.url,
        )
        return result
