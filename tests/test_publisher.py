"""Tests for the publishing sinks.

The mock client keeps releases and comments between calls, so publishing
twice shows what a second workflow run would do.
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from release_notes.classifier import ClassifierConfig
from release_notes.config import ActionConfig
from release_notes.context.github import MockGitHubClient
from release_notes.publisher import (
    PREVIEW_MARKER,
    Publisher,
    StepSummary,
    find_preview_comment,
    render_preview_body,
    upsert_preview_comment,
    upsert_release,
)
from release_notes.schemas import ChangeRequestRecord, NotFound, TriggerContext, UpsertAction

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> MockGitHubClient:
    return MockGitHubClient()


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def tag_push() -> TriggerContext:
    return TriggerContext(event_name="push", ref="refs/tags/v1.1", ref_type="tag",
                          ref_name="v1.1", repository="o/r")


@pytest.fixture
def pr_event() -> TriggerContext:
    return TriggerContext(
        event_name="pull_request",
        ref="refs/pull/42/merge",
        repository="o/r",
        payload={
            "pull_request": {
                "number": 42,
                "title": "fix(auth): correct token refresh",
                "user": {"login": "dev"},
                "labels": [{"name": "bug"}],
            }
        },
    )


def publisher_for(client: MockGitHubClient, stream: io.StringIO, **overrides) -> Publisher:
    config = ActionConfig(github_token="t", **overrides)
    return Publisher(client, config, StepSummary(stream=stream))


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


class TestStepSummary:
    def test_appends_to_file(self, tmp_path: Path) -> None:
        path = tmp_path / "summary.md"
        path.write_text("existing\n")
        summary = StepSummary.from_env({"GITHUB_STEP_SUMMARY": str(path)})
        summary.write("## Notes")
        summary.write("more")
        assert path.read_text() == "existing\n## Notes\nmore\n"

    def test_stream_when_no_path(self, stream: io.StringIO) -> None:
        StepSummary(stream=stream).write("hello")
        assert stream.getvalue() == "hello\n"


# ---------------------------------------------------------------------------
# Release upsert
# ---------------------------------------------------------------------------


class TestUpsertRelease:
    @pytest.mark.asyncio
    async def test_creates_then_updates(self, client: MockGitHubClient) -> None:
        first = await upsert_release(client, "o/r", "v1.1", "body", draft=True)
        second = await upsert_release(client, "o/r", "v1.1", "body", draft=True)

        assert first.action == UpsertAction.CREATED
        assert second.action == UpsertAction.UPDATED
        assert len(client.releases) == 1
        assert client.releases["v1.1"]["name"] == "Release v1.1"

    @pytest.mark.asyncio
    async def test_update_changes_body_and_draft(self, client: MockGitHubClient) -> None:
        await upsert_release(client, "o/r", "v1.1", "old", draft=True)
        await upsert_release(client, "o/r", "v1.1", "new", draft=False)
        assert client.releases["v1.1"]["body"] == "new"
        assert client.releases["v1.1"]["draft"] is False


class TestPublishRelease:
    @pytest.mark.asyncio
    async def test_tag_push_writes_footer(self, client, stream, tag_push) -> None:
        result = await publisher_for(client, stream).publish_release(tag_push, "notes")
        assert result is not None and result.action == UpsertAction.CREATED
        assert "Draft release created: https://github.com/mock/repo/releases/tag/v1.1" in stream.getvalue()

    @pytest.mark.asyncio
    async def test_keyed_on_pushed_tag(self, client, stream) -> None:
        trigger = TriggerContext(event_name="push", ref="refs/tags/v0.1", repository="o/r")
        result = await publisher_for(client, stream).publish_release(trigger, "notes")
        assert result is not None and result.action == UpsertAction.CREATED
        assert list(client.releases) == ["v0.1"]
        assert "skipped" not in stream.getvalue()

    @pytest.mark.asyncio
    async def test_non_tag_run_is_skipped(self, client, stream) -> None:
        manual = TriggerContext(event_name="workflow_dispatch", repository="o/r")
        result = await publisher_for(client, stream).publish_release(manual, "notes")
        assert result is None
        assert client.releases == {}
        assert "Release creation skipped (not a tag push)." in stream.getvalue()

    @pytest.mark.asyncio
    async def test_disabled(self, client, stream, tag_push) -> None:
        result = await publisher_for(client, stream, create_release="false").publish_release(
            tag_push, "notes"
        )
        assert result is None
        assert stream.getvalue() == ""


# ---------------------------------------------------------------------------
# Preview comment
# ---------------------------------------------------------------------------


class TestPreviewComment:
    def test_body_has_marker_section_and_entry(self) -> None:
        record = ChangeRequestRecord(number=42, title="Add export", author="dev", labels=("feat",))
        body = render_preview_body(record, ClassifierConfig())
        assert PREVIEW_MARKER in body
        assert "This PR will appear in section: **Added**" in body
        assert "- Add export (#42) @dev" in body

    def test_body_mentions_exclusion(self) -> None:
        record = ChangeRequestRecord(number=42, title="Bump x", author="bot", labels=("deps",))
        body = render_preview_body(record, ClassifierConfig(ignore_deps=True))
        assert "left out of the release notes" in body

    @pytest.mark.asyncio
    async def test_single_comment_across_runs(self, client: MockGitHubClient) -> None:
        await client.create_comment("o/r", 42, "unrelated comment")
        first = await upsert_preview_comment(client, "o/r", 42, f"{PREVIEW_MARKER} v1")
        second = await upsert_preview_comment(client, "o/r", 42, f"{PREVIEW_MARKER} v2")

        assert first.action == UpsertAction.CREATED
        assert second.action == UpsertAction.UPDATED
        bodies = [c["body"] for c in client.comments[42]]
        assert bodies == ["unrelated comment", f"{PREVIEW_MARKER} v2"]

    @pytest.mark.asyncio
    async def test_marker_found_on_later_page(self, client: MockGitHubClient) -> None:
        for i in range(100):
            await client.create_comment("o/r", 7, f"comment {i}")
        await client.create_comment("o/r", 7, f"{PREVIEW_MARKER} old")

        result = await upsert_preview_comment(client, "o/r", 7, f"{PREVIEW_MARKER} new")

        assert result.action == UpsertAction.UPDATED
        assert len(client.comments[7]) == 101

    @pytest.mark.asyncio
    async def test_lookup_miss(self, client: MockGitHubClient) -> None:
        assert isinstance(await find_preview_comment(client, "o/r", 1), NotFound)

    @pytest.mark.asyncio
    async def test_publish_preview_on_pull_request(self, client, stream, pr_event) -> None:
        publisher = publisher_for(client, stream, preview_on_pr="true")
        result = await publisher.publish_preview(pr_event)
        assert result is not None and result.action == UpsertAction.CREATED
        assert "section: **Fixed**" in client.comments[42][0]["body"]

    @pytest.mark.asyncio
    async def test_publish_preview_disabled(self, client, stream, pr_event) -> None:
        assert await publisher_for(client, stream).publish_preview(pr_event) is None
        assert client.comments == {}

    @pytest.mark.asyncio
    async def test_publish_preview_only_on_pull_request(self, client, stream, tag_push) -> None:
        publisher = publisher_for(client, stream, preview_on_pr="true")
        assert await publisher.publish_preview(tag_push) is None
