"""End-to-end tests for the pipeline orchestrator and the CLI entry point.

Run with: pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from release_notes.config import ActionConfig
from release_notes.context.github import MockGitHubClient
from release_notes.errors import ResolutionError
from release_notes.pipeline import ReleaseNotesPipeline, main
from release_notes.publisher import StepSummary
from release_notes.schemas import TriggerContext, UpsertAction

NOW = datetime(2024, 6, 30, 0, 0, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> MockGitHubClient:
    client = MockGitHubClient()
    client.add_tag("v1.1", "2024-06-01T00:00:00Z")
    client.add_tag("v1.0", "2024-05-01T00:00:00Z", annotated=True)
    client.add_pull_request(12, "Handle empty config", labels=["bug"], author="ann")
    client.add_pull_request(11, "Add export", labels=[{"name": "feat"}], author="bo")
    return client


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def tag_push() -> TriggerContext:
    return TriggerContext(
        event_name="push", ref="refs/tags/v1.1", ref_type="tag", ref_name="v1.1", repository="acme/app"
    )


@pytest.fixture
def manual() -> TriggerContext:
    return TriggerContext(event_name="workflow_dispatch", ref="refs/heads/main", repository="acme/app")


def make_pipeline(client: MockGitHubClient, stream: io.StringIO, **overrides) -> ReleaseNotesPipeline:
    config = ActionConfig(github_token="t", **overrides)
    return ReleaseNotesPipeline(client, config, StepSummary(stream=stream), now=NOW)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestTagPushScenario:
    @pytest.mark.asyncio
    async def test_window_sections_and_compare_link(self, client, stream, tag_push) -> None:
        result = await make_pipeline(client, stream).run(tag_push)

        assert result.window.current_tag == "v1.1"
        assert result.window.previous_tag == "v1.0"
        assert result.window.baseline_timestamp == "2024-05-01T00:00:00Z"
        assert "### Fixed\n- Handle empty config (#12) @ann\n" in result.markdown
        assert "### Added\n- Add export (#11) @bo\n" in result.markdown
        assert "compare/v1.0...v1.1" in result.markdown
        assert result.record_count == 2
        assert client.queries == [
            "repo:acme/app is:pr is:merged base:main merged:>2024-05-01T00:00:00Z"
        ]

    @pytest.mark.asyncio
    async def test_run_started_log_carries_trigger(self, client, stream, tag_push) -> None:
        with capture_logs() as logs:
            await make_pipeline(client, stream).run(tag_push)

        started = next(entry for entry in logs if entry["event"] == "run_started")
        assert started["event_name"] == "push"
        assert started["repo"] == "acme/app"

    @pytest.mark.asyncio
    async def test_summary_written_before_release(self, client, stream, tag_push) -> None:
        result = await make_pipeline(client, stream).run(tag_push)

        summary = stream.getvalue()
        assert summary.startswith(result.markdown)
        assert "Draft release created" in summary
        assert client.releases["v1.1"]["body"] == result.markdown

    @pytest.mark.asyncio
    async def test_second_run_updates_the_same_release(self, client, tag_push) -> None:
        first = await make_pipeline(client, io.StringIO()).run(tag_push)
        second = await make_pipeline(client, io.StringIO()).run(tag_push)

        assert first.release.action == UpsertAction.CREATED
        assert second.release.action == UpsertAction.UPDATED
        assert len(client.releases) == 1
        assert first.markdown == second.markdown

    @pytest.mark.asyncio
    async def test_dry_run_skips_release(self, client, stream, tag_push) -> None:
        result = await make_pipeline(client, stream).run(tag_push, dry_run=True)
        assert result.release is None
        assert client.releases == {}
        assert stream.getvalue() == f"{result.markdown}\n"


class TestPushedTagMissingFromHistory:
    @pytest.mark.asyncio
    async def test_release_goes_to_pushed_tag(self, client, stream) -> None:
        await client.create_release(
            "acme/app", tag_name="v1.1", name="Release v1.1", body="PUBLISHED NOTES", draft=False
        )
        push_v20 = TriggerContext(event_name="push", ref="refs/tags/v2.0", repository="acme/app")

        result = await make_pipeline(client, stream).run(push_v20)

        assert result.window.current_tag == "v1.1"
        assert result.release.action == UpsertAction.CREATED
        assert client.releases["v1.1"]["body"] == "PUBLISHED NOTES"
        assert client.releases["v1.1"]["draft"] is False
        assert client.releases["v2.0"]["name"] == "Release v2.0"
        assert result.markdown.startswith("## Release v2.0\n")

    @pytest.mark.asyncio
    async def test_empty_history_still_publishes(self, stream) -> None:
        client = MockGitHubClient()
        push_v01 = TriggerContext(event_name="push", ref="refs/tags/v0.1", repository="acme/app")

        result = await make_pipeline(client, stream).run(push_v01)

        assert result.release is not None
        assert list(client.releases) == ["v0.1"]
        assert "not a tag push" not in stream.getvalue()


class TestManualScenarios:
    @pytest.mark.asyncio
    async def test_no_tags_uses_lookback(self, stream, manual) -> None:
        client = MockGitHubClient()

        result = await make_pipeline(client, stream, since_days="14").run(manual)

        assert result.window.current_tag is None
        assert result.window.baseline_timestamp == "2024-06-16T00:00:00Z"
        assert "Since **2024-06-16T00:00:00Z**" in result.markdown
        assert "_No merged PRs found in this range._" in result.markdown
        assert result.release is None

    @pytest.mark.asyncio
    async def test_dependency_only_pr_is_dropped(self, stream, manual) -> None:
        client = MockGitHubClient()
        client.add_pull_request(5, "Bump httpx", labels=["dependencies"], author="dependabot")
        client.add_pull_request(6, "Fix race", labels=["bug"])

        result = await make_pipeline(client, stream, ignore_deps="true").run(manual)

        assert "Bump httpx" not in result.markdown
        assert "### Changed" not in result.markdown
        assert result.record_count == 1

    @pytest.mark.asyncio
    async def test_conventional_title_fallback(self, stream, manual) -> None:
        client = MockGitHubClient()
        client.add_pull_request(8, "fix(auth): correct token refresh")

        result = await make_pipeline(client, stream, use_conventional_commits="true").run(manual)

        assert "### Fixed\n- fix(auth): correct token refresh (#8) @octocat\n" in result.markdown


class TestFailures:
    @pytest.mark.asyncio
    async def test_unresolvable_tag_aborts_before_publishing(self, stream, tag_push) -> None:
        client = MockGitHubClient()
        client.add_tag("v1.1", "2024-06-01T00:00:00Z")
        client.add_tag("v1.0")  # no commit date

        with pytest.raises(ResolutionError):
            await make_pipeline(client, stream).run(tag_push)

        assert stream.getvalue() == ""
        assert client.releases == {}


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def action_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Environment of a workflow_dispatch run; returns the summary path."""
    # Global structlog config would outlive the test's captured streams.
    monkeypatch.setattr("release_notes.pipeline.setup_logging", lambda: None)
    monkeypatch.chdir(tmp_path)
    event_path = tmp_path / "event.json"
    event_path.write_text(json.dumps({"inputs": {}}))
    summary_path = tmp_path / "summary.md"
    for key, value in {
        "INPUT_GITHUB_TOKEN": "t",
        "GITHUB_REPOSITORY": "acme/app",
        "GITHUB_EVENT_NAME": "workflow_dispatch",
        "GITHUB_REF": "refs/heads/main",
        "GITHUB_EVENT_PATH": str(event_path),
        "GITHUB_STEP_SUMMARY": str(summary_path),
    }.items():
        monkeypatch.setenv(key, value)
    return summary_path


class TestCLI:
    def test_successful_run_writes_summary(self, action_env: Path, client: MockGitHubClient) -> None:
        with patch("release_notes.pipeline.GitHubClient", return_value=client):
            exit_code = main([])

        assert exit_code == 0
        summary = action_env.read_text()
        assert summary.startswith("## Release notes (unreleased)")
        assert "From **v1.0** to **v1.1**" in summary

    def test_missing_token_reports_single_error(
        self, action_env: Path, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        monkeypatch.delenv("INPUT_GITHUB_TOKEN")
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        assert main([]) == 1

        errors = [line for line in capsys.readouterr().out.splitlines() if line.startswith("::error::")]
        assert errors == ["::error::Input required and not supplied: github_token"]
