"""Pipeline orchestrator for release notes.

Ties the stages together, in order:
1. Resolve the release window from tag history (window.py)
2. Collect merged pull requests after the baseline (context/pulls.py)
3. Classify them into sections (classifier.py)
4. Render the markdown (renderer.py)
5. Publish: summary, then release, then preview comment (publisher.py)

Every network call is awaited in sequence. Any error aborts the run; what
was already published stays published.

This module is also the CLI entry point used by the GitHub Action.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime

from release_notes.classifier import bucket_records
from release_notes.config import ActionConfig, load_config
from release_notes.context.github import GitHubClient, GitHubClientProtocol
from release_notes.context.pulls import search_merged_pull_requests
from release_notes.errors import ConfigurationError
from release_notes.logging_config import escape_workflow_data, get_logger, setup_logging
from release_notes.publisher import Publisher, StepSummary
from release_notes.renderer import build_document, render_markdown
from release_notes.schemas import PipelineResult, TriggerContext
from release_notes.window import resolve_release_window

logger = get_logger(__name__)


class ReleaseNotesPipeline:
    """Runs one release-notes pass for a trigger.

    Stateless between runs: anything that must survive a run lives in
    GitHub (the release, the preview comment).

    Usage:
        pipeline = ReleaseNotesPipeline(client, config)
        result = await pipeline.run(TriggerContext.from_env())
    """

    def __init__(
        self,
        client: GitHubClientProtocol,
        config: ActionConfig,
        summary: StepSummary | None = None,
        now: datetime | None = None,
    ) -> None:
        """Initialize the pipeline with its collaborators.

        Args:
            client: Authenticated GitHub client
            config: Validated action configuration
            summary: Summary sink; defaults to $GITHUB_STEP_SUMMARY / stdout
            now: Clock override for the lookback baseline
        """
        self.client = client
        self.config = config
        self.publisher = Publisher(client, config, summary or StepSummary.from_env())
        self._now = now

    async def run(self, trigger: TriggerContext, dry_run: bool = False) -> PipelineResult:
        """Build and publish release notes.

        Args:
            trigger: What started the run
            dry_run: Only write the summary; skip the release and the comment

        Returns:
            The window, the rendered markdown and what each upsert did

        Raises:
            ResolutionError: If a tag needed for the window has no commit date
            httpx.HTTPError: If a GitHub call fails
        """
        logger.info(
            "run_started",
            repo=trigger.repository,
            event_name=trigger.event_name,
            ref=trigger.ref,
            base_branch=self.config.base_branch,
            dry_run=dry_run,
        )
        try:
            window = await resolve_release_window(
                self.client,
                trigger,
                lookback_days=self.config.since_days,
                max_tags=self.config.max_tags,
                now=self._now,
            )
            records = await search_merged_pull_requests(
                self.client,
                trigger.repository,
                self.config.base_branch,
                window.baseline_timestamp,
                self.config.max_prs,
            )
            buckets = bucket_records(records, self.config.classifier_config())
            markdown = render_markdown(build_document(trigger, window, buckets))

            self.publisher.publish_summary(markdown)

            release = preview = None
            if not dry_run:
                release = await self.publisher.publish_release(trigger, markdown)
                preview = await self.publisher.publish_preview(trigger)

            logger.info(
                "run_complete",
                repo=trigger.repository,
                collected=len(records),
                published=buckets.total,
                release=release.action.value if release else None,
                preview=preview.action.value if preview else None,
            )
            return PipelineResult(
                window=window,
                markdown=markdown,
                record_count=buckets.total,
                release=release,
                preview=preview,
            )
        except Exception as e:
            logger.error(
                "run_failed",
                repo=trigger.repository,
                error=str(e),
                exc_info=True,
            )
            raise


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point, run by the action.

    Usage:
        release-notes
        release-notes --dry-run --config-file .github/release-notes.yml

    Reads inputs from INPUT_* and the trigger from GITHUB_* variables.
    On failure prints one ``::error::`` line and returns 1.
    """
    parser = argparse.ArgumentParser(description="Compose release notes from merged PRs")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write the summary only; don't touch releases or comments",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        default=None,
        help="YAML config file (default: .github/release-notes.yml)",
    )
    args = parser.parse_args(argv)

    setup_logging()

    try:
        config = load_config(config_file=args.config_file)
        trigger = TriggerContext.from_env()
        if not trigger.repository:
            raise ConfigurationError("GITHUB_REPOSITORY is not set")

        pipeline = ReleaseNotesPipeline(GitHubClient(token=config.github_token), config)
        asyncio.run(pipeline.run(trigger, dry_run=args.dry_run))
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        print(f"::error::{escape_workflow_data(message)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
