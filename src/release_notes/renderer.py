"""Markdown rendering for release notes.

``build_document`` decides the title, range line and compare link from the
trigger and window; ``render_markdown`` turns the document into the final
string. Output depends only on the inputs, so rendering the same buckets
twice gives byte-identical text (which keeps release and comment updates
no-ops when nothing changed).
"""

from __future__ import annotations

from release_notes.schemas import (
    ChangeRequestRecord,
    ReleaseDocument,
    ReleaseWindow,
    SectionBuckets,
    TriggerContext,
)
from release_notes.utils import escape_md

UNRELEASED_TITLE = "Release notes (unreleased)"
EMPTY_PLACEHOLDER = "_No merged PRs found in this range._"


def format_line(record: ChangeRequestRecord) -> str:
    return f"- {escape_md(record.title)} (#{record.number}) @{record.author}"


def build_title(trigger: TriggerContext) -> str:
    if trigger.pushed_tag:
        return f"Release {trigger.pushed_tag}"
    return UNRELEASED_TITLE


def build_range_line(window: ReleaseWindow) -> str:
    if window.current_tag and window.previous_tag:
        return f"From **{window.previous_tag}** to **{window.current_tag}**"
    if window.current_tag:
        return f"Since tag **{window.current_tag}**"
    return f"Since **{window.baseline_timestamp}**"


def build_compare_link(trigger: TriggerContext, window: ReleaseWindow) -> str | None:
    if not (window.current_tag and window.previous_tag):
        return None
    server = trigger.server_url.rstrip("/")
    return (
        f"{server}/{trigger.repository}/compare/"
        f"{window.previous_tag}...{window.current_tag}"
    )


def build_document(
    trigger: TriggerContext, window: ReleaseWindow, buckets: SectionBuckets
) -> ReleaseDocument:
    return ReleaseDocument(
        title=build_title(trigger),
        range_line=build_range_line(window),
        sections=buckets.non_empty(),
        compare_link=build_compare_link(trigger, window),
    )


def render_markdown(document: ReleaseDocument) -> str:
    """Render the document.

    Layout:
        ## <title>

        <range line>
        [Full diff](<compare link>)      (only with both tags)

        ### <Section>                    (non-empty sections, in order)
        - <title> (#<number>) @<author>

    An empty document gets a placeholder sentence instead of sections.
    """
    parts = [f"## {document.title}\n\n{document.range_line}\n"]
    if document.compare_link:
        parts.append(f"[Full diff]({document.compare_link})\n")
    parts.append("\n")

    for name, records in document.sections:
        parts.append(f"### {name}\n")
        parts.extend(f"{format_line(record)}\n" for record in records)
        parts.append("\n")

    if not document.sections:
        parts.append(f"{EMPTY_PLACEHOLDER}\n")

    return "".join(parts)
