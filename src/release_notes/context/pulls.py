"""Merged pull request collection via the issue search API.

The search query restricts results to merged PRs into the base branch that
merged strictly after the baseline. Search ordering is only used to page;
the returned records are sorted by PR number so the rendered notes don't
depend on it.
"""

from __future__ import annotations

from typing import Any

from release_notes.context.github import PAGE_SIZE, GitHubClientProtocol
from release_notes.logging_config import get_logger
from release_notes.schemas import ChangeRequestRecord

logger = get_logger(__name__)


def build_search_query(repo: str, base_branch: str, merged_after: str) -> str:
    return f"repo:{repo} is:pr is:merged base:{base_branch} merged:>{merged_after}"


def normalize_labels(raw: Any) -> tuple[str, ...]:
    """Labels arrive as strings or {"name": ...} objects; keep the names."""
    if not isinstance(raw, list):
        return ()
    names = (label if isinstance(label, str) else (label or {}).get("name") for label in raw)
    return tuple(str(name) for name in names if name)


def normalize_item(item: dict) -> ChangeRequestRecord:
    user = item.get("user") or {}
    return ChangeRequestRecord(
        number=item["number"],
        title=item.get("title") or "",
        author=user.get("login") or "unknown",
        labels=normalize_labels(item.get("labels")),
    )


async def search_merged_pull_requests(
    client: GitHubClientProtocol,
    repo: str,
    base_branch: str,
    merged_after: str,
    max_count: int,
    per_page: int = PAGE_SIZE,
) -> list[ChangeRequestRecord]:
    """Collect up to ``max_count`` merged PRs, sorted ascending by number.

    Args:
        client: GitHub client
        repo: "owner/name"
        base_branch: Target branch the PRs merged into
        merged_after: ISO timestamp; only PRs merged strictly after it
        max_count: Cap on records returned
        per_page: Search page size

    Raises:
        httpx.HTTPStatusError: If the search API fails
    """
    query = build_search_query(repo, base_branch, merged_after)
    records: list[ChangeRequestRecord] = []
    page = 1

    while len(records) < max_count:
        data = await client.search_issues(query, page=page, per_page=per_page)
        items = data.get("items") or []
        if not items:
            break

        for item in items:
            records.append(normalize_item(item))
            if len(records) >= max_count:
                break

        if len(items) < per_page:
            break
        page += 1

    records.sort(key=lambda record: record.number)
    logger.info("pull_requests_collected", query=query, count=len(records), pages=page)
    return records
