"""Tag history for release-window resolution.

Two operations:
- ``list_tags`` pages through the repository's tags, newest first as GitHub
  returns them, stopping at a cap or at the end of history.
- ``resolve_tag_timestamp`` follows refs/tags/<name> to a commit (through an
  annotated tag object when there is one) and returns its date.
"""

from __future__ import annotations

from release_notes.context.github import PAGE_SIZE, GitHubClientProtocol
from release_notes.errors import ResolutionError
from release_notes.logging_config import get_logger
from release_notes.schemas import ObjectType, Tag

logger = get_logger(__name__)

DEFAULT_MAX_TAGS = 200


async def list_tags(
    client: GitHubClientProtocol,
    repo: str,
    max_tags: int = DEFAULT_MAX_TAGS,
    per_page: int = PAGE_SIZE,
) -> list[Tag]:
    """Fetch up to ``max_tags`` tags in platform order (not re-sorted).

    A page shorter than ``per_page`` marks the end of history.
    """
    tags: list[Tag] = []
    page = 1
    while len(tags) < max_tags:
        data = await client.list_tags(repo, page=page, per_page=per_page)
        if not data:
            break
        tags.extend(
            Tag(
                name=item["name"],
                object_sha=(item.get("commit") or {}).get("sha", ""),
                object_type=ObjectType.COMMIT,
            )
            for item in data
        )
        if len(data) < per_page:
            break
        page += 1

    logger.debug("tags_listed", repo=repo, count=min(len(tags), max_tags), pages=page)
    return tags[:max_tags]


def _commit_date(commit: dict) -> str | None:
    details = commit.get("commit") or {}
    committer = details.get("committer") or {}
    author = details.get("author") or {}
    return committer.get("date") or author.get("date")


async def resolve_tag_timestamp(
    client: GitHubClientProtocol, repo: str, tag_name: str
) -> str:
    """Return the commit date behind a tag.

    Lightweight tags point straight at a commit. Annotated tags point at a
    tag object, which is dereferenced once to reach its target. The
    committer date is preferred; the author date is the fallback.

    Raises:
        ResolutionError: If the commit carries neither date.
        httpx.HTTPStatusError: If any lookup fails.
    """
    ref = await client.get_ref(repo, f"tags/{tag_name}")
    target = ref.get("object") or {}
    sha, kind = target.get("sha", ""), target.get("type", "")

    if kind == ObjectType.TAG:
        tag_object = await client.get_tag_object(repo, sha)
        target = tag_object.get("object") or {}
        sha, kind = target.get("sha", ""), target.get("type", "")

    if kind != ObjectType.COMMIT:
        logger.debug("tag_target_not_commit", tag=tag_name, type=kind, sha=sha)

    if not sha:
        raise ResolutionError(tag_name, "reference has no target object")

    commit = await client.get_commit(repo, sha)
    date = _commit_date(commit)
    if not date:
        raise ResolutionError(tag_name)
    return date
