"""GitHub REST API client for the release notes pipeline.

Exposes only the calls the pipeline needs:
- tags: list tags (one page at a time), get ref, get annotated tag, get commit
- pull requests: issue search (one page at a time)
- releases: get by tag, create, update
- comments: list (one page at a time), create, update

Design notes:
- Uses httpx for async HTTP requests
- Pagination loops live in the callers (context/tags.py, context/pulls.py),
  which know their caps; the client fetches single pages
- HTTP errors propagate as httpx.HTTPStatusError, except the release
  lookup, which reports a miss as NotFound so upserts can branch on it
- Uses a Protocol so the pipeline doesn't depend on the concrete
  implementation (tests use MockGitHubClient)

GitHub API docs: https://docs.github.com/en/rest
"""

from __future__ import annotations

import itertools
import os
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from release_notes.logging_config import get_logger
from release_notes.schemas import Found, Lookup, NotFound

logger = get_logger(__name__)

PAGE_SIZE = 100

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitHubClientProtocol(Protocol):
    """Interface the pipeline codes against.

    ``repo`` is always "owner/name". Return values are the decoded JSON
    bodies GitHub sends back.
    """

    async def list_tags(self, repo: str, page: int, per_page: int = PAGE_SIZE) -> list[dict]: ...

    async def get_ref(self, repo: str, ref: str) -> dict: ...

    async def get_tag_object(self, repo: str, sha: str) -> dict: ...

    async def get_commit(self, repo: str, ref: str) -> dict: ...

    async def search_issues(
        self,
        query: str,
        page: int,
        per_page: int = PAGE_SIZE,
        sort: str = "updated",
        order: str = "desc",
    ) -> dict: ...

    async def get_release_by_tag(self, repo: str, tag: str) -> Lookup: ...

    async def create_release(
        self, repo: str, *, tag_name: str, name: str, body: str, draft: bool
    ) -> dict: ...

    async def update_release(
        self, repo: str, release_id: int, *, body: str, draft: bool
    ) -> dict: ...

    async def list_comments(
        self, repo: str, issue_number: int, page: int, per_page: int = PAGE_SIZE
    ) -> list[dict]: ...

    async def create_comment(self, repo: str, issue_number: int, body: str) -> dict: ...

    async def update_comment(self, repo: str, comment_id: int, body: str) -> dict: ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        client = GitHubClient(token="ghp_...")
        tags = await client.list_tags("myorg/api", page=1)
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub token. Falls back to GITHUB_TOKEN if not provided.
            base_url: REST root. Falls back to GITHUB_API_URL (set on GitHub
                      Enterprise runners), then api.github.com.
            transport: Custom httpx transport (tests pass httpx.MockTransport)
            timeout: Per-request timeout in seconds
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._base_url = base_url or os.environ.get("GITHUB_API_URL") or self.BASE_URL
        self._transport = transport
        self._timeout = timeout
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            resp = await client.request(method, url, params=params, json=json)
            resp.raise_for_status()
            return resp.json()

    # -- tags ---------------------------------------------------------------

    async def list_tags(self, repo: str, page: int, per_page: int = PAGE_SIZE) -> list[dict]:
        return await self._request(
            "GET", f"/repos/{repo}/tags", params={"per_page": per_page, "page": page}
        )

    async def get_ref(self, repo: str, ref: str) -> dict:
        """GET /repos/{repo}/git/ref/{ref}, e.g. ref="tags/v1.0.0"."""
        return await self._request("GET", f"/repos/{repo}/git/ref/{quote(ref)}")

    async def get_tag_object(self, repo: str, sha: str) -> dict:
        return await self._request("GET", f"/repos/{repo}/git/tags/{sha}")

    async def get_commit(self, repo: str, ref: str) -> dict:
        return await self._request("GET", f"/repos/{repo}/commits/{quote(ref)}")

    # -- search -------------------------------------------------------------

    async def search_issues(
        self,
        query: str,
        page: int,
        per_page: int = PAGE_SIZE,
        sort: str = "updated",
        order: str = "desc",
    ) -> dict:
        return await self._request(
            "GET",
            "/search/issues",
            params={"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )

    # -- releases -----------------------------------------------------------

    async def get_release_by_tag(self, repo: str, tag: str) -> Lookup:
        """Look up a release; any HTTP error status counts as a miss.

        Transport errors (DNS, timeouts) still propagate.
        """
        try:
            data = await self._request(
                "GET", f"/repos/{repo}/releases/tags/{quote(tag, safe='')}"
            )
        except httpx.HTTPStatusError as exc:
            logger.debug(
                "release_lookup_miss", tag=tag, status=exc.response.status_code
            )
            return NotFound(reason=f"HTTP {exc.response.status_code}")
        return Found(data)

    async def create_release(
        self, repo: str, *, tag_name: str, name: str, body: str, draft: bool
    ) -> dict:
        return await self._request(
            "POST",
            f"/repos/{repo}/releases",
            json={"tag_name": tag_name, "name": name, "body": body, "draft": draft},
        )

    async def update_release(
        self, repo: str, release_id: int, *, body: str, draft: bool
    ) -> dict:
        return await self._request(
            "PATCH",
            f"/repos/{repo}/releases/{release_id}",
            json={"body": body, "draft": draft},
        )

    # -- comments -----------------------------------------------------------

    async def list_comments(
        self, repo: str, issue_number: int, page: int, per_page: int = PAGE_SIZE
    ) -> list[dict]:
        return await self._request(
            "GET",
            f"/repos/{repo}/issues/{issue_number}/comments",
            params={"per_page": per_page, "page": page},
        )

    async def create_comment(self, repo: str, issue_number: int, body: str) -> dict:
        return await self._request(
            "POST", f"/repos/{repo}/issues/{issue_number}/comments", json={"body": body}
        )

    async def update_comment(self, repo: str, comment_id: int, body: str) -> dict:
        return await self._request(
            "PATCH", f"/repos/{repo}/issues/comments/{comment_id}", json={"body": body}
        )


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockGitHubClient:
    """In-memory stand-in for GitHubClient.

    Holds tags, commits, search results, releases and comments in plain
    dicts and serves them with the same shapes (and page semantics) as the
    REST API. Releases and comments persist across calls, so running the
    publisher twice against one instance shows what a second run would see.

    Usage:
        client = MockGitHubClient()
        client.add_tag("v1.0", "2024-01-01T00:00:00Z")
        client.add_pull_request(12, "fix: x", labels=["bug"])
    """

    def __init__(
        self,
        search_items: list[dict] | None = None,
        html_url: str = "https://github.com/mock/repo",
    ) -> None:
        self.tags: list[dict] = []
        self.refs: dict[str, dict] = {}
        self.tag_objects: dict[str, dict] = {}
        self.commits: dict[str, dict] = {}
        self.search_items: list[dict] = list(search_items or [])
        self.releases: dict[str, dict] = {}
        self.comments: dict[int, list[dict]] = {}
        self.queries: list[str] = []
        self.calls: list[str] = []
        self._html_url = html_url
        self._ids = itertools.count(1)

    # -- setup helpers ------------------------------------------------------

    def add_tag(
        self,
        name: str,
        committer_date: str | None = None,
        *,
        annotated: bool = False,
        author_date: str | None = None,
    ) -> None:
        """Append a tag (so add newest first) pointing at a fresh commit."""
        commit_sha = f"c{len(self.tags) + 1:039d}"
        commit: dict[str, Any] = {}
        if committer_date:
            commit["committer"] = {"date": committer_date}
        if author_date:
            commit["author"] = {"date": author_date}
        self.commits[commit_sha] = {"sha": commit_sha, "commit": commit}
        self.tags.append({"name": name, "commit": {"sha": commit_sha}})

        if annotated:
            tag_sha = f"t{len(self.tags):039d}"
            self.tag_objects[tag_sha] = {
                "sha": tag_sha,
                "tag": name,
                "object": {"sha": commit_sha, "type": "commit"},
            }
            self.refs[name] = {"ref": f"refs/tags/{name}", "object": {"sha": tag_sha, "type": "tag"}}
        else:
            self.refs[name] = {
                "ref": f"refs/tags/{name}",
                "object": {"sha": commit_sha, "type": "commit"},
            }

    def add_pull_request(
        self,
        number: int,
        title: str,
        labels: list[Any] | None = None,
        author: str | None = "octocat",
    ) -> None:
        item: dict[str, Any] = {
            "number": number,
            "title": title,
            "labels": [
                label if isinstance(label, dict) else {"name": label} for label in labels or []
            ],
            "pull_request": {},
        }
        item["user"] = {"login": author} if author else None
        self.search_items.append(item)

    # -- protocol -----------------------------------------------------------

    async def list_tags(self, repo: str, page: int, per_page: int = PAGE_SIZE) -> list[dict]:
        self.calls.append(f"list_tags:{page}")
        start = (page - 1) * per_page
        return self.tags[start : start + per_page]

    async def get_ref(self, repo: str, ref: str) -> dict:
        self.calls.append(f"get_ref:{ref}")
        name = ref.removeprefix("tags/")
        if name not in self.refs:
            raise _http_error("GET", f"/repos/{repo}/git/ref/{ref}", 404)
        return self.refs[name]

    async def get_tag_object(self, repo: str, sha: str) -> dict:
        self.calls.append(f"get_tag_object:{sha}")
        if sha not in self.tag_objects:
            raise _http_error("GET", f"/repos/{repo}/git/tags/{sha}", 404)
        return self.tag_objects[sha]

    async def get_commit(self, repo: str, ref: str) -> dict:
        self.calls.append(f"get_commit:{ref}")
        if ref not in self.commits:
            raise _http_error("GET", f"/repos/{repo}/commits/{ref}", 422)
        return self.commits[ref]

    async def search_issues(
        self,
        query: str,
        page: int,
        per_page: int = PAGE_SIZE,
        sort: str = "updated",
        order: str = "desc",
    ) -> dict:
        self.queries.append(query)
        start = (page - 1) * per_page
        items = self.search_items[start : start + per_page]
        return {"total_count": len(self.search_items), "items": items}

    async def get_release_by_tag(self, repo: str, tag: str) -> Lookup:
        self.calls.append(f"get_release_by_tag:{tag}")
        if tag in self.releases:
            return Found(self.releases[tag])
        return NotFound(reason="HTTP 404")

    async def create_release(
        self, repo: str, *, tag_name: str, name: str, body: str, draft: bool
    ) -> dict:
        self.calls.append(f"create_release:{tag_name}")
        release_id = next(self._ids)
        release = {
            "id": release_id,
            "tag_name": tag_name,
            "name": name,
            "body": body,
            "draft": draft,
            "html_url": f"{self._html_url}/releases/tag/{tag_name}",
        }
        self.releases[tag_name] = release
        return release

    async def update_release(
        self, repo: str, release_id: int, *, body: str, draft: bool
    ) -> dict:
        self.calls.append(f"update_release:{release_id}")
        for release in self.releases.values():
            if release["id"] == release_id:
                release.update(body=body, draft=draft)
                return release
        raise _http_error("PATCH", f"/repos/{repo}/releases/{release_id}", 404)

    async def list_comments(
        self, repo: str, issue_number: int, page: int, per_page: int = PAGE_SIZE
    ) -> list[dict]:
        start = (page - 1) * per_page
        return self.comments.get(issue_number, [])[start : start + per_page]

    async def create_comment(self, repo: str, issue_number: int, body: str) -> dict:
        self.calls.append(f"create_comment:{issue_number}")
        comment_id = next(self._ids)
        comment = {
            "id": comment_id,
            "body": body,
            "html_url": f"{self._html_url}/pull/{issue_number}#issuecomment-{comment_id}",
        }
        self.comments.setdefault(issue_number, []).append(comment)
        return comment

    async def update_comment(self, repo: str, comment_id: int, body: str) -> dict:
        self.calls.append(f"update_comment:{comment_id}")
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    comment["body"] = body
                    return comment
        raise _http_error("PATCH", f"/repos/{repo}/issues/comments/{comment_id}", 404)


def _http_error(method: str, url: str, status: int) -> httpx.HTTPStatusError:
    request = httpx.Request(method, f"{GitHubClient.BASE_URL}{url}")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)
