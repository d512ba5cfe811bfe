"""Pydantic models for the data flowing through the release notes pipeline.

Each stage builds and returns its own value; nothing downstream mutates an
upstream stage's output:

    TriggerContext + [Tag]  -> ReleaseWindow          (window.py)
    ReleaseWindow           -> [ChangeRequestRecord]  (context/pulls.py)
    [ChangeRequestRecord]   -> SectionBuckets         (classifier.py)
    SectionBuckets          -> ReleaseDocument        (renderer.py)
    ReleaseDocument         -> UpsertResult(s)        (publisher.py)
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

# Canonical rendering order. Extra sections from a custom section map are
# appended after these.
CANONICAL_SECTIONS: tuple[str, ...] = ("Added", "Fixed", "Changed", "Docs", "Other")
DEFAULT_SECTION = "Other"

TAG_REF_PREFIX = "refs/tags/"
BRANCH_REF_PREFIX = "refs/heads/"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ObjectType(StrEnum):
    """Git object a ref points at."""

    COMMIT = "commit"
    TAG = "tag"


class UpsertAction(StrEnum):
    """What an idempotent publish did."""

    CREATED = "created"
    UPDATED = "updated"


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------


class TriggerContext(BaseModel):
    """What started this run.

    Attributes:
        event_name: GitHub event name ("push", "pull_request",
                    "workflow_dispatch", ...)
        ref: Full ref, e.g. "refs/tags/v1.2.0"
        ref_type: "tag" or "branch" when GitHub provides it
        ref_name: Short ref name, e.g. "v1.2.0"
        repository: "owner/name"
        payload: Raw event payload
        server_url: Web URL used for compare links
    """

    event_name: str = ""
    ref: str = ""
    ref_type: str = ""
    ref_name: str = ""
    repository: str = Field(..., description="Repository in 'owner/name' format")
    payload: dict[str, Any] = Field(default_factory=dict)
    server_url: str = "https://github.com"

    @property
    def is_tag_push(self) -> bool:
        return self.event_name == "push" and (
            self.ref_type == "tag" or self.ref.startswith(TAG_REF_PREFIX)
        )

    @property
    def pushed_tag(self) -> str | None:
        if not self.is_tag_push:
            return None
        return self.ref_name or self.ref.removeprefix(TAG_REF_PREFIX) or None

    @property
    def pull_request(self) -> dict[str, Any] | None:
        pr = self.payload.get("pull_request")
        return pr if isinstance(pr, dict) else None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[-1]

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TriggerContext:
        """Build the context from the variables GitHub Actions exports."""
        env = os.environ if environ is None else environ

        payload: dict[str, Any] = {}
        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).is_file():
            payload = json.loads(Path(event_path).read_text(encoding="utf-8")) or {}

        return cls(
            event_name=env.get("GITHUB_EVENT_NAME", ""),
            ref=env.get("GITHUB_REF", ""),
            ref_type=env.get("GITHUB_REF_TYPE", ""),
            ref_name=env.get("GITHUB_REF_NAME", ""),
            repository=env.get("GITHUB_REPOSITORY", ""),
            payload=payload,
            server_url=env.get("GITHUB_SERVER_URL", "https://github.com"),
        )

    @classmethod
    def from_webhook(
        cls,
        event_name: str,
        payload: dict[str, Any],
        server_url: str = "https://github.com",
    ) -> TriggerContext:
        """Build the context from a webhook delivery.

        Webhooks don't carry ref_type/ref_name, so they're derived from
        the full ref.
        """
        ref = payload.get("ref") or ""
        if ref.startswith(TAG_REF_PREFIX):
            ref_type, ref_name = "tag", ref.removeprefix(TAG_REF_PREFIX)
        elif ref.startswith(BRANCH_REF_PREFIX):
            ref_type, ref_name = "branch", ref.removeprefix(BRANCH_REF_PREFIX)
        else:
            ref_type, ref_name = "", ref

        repository = (payload.get("repository") or {}).get("full_name", "")
        return cls(
            event_name=event_name,
            ref=ref,
            ref_type=ref_type,
            ref_name=ref_name,
            repository=repository,
            payload=payload,
            server_url=server_url,
        )


# ---------------------------------------------------------------------------
# Release window
# ---------------------------------------------------------------------------


class Tag(BaseModel):
    """A tag as listed by the platform (newest first)."""

    model_config = ConfigDict(frozen=True)

    name: str
    object_sha: str = ""
    object_type: ObjectType = ObjectType.COMMIT


class ReleaseWindow(BaseModel):
    """The comparison boundary for a run.

    ``baseline_timestamp`` is always set. ``previous_tag`` is only set when
    the window was derived from two or more tags.
    """

    model_config = ConfigDict(frozen=True)

    current_tag: str | None = None
    previous_tag: str | None = None
    baseline_timestamp: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Change requests and sections
# ---------------------------------------------------------------------------


class ChangeRequestRecord(BaseModel):
    """A merged pull request, normalized from a search result item."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0)
    title: str = ""
    author: str = "unknown"
    labels: tuple[str, ...] = ()


class SectionBuckets(BaseModel):
    """Section name -> records, in rendering order.

    Created with the canonical sections (plus any extra ones) already in
    place so that dict order is rendering order. Sections first seen through
    ``add`` are appended at the end.
    """

    sections: dict[str, list[ChangeRequestRecord]] = Field(default_factory=dict)

    @classmethod
    def empty(cls, extra_sections: tuple[str, ...] = ()) -> SectionBuckets:
        names = list(CANONICAL_SECTIONS)
        for name in extra_sections:
            if name not in names:
                names.append(name)
        return cls(sections={name: [] for name in names})

    def add(self, section: str, record: ChangeRequestRecord) -> None:
        self.sections.setdefault(section, []).append(record)

    def non_empty(self) -> tuple[tuple[str, tuple[ChangeRequestRecord, ...]], ...]:
        """Snapshot of the sections that have records, in rendering order."""
        return tuple(
            (name, tuple(items)) for name, items in self.sections.items() if items
        )

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.sections.values())


class ReleaseDocument(BaseModel):
    """Everything needed to render the markdown body.

    ``sections`` holds only non-empty sections, as tuples, so the document
    can't change once built.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    range_line: str
    sections: tuple[tuple[str, tuple[ChangeRequestRecord, ...]], ...] = ()
    compare_link: str | None = None


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup hit: the existing release or comment."""

    value: T


@dataclass(frozen=True)
class NotFound:
    """Lookup miss. Upserts take the create branch on this."""

    reason: str = ""


Lookup = Found | NotFound


class UpsertResult(BaseModel):
    """Outcome of an idempotent publish."""

    action: UpsertAction
    url: str = ""


class PipelineResult(BaseModel):
    """What a full run produced."""

    window: ReleaseWindow
    markdown: str
    record_count: int = Field(0, ge=0)
    release: UpsertResult | None = None
    preview: UpsertResult | None = None
