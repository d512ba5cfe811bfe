"""Deterministic classification of pull requests into release-note sections.

Each record goes through the same steps, in order:
1. Exclusion: dependency-only PRs (when ignore_deps is on) and PRs carrying
   an excluded label are dropped.
2. Inclusion: if include labels are configured, PRs without any of them
   are dropped.
3. Section: the first label (in the PR's label order) found in the section
   map decides the section; no match means "Other".
4. Conventional title: only for "Other", and only when enabled, a
   ``type(scope): `` title prefix can still pick the section.

Everything here is a pure function of the record and a ClassifierConfig.
The default maps are read-only; callers pass their own map through the
config rather than mutating module state.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from release_notes.schemas import (
    CANONICAL_SECTIONS,
    DEFAULT_SECTION,
    ChangeRequestRecord,
    SectionBuckets,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_LABEL_MAP: Mapping[str, str] = MappingProxyType(
    {
        "bug": "Fixed",
        "fix": "Fixed",
        "bugfix": "Fixed",
        "enhancement": "Added",
        "feat": "Added",
        "feature": "Added",
        "chore": "Changed",
        "refactor": "Changed",
        "deps": "Changed",
        "dependencies": "Changed",
        "docs": "Docs",
        "documentation": "Docs",
    }
)

CONVENTIONAL_PREFIX_MAP: Mapping[str, str] = MappingProxyType(
    {
        "feat": "Added",
        "fix": "Fixed",
        "chore": "Changed",
        "refactor": "Changed",
        "docs": "Docs",
    }
)

DEPENDENCY_LABELS: frozenset[str] = frozenset({"dependencies", "deps", "dependabot"})

# "feat: x", "fix(auth): x"
CONVENTIONAL_TITLE_RE = re.compile(r"^(\w+)(?:\(.+?\))?:\s*")


@dataclass(frozen=True)
class ClassifierConfig:
    """Everything classification depends on besides the record itself.

    Attributes:
        section_map: label (lowercase) -> section name
        include_labels: keep only PRs with at least one of these (if non-empty)
        exclude_labels: drop PRs with any of these
        ignore_deps: drop PRs whose labels are all dependency labels
        use_conventional_commits: enable the title-prefix fallback
    """

    section_map: Mapping[str, str] = field(default_factory=lambda: DEFAULT_LABEL_MAP)
    include_labels: frozenset[str] = frozenset()
    exclude_labels: frozenset[str] = frozenset()
    ignore_deps: bool = False
    use_conventional_commits: bool = False

    @property
    def extra_sections(self) -> tuple[str, ...]:
        """Sections named by the map that aren't canonical, deduplicated."""
        extras: list[str] = []
        for section in self.section_map.values():
            if section not in CANONICAL_SECTIONS and section not in extras:
                extras.append(section)
        return tuple(extras)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def _lowered(labels: Iterable[str]) -> list[str]:
    return [str(label).lower() for label in labels]


def is_dependency_only(labels: Iterable[str]) -> bool:
    """True for a non-empty label list made up solely of dependency labels."""
    names = _lowered(labels)
    return bool(names) and all(name in DEPENDENCY_LABELS for name in names)


def should_exclude(record: ChangeRequestRecord, config: ClassifierConfig) -> bool:
    """Apply the exclusion and inclusion checks."""
    labels = _lowered(record.labels)

    if config.ignore_deps and is_dependency_only(labels):
        return True

    if config.exclude_labels and any(label in config.exclude_labels for label in labels):
        return True

    if config.include_labels and not any(label in config.include_labels for label in labels):
        return True

    return False


def section_for_labels(labels: Iterable[str], section_map: Mapping[str, str]) -> str:
    """First label found in the map wins; otherwise "Other"."""
    for label in _lowered(labels):
        section = section_map.get(label)
        if section:
            return section
    return DEFAULT_SECTION


def section_from_conventional_title(title: str | None) -> str | None:
    """Map a "type(scope): " prefix to a section, or None."""
    match = CONVENTIONAL_TITLE_RE.match(title or "")
    if not match:
        return None
    return CONVENTIONAL_PREFIX_MAP.get(match.group(1).lower())


def assign_section(record: ChangeRequestRecord, config: ClassifierConfig) -> str:
    """Section for a record, ignoring include/exclude filters."""
    section = section_for_labels(record.labels, config.section_map)
    if section == DEFAULT_SECTION and config.use_conventional_commits:
        section = section_from_conventional_title(record.title) or DEFAULT_SECTION
    return section


def classify(record: ChangeRequestRecord, config: ClassifierConfig) -> str | None:
    """Section for a record, or None if the filters drop it."""
    if should_exclude(record, config):
        return None
    return assign_section(record, config)


def bucket_records(
    records: Iterable[ChangeRequestRecord], config: ClassifierConfig
) -> SectionBuckets:
    """Classify every record into a fresh SectionBuckets.

    Records keep their incoming order within each section.
    """
    buckets = SectionBuckets.empty(config.extra_sections)
    for record in records:
        section = classify(record, config)
        if section is not None:
            buckets.add(section, record)
    return buckets
