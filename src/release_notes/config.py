"""Action configuration.

GitHub Actions hands every input to the process as an ``INPUT_<NAME>``
environment variable holding a string. ``load_config`` gathers those, layers
them over an optional YAML file in the repository, and validates the result
into an ``ActionConfig``. The validators do the coercion: booleans accept
the usual yes/no spellings, integers are clamped into range, label lists are
trimmed and lowercased.

A malformed section map (JSON input or YAML file) is not fatal: it is logged
as a warning and the default map is used. A missing token is fatal.

Example ``.github/release-notes.yml``:

    section_map:
      security: Security
      bug: Fixed
    exclude_labels: [skip-changelog, wontfix]
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from release_notes.classifier import DEFAULT_LABEL_MAP, ClassifierConfig
from release_notes.errors import ConfigurationError
from release_notes.logging_config import get_logger
from release_notes.utils import clamp_int, parse_comma_separated, to_bool

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = ".github/release-notes.yml"

# field -> (default, min, max)
_INT_BOUNDS: dict[str, tuple[int, int, int]] = {
    "since_days": (30, 1, 3650),
    "max_prs": (200, 1, 1000),
    "max_tags": (200, 1, 1000),
}

# Keys the YAML file may set. The token never comes from a committed file.
_FILE_KEYS = frozenset(
    {
        "base_branch",
        "create_release",
        "draft",
        "since_days",
        "max_prs",
        "max_tags",
        "exclude_labels",
        "include_labels",
        "ignore_deps",
        "use_conventional_commits",
        "preview_on_pr",
        "section_map",
    }
)


class ActionConfig(BaseModel):
    """Validated inputs for one run.

    Attributes:
        github_token: Token used for every API call
        base_branch: Only PRs merged into this branch are collected
        create_release: Create/update a GitHub release on tag pushes
        draft: Whether that release is a draft
        since_days: Lookback window when no tag gives a baseline
        max_prs: Cap on collected pull requests
        max_tags: Cap on listed tags
        exclude_labels: Drop PRs carrying any of these
        include_labels: If set, keep only PRs carrying one of these
        ignore_deps: Drop PRs whose labels are all dependency labels
        use_conventional_commits: Fall back to "type(scope): " title prefixes
        preview_on_pr: Post a preview comment on pull_request events
        section_map: label -> section name
    """

    github_token: str = ""
    base_branch: str = "main"
    create_release: bool = True
    draft: bool = True
    since_days: int = 30
    max_prs: int = 200
    max_tags: int = 200
    exclude_labels: list[str] = Field(default_factory=list)
    include_labels: list[str] = Field(default_factory=list)
    ignore_deps: bool = False
    use_conventional_commits: bool = False
    preview_on_pr: bool = False
    section_map: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_LABEL_MAP))

    @field_validator("base_branch", mode="before")
    @classmethod
    def default_base_branch(cls, v: Any) -> str:
        return str(v).strip() if v and str(v).strip() else "main"

    @field_validator(
        "create_release",
        "draft",
        "ignore_deps",
        "use_conventional_commits",
        "preview_on_pr",
        mode="before",
    )
    @classmethod
    def coerce_bool(cls, v: Any, info: ValidationInfo) -> bool:
        return to_bool(v, cls.model_fields[info.field_name].default)

    @field_validator("since_days", "max_prs", "max_tags", mode="before")
    @classmethod
    def clamp(cls, v: Any, info: ValidationInfo) -> int:
        default, minimum, maximum = _INT_BOUNDS[info.field_name]
        return clamp_int(v, default, minimum, maximum)

    @field_validator("exclude_labels", "include_labels", mode="before")
    @classmethod
    def normalize_labels(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return parse_comma_separated(v)
        return [str(item).strip().lower() for item in v if str(item).strip()]

    @field_validator("section_map", mode="before")
    @classmethod
    def parse_section_map(cls, v: Any) -> dict[str, str]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return dict(DEFAULT_LABEL_MAP)
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError as exc:
                logger.warning("section_map_invalid_json", error=str(exc))
                return dict(DEFAULT_LABEL_MAP)
        if not isinstance(v, Mapping):
            logger.warning("section_map_not_an_object", got=type(v).__name__)
            return dict(DEFAULT_LABEL_MAP)
        mapping: dict[str, str] = {}
        for label, section in v.items():
            if not isinstance(section, str) or not section.strip():
                logger.warning("section_map_invalid", label=str(label), section=repr(section))
                continue
            mapping[str(label).lower()] = section.strip()
        return mapping

    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(
            section_map=self.section_map,
            include_labels=frozenset(self.include_labels),
            exclude_labels=frozenset(self.exclude_labels),
            ignore_deps=self.ignore_deps,
            use_conventional_commits=self.use_conventional_commits,
        )


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read the optional YAML config file.

    Returns an empty dict if the file doesn't exist or can't be used;
    unusable files are logged as warnings.
    """
    config_path = Path(path)
    if not config_path.is_file():
        return {}

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        logger.warning("config_file_invalid_yaml", path=str(path), error=str(exc))
        return {}

    if not isinstance(raw, dict):
        logger.warning("config_file_not_a_mapping", path=str(path))
        return {}

    unknown = sorted(set(raw) - _FILE_KEYS)
    if unknown:
        logger.warning("config_file_unknown_keys", path=str(path), keys=unknown)
    return {key: value for key, value in raw.items() if key in _FILE_KEYS}


def read_inputs(environ: Mapping[str, str]) -> dict[str, str]:
    """Collect non-empty ``INPUT_*`` variables, keyed by lowercase input name."""
    inputs: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("INPUT_") and value.strip():
            inputs[key.removeprefix("INPUT_").lower().replace("-", "_")] = value
    return inputs


def load_config(
    environ: Mapping[str, str] | None = None,
    config_file: str | Path | None = None,
) -> ActionConfig:
    """Build the run configuration.

    Precedence, lowest first: defaults, YAML file, action inputs.

    Args:
        environ: Environment to read from (defaults to ``os.environ``)
        config_file: YAML file path; falls back to the ``config_file`` input,
                     then ``.github/release-notes.yml``.

    Raises:
        ConfigurationError: If no token is available.
    """
    env = os.environ if environ is None else environ
    inputs = read_inputs(env)

    path = config_file or inputs.pop("config_file", None) or DEFAULT_CONFIG_FILE
    inputs.pop("config_file", None)
    data: dict[str, Any] = load_config_file(path)
    data.update(inputs)

    if not data.get("github_token"):
        data["github_token"] = env.get("GITHUB_TOKEN", "")
    if not data["github_token"]:
        raise ConfigurationError("Input required and not supplied: github_token")

    return ActionConfig.model_validate(data)
