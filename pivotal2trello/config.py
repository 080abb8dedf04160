"""Import configuration: list routing, label colors, owner presets, credentials."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pivotal2trello.exceptions import ConfigError
from pivotal2trello.models import LABEL_COLORS, STORY_KINDS, STORY_STATES, SourceItem
from pivotal2trello.retry import RetryPolicy

# Label color keys besides the story kinds
TRACKER_LABELS = "tracker labels"
ESTIMATE = "estimate"

CONFIG_KEYS = {"state_lists", "backlog_lists", "label_colors", "owners", "retry"}


@dataclass
class ListRouting:
    """Which Trello list each story goes into

    Stories are routed by state, except 'unstarted' stories (the backlog),
    which are routed by story type. A missing or None entry means stories
    of that state/type are not imported.
    """

    by_state: dict[str, str | None] = field(default_factory=dict)
    by_kind: dict[str, str | None] = field(default_factory=dict)

    def resolve(self, item: SourceItem) -> str | None:
        if item.state == "unstarted":
            return self.by_kind.get(item.kind)
        return self.by_state.get(item.state)


@dataclass
class LabelColors:
    """Colors for the labels added to each card; None disables a label family"""

    by_kind: dict[str, str | None] = field(default_factory=dict)
    tracker_labels: str | None = None
    estimate: str | None = None

    def for_kind(self, kind: str) -> str | None:
        return self.by_kind.get(kind)


@dataclass
class ImportConfig:
    """Answers loaded from a config file instead of being prompted for

    Any section left as None is asked for interactively.
    """

    state_lists: dict[str, str | None] | None = None
    backlog_lists: dict[str, str | None] | None = None
    label_colors: dict[str, str | None] | None = None
    owners: dict[int, str | None] | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _check_mapping(
    config: dict[str, Any], section: str, allowed: tuple[str, ...]
) -> dict[str, str | None] | None:
    value = config.get(section)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"'{section}' must be a JSON object")
    for key, target in value.items():
        if key not in allowed:
            raise ConfigError(
                f"Invalid key '{key}' in '{section}'. Must be one of: {', '.join(allowed)}"
            )
        if target is not None and not isinstance(target, str):
            raise ConfigError(f"Value for '{key}' in '{section}' must be a string or null")
    return dict(value)


def load_import_config(json_path: str) -> ImportConfig:
    """Load and validate an import configuration file

    Example file:
        {
            "state_lists": {"started": "5f1a...", "accepted": "5f1b...", "rejected": null},
            "backlog_lists": {"feature": "5f1c...", "bug": "5f1c..."},
            "label_colors": {"feature": "green", "bug": "red", "estimate": "purple"},
            "owners": {"1234567": "5e9d...", "7654321": null},
            "retry": {"base_delay": 30, "max_retries": 7}
        }

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the JSON is invalid or contains bad data
    """
    if not Path(json_path).exists():
        raise FileNotFoundError(f"Import config file not found: {json_path}")

    try:
        with open(json_path) as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in import config file: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError("Import config must be a JSON object")

    unknown = set(config) - CONFIG_KEYS
    if unknown:
        raise ConfigError(
            f"Unknown config sections: {', '.join(sorted(unknown))}. "
            f"Valid sections: {', '.join(sorted(CONFIG_KEYS))}"
        )

    label_colors = _check_mapping(
        config, "label_colors", STORY_KINDS + (TRACKER_LABELS, ESTIMATE)
    )
    for key, color in (label_colors or {}).items():
        if color is not None and color not in LABEL_COLORS:
            raise ConfigError(
                f"Invalid color '{color}' for '{key}'. Must be one of: {', '.join(LABEL_COLORS)}"
            )

    owners = None
    raw_owners = config.get("owners")
    if raw_owners is not None:
        if not isinstance(raw_owners, dict):
            raise ConfigError("'owners' must be a JSON object")
        try:
            owners = {int(owner_id): member_id for owner_id, member_id in raw_owners.items()}
        except ValueError as e:
            raise ConfigError(f"Owner IDs must be numeric Pivotal person IDs: {e}") from e

    retry = RetryPolicy()
    raw_retry = config.get("retry")
    if raw_retry is not None:
        if not isinstance(raw_retry, dict):
            raise ConfigError("'retry' must be a JSON object")
        try:
            retry = RetryPolicy(
                base_delay=float(raw_retry.get("base_delay", retry.base_delay)),
                max_retries=int(raw_retry.get("max_retries", retry.max_retries)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid retry settings: {e}") from e

    return ImportConfig(
        state_lists=_check_mapping(config, "state_lists", STORY_STATES),
        backlog_lists=_check_mapping(config, "backlog_lists", STORY_KINDS),
        label_colors=label_colors,
        owners=owners,
        retry=retry,
    )


def load_env_file(env_file: str) -> None:
    """Load KEY=VALUE lines from a .env file without overriding the environment"""
    if not Path(env_file).exists():
        return
    with open(env_file) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                if key not in os.environ:
                    os.environ[key] = value.strip().strip("\"'")


@dataclass
class Credentials:
    pivotal_token: str
    trello_api_key: str
    trello_token: str
    pivotal_project_id: int | None = None
    trello_board_id: str | None = None
    trello_board_url: str | None = None


def get_credentials() -> Credentials | None:
    """Read credentials from the environment; None if any required one is missing"""
    pivotal_token = os.getenv("PIVOTAL_TOKEN")
    api_key = os.getenv("TRELLO_API_KEY")
    token = os.getenv("TRELLO_TOKEN")
    if not pivotal_token or not api_key or not token:
        return None

    project_id = os.getenv("PIVOTAL_PROJECT_ID")
    return Credentials(
        pivotal_token=pivotal_token,
        trello_api_key=api_key,
        trello_token=token,
        pivotal_project_id=int(project_id) if project_id and project_id.isdigit() else None,
        trello_board_id=os.getenv("TRELLO_BOARD_ID") or None,
        trello_board_url=os.getenv("TRELLO_BOARD_URL") or None,
    )
