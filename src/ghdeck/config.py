"""ghdeck configuration management.

Handles persistent settings stored in ~/.config/ghdeck/config.yml
(or the file named by $GHDECK_CONFIG).
"""

import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from ghdeck.exceptions import ConfigError


# Default configuration values
DEFAULT_THEME = "textual-dark"
DEFAULT_LIMIT = 20
DEFAULT_REFETCH_INTERVAL_MINUTES = 30
DEFAULT_VIEWPORT_HEIGHT = 20
CONFIG_ENV_VAR = "GHDECK_CONFIG"


class ViewType(str, Enum):
    """The dashboard views, each holding its own list of sections."""

    PRS = "prs"
    ISSUES = "issues"
    NOTIFICATIONS = "notifications"
    REPO = "repo"


def get_config_dir() -> Path:
    """Directory holding config.yml."""
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "ghdeck"


def get_state_dir() -> Path:
    """Directory holding the state database and the debug log."""
    base = os.environ.get("XDG_STATE_HOME")
    return (Path(base) if base else Path.home() / ".local" / "state") / "ghdeck"


@dataclass
class SectionConfig:
    """One configured section: a titled, filtered list."""

    title: str
    filters: str = ""
    limit: Optional[int] = None


@dataclass
class Defaults:
    """Defaults applied to every section unless overridden."""

    prs_limit: int = DEFAULT_LIMIT
    issues_limit: int = DEFAULT_LIMIT
    notifications_limit: int = DEFAULT_LIMIT
    view: str = ViewType.PRS.value
    refetch_interval_minutes: int = DEFAULT_REFETCH_INTERVAL_MINUTES
    preview_open: bool = True
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT


def default_pr_sections() -> list[SectionConfig]:
    return [
        SectionConfig(title="My Pull Requests", filters="is:open author:@me"),
        SectionConfig(title="Needs My Review", filters="is:open review-requested:@me"),
        SectionConfig(title="Involved", filters="is:open involves:@me -author:@me"),
    ]


def default_issue_sections() -> list[SectionConfig]:
    return [
        SectionConfig(title="My Issues", filters="is:open author:@me"),
        SectionConfig(title="Assigned", filters="is:open assignee:@me"),
        SectionConfig(title="Involved", filters="is:open involves:@me -author:@me"),
    ]


def default_notification_sections() -> list[SectionConfig]:
    return [
        SectionConfig(title="All", filters=""),
        SectionConfig(title="Review Requested", filters="reason:review-requested"),
    ]


def _section_list(raw: Any, fallback: list[SectionConfig]) -> list[SectionConfig]:
    """Build section configs from YAML data, ignoring unknown keys."""
    if raw is None:
        return fallback
    if not isinstance(raw, list):
        raise ConfigError("section lists must be YAML sequences")

    known_fields = {f for f in SectionConfig.__dataclass_fields__}
    sections = []
    for item in raw:
        if not isinstance(item, dict) or "title" not in item:
            raise ConfigError(f"invalid section entry: {item!r}")
        sections.append(SectionConfig(**{k: v for k, v in item.items() if k in known_fields}))
    return sections


@dataclass
class DashConfig:
    """ghdeck application configuration."""

    pr_sections: list[SectionConfig] = field(default_factory=default_pr_sections)
    issue_sections: list[SectionConfig] = field(default_factory=default_issue_sections)
    notification_sections: list[SectionConfig] = field(default_factory=default_notification_sections)
    defaults: Defaults = field(default_factory=Defaults)

    # Prefix PR/issue filters with the current clone's repo: qualifier
    smart_filtering_at_launch: bool = True
    confirm_quit: bool = False
    theme: str = DEFAULT_THEME

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return Path(override).expanduser()
        return get_config_dir() / "config.yml"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "DashConfig":
        """Load configuration from file, or return defaults if not found.

        Raises:
            ConfigError: If the file exists but is not valid YAML or has the
                wrong shape.
        """
        config_path = path or cls.get_config_path()
        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a YAML mapping")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "DashConfig":
        """Build a config from plain data, keeping only known fields."""
        known_fields = {f for f in cls.__dataclass_fields__}
        filtered = {k: v for k, v in data.items() if k in known_fields}

        filtered["pr_sections"] = _section_list(filtered.get("pr_sections"), default_pr_sections())
        filtered["issue_sections"] = _section_list(filtered.get("issue_sections"), default_issue_sections())
        filtered["notification_sections"] = _section_list(
            filtered.get("notification_sections"), default_notification_sections()
        )

        defaults_data = filtered.get("defaults")
        if defaults_data is None:
            filtered["defaults"] = Defaults()
        elif isinstance(defaults_data, dict):
            defaults_fields = {f for f in Defaults.__dataclass_fields__}
            filtered["defaults"] = Defaults(**{k: v for k, v in defaults_data.items() if k in defaults_fields})
        else:
            raise ConfigError("defaults must be a mapping")

        try:
            ViewType(filtered["defaults"].view)
        except ValueError as e:
            raise ConfigError(f"unknown default view: {filtered['defaults'].view}") from e

        return cls(**filtered)

    def save(self, path: Optional[Path] = None) -> Path:
        """Save configuration to file."""
        config_path = path or self.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(asdict(self), f, sort_keys=False)
        return config_path

    def sections_for(self, view: ViewType) -> list[SectionConfig]:
        """Configured sections for a view. The repo view has a single fixed section."""
        if view == ViewType.PRS:
            return self.pr_sections
        if view == ViewType.ISSUES:
            return self.issue_sections
        if view == ViewType.NOTIFICATIONS:
            return self.notification_sections
        return [SectionConfig(title="Local Branches", filters="", limit=None)]

    def limit_for(self, view: ViewType, section: SectionConfig) -> int:
        """Page size for a section: its own limit, or the view default."""
        if section.limit:
            return section.limit
        if view == ViewType.ISSUES:
            return self.defaults.issues_limit
        if view == ViewType.NOTIFICATIONS:
            return self.defaults.notifications_limit
        return self.defaults.prs_limit
