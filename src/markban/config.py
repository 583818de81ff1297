"""Settings for markban, layered from defaults, git config, YAML and front-matter."""

import logging
from dataclasses import dataclass, field, fields
from fnmatch import fnmatch
from pathlib import Path, PurePath

import yaml

from markban.git import SECTION, is_git_repo, read_git_config
from markban.models import Policy
from markban.parser import extract_front_matter, looks_like_board

logger = logging.getLogger(__name__)

SETTINGS_FILE = ".markban.yaml"
FRONT_MATTER_KEY = "markban-columns"

DEFAULT_COLUMNS = {
    "Todo": "[ ]",
    "In Progress": "[/]",
    "Complete": "[x]",
    "Done": "[x]",
}

# git config keys stored in milliseconds -> Settings fields in seconds
_GIT_MS_KEYS = {
    "cooldown_ms": "cooldown",
    "min_write_interval_ms": "min_write_interval",
    "index_timeout_ms": "index_timeout",
    "poll_interval_ms": "poll_interval",
}

_GIT_KEYS = {
    "sync_enabled": "sync_enabled",
    "protect_normalization": "protect_normalization",
    "auto_sync": "auto_sync_on_open",
    "auto_detect": "auto_detect",
    "incomplete_marker": "incomplete_marker",
    "complete_marker": "complete_marker",
    "completed_column": "completed_column",
}


class ConfigError(ValueError):
    """Invalid markban settings."""


@dataclass
class Settings:
    """Everything that tunes a reconciliation pass."""

    columns: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))
    incomplete_marker: str = "[ ]"
    complete_marker: str = "[x]"
    sync_enabled: bool = True
    protect_normalization: bool = True
    auto_sync_on_open: bool = False
    auto_detect: bool = True
    completed_column: str = "Complete"
    specific_files: list[str] = field(default_factory=list)
    exclude_files: list[str] = field(default_factory=list)
    cooldown: float = 0.3
    min_write_interval: float = 0.1
    index_timeout: float = 1.0
    poll_interval: float = 1.0

    @property
    def policy(self) -> Policy:
        try:
            return Policy(self.columns, self.incomplete_marker, self.complete_marker)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    def policy_for(self, text: str) -> Policy:
        """Policy for one document, honouring its ``markban-columns`` front-matter."""
        _, meta = extract_front_matter(text)
        overrides = meta.get(FRONT_MATTER_KEY)
        if not overrides:
            return self.policy
        try:
            return self.policy.with_overrides(parse_columns(overrides))
        except (ConfigError, ValueError) as e:
            logger.warning("ignoring %s front-matter: %s", FRONT_MATTER_KEY, e)
            return self.policy

    def tracks(self, path: str | Path, text: str) -> bool:
        """Whether the document at path should be reconciled."""
        if _matches(path, self.exclude_files):
            return False
        if _matches(path, self.specific_files):
            return True
        if not self.auto_detect:
            return False
        return looks_like_board(text, extra_names=[self.completed_column])


def _matches(path: str | Path, patterns: list[str]) -> bool:
    pure = PurePath(path)
    return any(fnmatch(pure.as_posix(), p) or fnmatch(pure.name, p) for p in patterns)


def parse_columns(value) -> dict[str, str]:
    """Read a column policy from a mapping or a list of mapping entries.

    List entries may use ``column``/``marker`` or the older
    ``columnName``/``checkboxState`` keys.
    """
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    if isinstance(value, list):
        columns = {}
        for entry in value:
            if not isinstance(entry, dict):
                raise ConfigError(f"bad column entry: {entry!r}")
            name = entry.get("column", entry.get("columnName"))
            marker = entry.get("marker", entry.get("checkboxState"))
            if name is None or marker is None:
                raise ConfigError(f"bad column entry: {entry!r}")
            columns[str(name)] = str(marker)
        return columns
    raise ConfigError(f"columns must be a mapping or a list, not {type(value).__name__}")


def apply_git_config(settings: Settings, section: dict) -> None:
    """Overlay values from the git config ``[markban]`` section."""
    for key, value in section.items():
        if key in _GIT_MS_KEYS:
            setattr(settings, _GIT_MS_KEYS[key], value / 1000)
        elif key in _GIT_KEYS:
            setattr(settings, _GIT_KEYS[key], value)
        else:
            logger.warning("unknown git config key %s.%s", SECTION, key)


def apply_mapping(settings: Settings, data: dict) -> None:
    """Overlay values from a YAML settings mapping."""
    known = {f.name: f for f in fields(Settings)}
    for raw_key, value in data.items():
        key = str(raw_key).replace("-", "_")
        if key == "columns":
            settings.columns = parse_columns(value)
            continue
        if key not in known:
            logger.warning("unknown setting %r", raw_key)
            continue
        default = getattr(settings, key)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"{raw_key} must be true or false")
        elif isinstance(default, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ConfigError(f"{raw_key} must be a non-negative number")
            value = float(value)
        elif isinstance(default, list):
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list):
                raise ConfigError(f"{raw_key} must be a list")
            value = [str(v) for v in value]
        else:
            value = str(value)
        setattr(settings, key, value)


def load_settings(repo_path: str | Path = ".", config_path: str | Path | None = None) -> Settings:
    """Build Settings: defaults, then git config, then the YAML settings file."""
    settings = Settings()

    if is_git_repo(repo_path):
        try:
            section = read_git_config(repo_path).get(SECTION, {})
        except ValueError as e:
            raise ConfigError(f"bad git config: {e}") from e
        apply_git_config(settings, section)

    path = Path(config_path) if config_path else Path(repo_path) / SETTINGS_FILE
    if path.is_file():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"{path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping")
        apply_mapping(settings, data)
    elif config_path:
        raise ConfigError(f"{path}: no such file")

    settings.policy  # raises ConfigError on bad markers
    return settings
