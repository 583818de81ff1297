"""Git config access for markban settings."""

from pathlib import Path
from typing import Any

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

SECTION = "markban"

MARKBAN_DEFAULTS = {
    "sync-enabled": True,
    "protect-normalization": True,
    "auto-sync": False,
    "auto-detect": True,
    "incomplete-marker": "[ ]",
    "complete-marker": "[x]",
    "completed-column": "Complete",
    "cooldown-ms": 300,
    "min-write-interval-ms": 100,
    "index-timeout-ms": 1000,
    "poll-interval-ms": 1000,
}


def _python_key(git_key: str) -> str:
    """Convert git-style key (hyphenated) to Python-style (underscored)."""
    return git_key.replace("-", "_")


def _git_key(python_key: str) -> str:
    """Convert Python-style key (underscored) to git-style (hyphenated)."""
    return python_key.replace("_", "-")


def coerce_markban_value(git_key: str, raw: str):
    """Type-coerce markban section values using defaults."""
    default = MARKBAN_DEFAULTS.get(git_key)
    if default is None:
        return raw
    if isinstance(default, bool):
        return raw.lower() in ("true", "yes", "1")
    if isinstance(default, int):
        return int(raw)
    return raw


def read_git_config(repo_path: str | Path) -> dict[str, dict[str, Any]]:
    """Read git config into {section: {key: value}} dict.

    Skips subsectioned entries (e.g. remote "origin").
    Converts key hyphens to underscores. Applies type coercion
    for the markban section. Merges markban defaults for missing keys.
    """
    repo = _get_repo(repo_path)
    reader = repo.config_reader()
    result: dict[str, dict[str, Any]] = {}
    for section in reader.sections():
        if '"' in section:
            continue
        items: dict[str, Any] = {}
        for git_k, raw in reader.items(section):
            py_key = _python_key(git_k)
            if section == SECTION:
                items[py_key] = coerce_markban_value(git_k, raw)
            else:
                items[py_key] = raw
        result[section] = items
    markban = result.setdefault(SECTION, {})
    for git_k, default in MARKBAN_DEFAULTS.items():
        py_key = _python_key(git_k)
        if py_key not in markban:
            markban[py_key] = default
    return result


def write_git_config_key(repo_path: str | Path, section: str, key: str, value) -> None:
    """Write one key to git config. key is python-style (underscores)."""
    git_k = _git_key(key)
    repo = _get_repo(repo_path)
    writer = repo.config_writer("repository")
    if isinstance(value, bool):
        writer.set_value(section, git_k, str(value).lower())
    else:
        writer.set_value(section, git_k, str(value))
    writer.release()


def _get_repo(repo_path: str | Path) -> Repo:
    return Repo(repo_path, search_parent_directories=True)


def is_git_repo(path: str | Path) -> bool:
    """Check if path is inside a git repository."""
    try:
        _get_repo(path)
        return True
    except (InvalidGitRepositoryError, NoSuchPathError):
        return False
