"""Shared helpers for CLI command handlers."""

import json
import sys
from pathlib import Path

from rich.console import Console
from rich.text import Text

from markban.config import ConfigError, Settings, load_settings
from markban.files import DocumentError, read_document


def load_settings_or_die(args) -> Settings:
    """Load settings from --repo/--config. Exit 1 with message on bad config."""
    repo_path = Path(args.repo).resolve()
    try:
        return load_settings(repo_path, getattr(args, "config", None))
    except ConfigError as e:
        error(str(e), args.json)


def read_or_die(path: str, json_mode: bool) -> str:
    """Read a board document. Exit 1 with message if it can't be read."""
    try:
        return read_document(path)
    except (DocumentError, OSError) as e:
        error(str(e), json_mode)


def output_json(data: dict | list) -> None:
    """Write JSON to stdout."""
    print(json.dumps(data, indent=2))


def output_result(data: dict, text: str, json_mode: bool) -> None:
    """Output result as JSON or plain text."""
    if json_mode:
        output_json(data)
    else:
        print(text)


def error(message: str, json_mode: bool) -> None:
    """Print error to stderr and exit 1."""
    if json_mode:
        print(json.dumps({"error": message}), file=sys.stderr)
    else:
        print(f"error: {message}", file=sys.stderr)
    sys.exit(1)


def notifier(json_mode: bool):
    """Return a callback that shows user notifications on stderr."""
    console = Console(file=sys.stderr, highlight=False)

    def notify(message: str) -> None:
        if json_mode:
            print(json.dumps({"notice": message}), file=sys.stderr)
        else:
            console.print(Text(message, style="green"))

    return notify
