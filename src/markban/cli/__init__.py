"""CLI argument parser and dispatch for markban."""

import argparse

from markban.cli.board import check, diff, show
from markban.cli.config import config
from markban.cli.sync import sync
from markban.cli.watch import watch


def build_parser() -> argparse.ArgumentParser:
    """Build the full CLI argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", default=".", help="Directory whose git config and .markban.yaml apply (default: .)")
    common.add_argument("--config", help="YAML settings file (default: <repo>/.markban.yaml)")
    common.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(
        prog="markban",
        description="Keep markdown board card markers in step with their columns",
        parents=[common],
    )

    commands = parser.add_subparsers(dest="command")

    # --- check ---
    check_p = commands.add_parser("check", help="Report which files look like boards", parents=[common])
    check_p.add_argument("files", nargs="+", help="Markdown files")
    check_p.set_defaults(func=check)

    # --- show ---
    show_p = commands.add_parser("show", help="Show a board's columns and cards", parents=[common])
    show_p.add_argument("file", help="Board file")
    show_p.set_defaults(func=show)

    # --- diff ---
    diff_p = commands.add_parser("diff", help="Show card movements between two snapshots", parents=[common])
    diff_p.add_argument("old", help="Earlier snapshot")
    diff_p.add_argument("new", help="Later snapshot")
    diff_p.set_defaults(func=diff)

    # --- sync ---
    sync_p = commands.add_parser("sync", help="Set every card's marker from its column", parents=[common])
    sync_p.add_argument("file", help="Board file")
    sync_p.add_argument("-n", "--dry-run", action="store_true", help="Print a diff instead of writing")
    sync_p.set_defaults(func=sync)

    # --- watch ---
    watch_p = commands.add_parser("watch", help="Reconcile boards as they change", parents=[common])
    watch_p.add_argument("paths", nargs="+", help="Board files or directories to watch")
    watch_p.add_argument("--poll", action="store_true", help="Poll for changes instead of using OS notifications")
    watch_p.add_argument("--interval", type=float, help="Poll interval in seconds with --poll (default: from settings)")
    watch_p.set_defaults(func=watch)

    # --- config ---
    config_p = commands.add_parser("config", help="Show or set [markban] git config keys", parents=[common])
    config_p.add_argument("key", nargs="?", help="Key such as cooldown-ms or auto-sync")
    config_p.add_argument("value", nargs="?", help="New value")
    config_p.set_defaults(func=config)

    return parser
