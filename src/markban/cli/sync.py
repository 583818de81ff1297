"""Handler for 'markban sync'."""

import difflib
import sys

from markban.cli._common import error, load_settings_or_die, output_json, output_result, read_or_die
from markban.files import write_document
from markban.normalization import marker_changes
from markban.parser import parse_board
from markban.sync import sync_board


def sync(args) -> int:
    """Enforce the column policy on a board file once."""
    settings = load_settings_or_die(args)
    text = read_or_die(args.file, args.json)
    policy = settings.policy_for(text)

    result = sync_board(parse_board(text), text, policy)
    changes = marker_changes(text, result)
    data = {"path": args.file, "changed": len(changes), "written": False}

    if result is text:
        output_result(data, "already in sync", args.json)
        return 0

    if args.dry_run:
        if args.json:
            output_json(data)
        else:
            sys.stdout.writelines(
                difflib.unified_diff(
                    text.splitlines(keepends=True),
                    result.splitlines(keepends=True),
                    fromfile=args.file,
                    tofile=args.file,
                )
            )
        return 0

    try:
        write_document(args.file, result)
    except OSError as e:
        error(f"could not write {args.file}: {e}", args.json)

    data["written"] = True
    noun = "card" if len(changes) == 1 else "cards"
    output_result(data, f"synced {len(changes)} {noun} in {args.file}", args.json)
    return 0
