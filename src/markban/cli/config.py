"""Handler for 'markban config'."""

from markban.cli._common import error, output_json, output_result
from markban.git import (
    MARKBAN_DEFAULTS,
    SECTION,
    coerce_markban_value,
    is_git_repo,
    read_git_config,
    write_git_config_key,
)
from markban.markers import is_marker


def config(args) -> int:
    """Show or set keys in the [markban] section of git config."""
    if not is_git_repo(args.repo):
        error(f"not a git repository: {args.repo}", args.json)

    try:
        values = read_git_config(args.repo)[SECTION]
    except ValueError as e:
        error(f"bad git config: {e}", args.json)

    if args.key is None:
        if args.json:
            output_json(values)
        else:
            for key, value in values.items():
                print(f"{key.replace('_', '-')} = {_show(value)}")
        return 0

    git_key = args.key.replace("_", "-")
    if git_key not in MARKBAN_DEFAULTS:
        error(f"unknown key: {args.key}", args.json)
    key = git_key.replace("-", "_")

    if args.value is None:
        output_result({key: values[key]}, _show(values[key]), args.json)
        return 0

    try:
        value = coerce_markban_value(git_key, args.value)
    except ValueError:
        error(f"{git_key} must be a number", args.json)
    if git_key.endswith("-marker") and not is_marker(value):
        error(f"invalid marker {value!r}", args.json)

    write_git_config_key(args.repo, SECTION, key, value)
    output_result({key: value}, f"{git_key} = {_show(value)}", args.json)
    return 0


def _show(value) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)
