"""Text primitives for card lines and their bracketed marker tokens."""

import re

HEADING_PREFIX = "## "
LIST_PREFIXES = ("- ", "* ")

_TOKEN = r"\[[^\[\]]{0,3}\](?!\()"

# "- [/] text": group 1 is the list prefix, group 2 the marker token
MARKER_LINE = re.compile(rf"^(\s*[-*] )({_TOKEN})")
_FIRST_LINE_PREFIX = re.compile(rf"^\s*[-*] (?:{_TOKEN})?\s*")
_NESTED_MARKER = re.compile(rf"^(\s*[-*] ){_TOKEN} ?")
_MARKER_ONLY = re.compile(_TOKEN + r"$")


def is_heading(line: str) -> bool:
    """True for a level-2 heading line (a column boundary)."""
    return line.startswith(HEADING_PREFIX)


def heading_name(line: str) -> str:
    """Column name of a level-2 heading line."""
    return line[len(HEADING_PREFIX) :].strip()


def is_card_start(line: str) -> bool:
    """True if the trimmed line opens a list item."""
    return line.strip().startswith(LIST_PREFIXES)


def is_continuation(line: str) -> bool:
    """True for blank or indented lines, which belong to the preceding card."""
    return not line.strip() or line[0] in " \t"


def is_marker(value: str) -> bool:
    """True if value is a well-formed marker token such as ``[ ]`` or ``[/]``."""
    return bool(_MARKER_ONLY.match(value))


def line_marker(line: str) -> str | None:
    """Return the marker token on a list line, or None."""
    match = MARKER_LINE.match(line)
    return match.group(2) if match else None


def replace_line_marker(line: str, marker: str) -> str:
    """Swap the marker token on a list line, leaving every other character alone.

    Lines without a marker token are returned unchanged.
    """
    match = MARKER_LINE.match(line)
    if not match:
        return line
    return line[: match.start(2)] + marker + line[match.end(2) :]


def strip_line_marker(line: str) -> str:
    """Remove the marker token (and one following space) from a list line."""
    return _NESTED_MARKER.sub(r"\1", line, count=1)


def identity_key(lines) -> str:
    """Build the identity key for a card's lines.

    The list glyph and marker token are dropped from the first line, marker
    tokens are dropped from nested list lines, and the result is trimmed. Two
    snapshots of the same card therefore share a key whatever their markers.
    """
    if not lines:
        return ""
    first = _FIRST_LINE_PREFIX.sub("", lines[0], count=1)
    rest = [strip_line_marker(line) for line in lines[1:]]
    return "\n".join([first, *rest]).strip()


def has_markers(text: str) -> bool:
    """True if any line of text is a list item carrying a marker token."""
    return any(MARKER_LINE.match(line) for line in text.split("\n"))
