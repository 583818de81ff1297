"""Parse markdown board documents with front-matter."""

import re

import yaml
from markdown_it import MarkdownIt

from markban.markers import heading_name, is_card_start, is_continuation, is_heading
from markban.models import Board, Card

COLUMN = "column"
CARD = "card"

WORKFLOW_NAMES = (
    "todo",
    "to do",
    "to-do",
    "backlog",
    "new",
    "ideas",
    "inbox",
    "in progress",
    "doing",
    "working",
    "current",
    "ongoing",
    "done",
    "complete",
    "completed",
    "finished",
    "blocked",
    "waiting",
)

_md = MarkdownIt("commonmark")


def scan_lines(lines):
    """Yield the structural elements of a board, in order.

    Yields ``(COLUMN, name, index, index + 1)`` for each level-2 heading and
    ``(CARD, column_name, start, end)`` for each card span. Lines before the
    first heading and lines that are neither headings nor cards are skipped.
    """
    column = None
    i = 0
    n = len(lines)
    while i < n:
        line = lines[i]
        if is_heading(line):
            column = heading_name(line)
            yield COLUMN, column, i, i + 1
            i += 1
            continue
        if column is not None and is_card_start(line):
            j = i + 1
            while j < n and is_continuation(lines[j]):
                j += 1
            yield CARD, column, i, j
            i = j
            continue
        i += 1


def parse_board(text: str) -> Board:
    """Parse text into a Board. Never fails; odd input gives a partial board."""
    lines = tuple(text.split("\n"))
    board = Board(lines=lines)
    for kind, name, start, end in scan_lines(lines):
        column = board.add_column(name)
        if kind == CARD:
            column.cards.append(Card(lines=lines[start:end], start=start))
    return board


def render_board(board: Board) -> str:
    """Serialize a board back to text, substituting each card's current lines."""
    lines = list(board.lines)
    spans = sorted((card for _, _, card in board.cards()), key=lambda c: c.start, reverse=True)
    for card in spans:
        original = board.lines[card.start : card.start + _source_length(board, card)]
        lines[card.start : card.start + len(original)] = card.lines
    return "\n".join(lines)


def _source_length(board: Board, card: Card) -> int:
    """Number of source lines the card spanned when parsed."""
    end = card.start + 1
    while end < len(board.lines) and is_continuation(board.lines[end]):
        end += 1
    return end - card.start


def column_tags(lines) -> list[str | None]:
    """Tag every line with its enclosing column name in one forward pass."""
    tags: list[str | None] = []
    column = None
    for line in lines:
        if is_heading(line):
            column = heading_name(line)
        tags.append(column)
    return tags


def extract_front_matter(text: str) -> tuple[str, dict]:
    """Extract YAML front-matter from text. Returns (remaining_text, meta)."""
    if not text.startswith("---"):
        return text, {}

    match = re.match(r"^---\r?\n(.*?)\r?\n---(?:\r?\n)?", text, re.DOTALL)
    if not match:
        return text, {}

    remaining = text[match.end() :]

    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        meta = {}

    if not isinstance(meta, dict):
        meta = {}
    return remaining, meta


def level2_headings(text: str) -> list[str]:
    """Level-2 heading texts, ignoring anything inside code blocks."""
    tokens = _md.parse(text)
    headings = []
    for i, token in enumerate(tokens):
        if token.type == "heading_open" and token.tag == "h2" and i + 1 < len(tokens):
            headings.append(tokens[i + 1].content.strip())
    return headings


def looks_like_board(text: str, extra_names=()) -> bool:
    """Heuristic board detection.

    True if the front-matter declares a board (``kanban-plugin: basic`` or
    ``markban: true``), or if at least two level-2 headings use common
    workflow vocabulary or match one of extra_names.
    """
    body, meta = extract_front_matter(text)
    if meta.get("kanban-plugin") == "basic" or meta.get("markban") is True:
        return True

    extras = {name.strip().lower() for name in extra_names if name}
    matches = 0
    for heading in level2_headings(body):
        name = heading.lower()
        if name in extras or any(word in name for word in WORKFLOW_NAMES):
            matches += 1
    return matches >= 2
