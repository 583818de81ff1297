"""Marker synchronizer: keep every card's marker equal to its column's policy.

Edits are positional. A card is found by its column-local index, never by
searching for its content, so cards with identical text are kept apart.
Rewrites only ever touch the marker token on a card's first line.
"""

import logging
from dataclasses import replace

from markban.markers import identity_key, replace_line_marker
from markban.models import Board, Card, Movement, Policy
from markban.parser import CARD, parse_board, scan_lines

logger = logging.getLogger(__name__)


def rewrite_card_marker(card: Card, marker: str) -> Card:
    """Return card with its first-line marker token set to marker.

    Returns the same card object when the marker already matches or the card
    has no marker token to rewrite.
    """
    current = card.marker
    if current is None or current == marker:
        return card
    first = replace_line_marker(card.lines[0], marker)
    return replace(card, lines=(first, *card.lines[1:]))


def card_spans(lines) -> dict[str, list[tuple[int, int]]]:
    """Map column key -> [(start, end), ...] for every card in lines."""
    spans: dict[str, list[tuple[int, int]]] = {}
    for kind, name, start, end in scan_lines(lines):
        if kind == CARD:
            spans.setdefault(name.casefold(), []).append((start, end))
    return spans


def _rewrite_at(lines: list[str], spans, column: str, index: int, card: Card, marker: str) -> bool:
    """Rewrite the card at (column, index) in lines. Returns True if edited."""
    column_spans = spans.get(column.casefold(), [])
    if index >= len(column_spans):
        logger.warning("card %d not found in column %r, skipping", index, column)
        return False
    start, end = column_spans[index]
    if identity_key(lines[start:end]) != card.identity:
        logger.warning("card %d in column %r does not match %r, skipping", index, column, card.identity[:30])
        return False
    updated = rewrite_card_marker(Card(lines=tuple(lines[start:end]), start=start), marker)
    if list(updated.lines) == lines[start:end]:
        return False
    lines[start:end] = updated.lines
    logger.debug("line %d in %r: %s -> %s", start, column, card.marker, marker)
    return True


def sync_board(board: Board, text: str, policy: Policy) -> str:
    """Rewrite every card whose marker differs from its column's policy marker.

    Returns text itself (the same object) when nothing needed rewriting.
    """
    lines = text.split("\n")
    spans = card_spans(lines)
    changed = 0
    for column, index, card in board.cards():
        marker = policy.marker_for(column.name)
        if card.marker is None or card.marker == marker:
            continue
        if _rewrite_at(lines, spans, column.name, index, card, marker):
            changed += 1
    if not changed:
        return text
    logger.debug("synced %d card markers", changed)
    return "\n".join(lines)


def sync_movements(text: str, movements: list[Movement], policy: Policy) -> str:
    """Set each moved card's marker to its destination column's policy marker.

    Returns text itself when no moved card needed rewriting.
    """
    if not movements:
        return text
    board = parse_board(text)
    lines = text.split("\n")
    spans = card_spans(lines)
    changed = 0
    for movement in movements:
        column = board[movement.destination]
        if column is None or movement.index >= len(column):
            logger.warning("moved card %r not found in %r", movement.identity[:30], movement.destination)
            continue
        card = column.cards[movement.index]
        if card.identity != movement.identity:
            logger.warning(
                "card %d in %r is not %r, skipping", movement.index, movement.destination, movement.identity[:30]
            )
            continue
        marker = policy.marker_for(movement.destination)
        if _rewrite_at(lines, spans, movement.destination, movement.index, card, marker):
            changed += 1
    if not changed:
        return text
    return "\n".join(lines)
