"""Infer card movements between two snapshots of a board."""

import logging
from collections import Counter

from markban.models import Board, Movement
from markban.parser import parse_board

logger = logging.getLogger(__name__)


def _as_board(value: Board | str) -> Board:
    return value if isinstance(value, Board) else parse_board(value)


def _column_counts(board: Board) -> dict[str, Counter]:
    """Map identity -> Counter of column keys, in column order."""
    counts: dict[str, Counter] = {}
    for column, _, card in board.cards():
        counts.setdefault(card.identity, Counter())[column.name.casefold()] += 1
    return counts


def detect_movements(previous: Board | str, current: Board | str) -> list[Movement]:
    """Detect cards that appear in a column they did not occupy before.

    Works on occurrence counts per (identity, column), not on an edit script.
    For each current occurrence of a known identity in a column it was never
    in, the source is the first previous column (in column order) that now
    holds fewer copies of it. Occurrences without such a column are not
    movements. Cards sharing an identity are matched by this rule alone, so
    attribution between duplicates is best-effort.
    """
    old = _as_board(previous)
    new = _as_board(current)
    old_counts = _column_counts(old)
    new_counts = _column_counts(new)

    movements = []
    for column, index, card in new.cards():
        identity = card.identity
        before = old_counts.get(identity)
        if not before:
            continue
        if column.name.casefold() in before:
            continue
        after = new_counts[identity]
        source = next((key for key, n in before.items() if n > after.get(key, 0)), None)
        if source is None:
            logger.debug("no source column for %r in %r", identity[:30], column.name)
            continue
        movement = Movement(
            identity=identity,
            source=old[source].name,
            destination=column.name,
            index=index,
        )
        logger.debug("movement %r: %s -> %s", identity[:30], movement.source, movement.destination)
        movements.append(movement)
    return movements
