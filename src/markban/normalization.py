"""Tell real card moves apart from marker regressions made by an external editor.

Some editors rewrite custom markers such as ``[/]`` back to a standard one
(usually the complete marker) when they save a board. The analysis here
compares two snapshots line by line and sorts every marker change into
legitimate (explained by a movement), unwanted (a regression to undo) or
other.
"""

import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher

from markban.markers import line_marker, replace_line_marker, strip_line_marker
from markban.models import MarkerChange, Movement, Policy
from markban.parser import column_tags

logger = logging.getLogger(__name__)


@dataclass
class NormalizationReport:
    """Marker changes between two snapshots, classified."""

    legitimate: list[MarkerChange] = field(default_factory=list)
    unwanted: list[MarkerChange] = field(default_factory=list)
    other: list[MarkerChange] = field(default_factory=list)

    @property
    def has_unwanted(self) -> bool:
        return bool(self.unwanted)


@dataclass
class NormalizationStats:
    """Counts behind the quick pre-write normalization check."""

    changes: int = 0
    conversions: int = 0

    @property
    def likely(self) -> bool:
        """Two or more custom->complete conversions, or at least half of all changes."""
        if self.conversions >= 2:
            return True
        return self.changes > 0 and self.conversions / self.changes >= 0.5


def align_lines(previous: list[str], current: list[str]) -> list[tuple[int, int]]:
    """Pair up line indices of two snapshots.

    Matching runs pair one-to-one; inside a replaced run lines pair by offset.
    Inserted or deleted lines stay unpaired, so they cannot shift the pairing
    of everything after them. Callers pass marker-free keys so that a
    marker-only edit still counts as a match.
    """
    matcher = SequenceMatcher(None, previous, current, autojunk=False)
    pairs = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("equal", "replace"):
            for k in range(min(i2 - i1, j2 - j1)):
                pairs.append((i1 + k, j1 + k))
    return pairs


def marker_changes(previous: str, current: str) -> list[MarkerChange]:
    """Aligned lines whose marker token changed while the rest stayed the same.

    Line numbers and columns refer to the current text.
    """
    old_lines = previous.split("\n")
    new_lines = current.split("\n")
    tags = column_tags(new_lines)
    changes = []
    old_keys = [strip_line_marker(line) for line in old_lines]
    new_keys = [strip_line_marker(line) for line in new_lines]
    for i, j in align_lines(old_keys, new_keys):
        old_marker = line_marker(old_lines[i])
        new_marker = line_marker(new_lines[j])
        if old_marker is None or new_marker is None or old_marker == new_marker:
            continue
        if old_keys[i] != new_keys[j]:
            continue
        changes.append(MarkerChange(line=j, column=tags[j], previous=old_marker, current=new_marker))
    return changes


def analyze(previous: str, current: str, movements: list[Movement], policy: Policy) -> NormalizationReport:
    """Classify every marker change between previous and current."""
    report = NormalizationReport()
    destinations = {m.destination.casefold() for m in movements}
    for change in marker_changes(previous, current):
        if change.column is None:
            report.other.append(change)
            continue
        expected = policy.marker_for(change.column)
        if change.column.casefold() in destinations and change.current == expected:
            report.legitimate.append(change)
        elif change.previous == expected and change.current == policy.complete and expected != policy.complete:
            logger.debug(
                "unwanted normalization in %r line %d: %s -> %s",
                change.column,
                change.line,
                change.previous,
                change.current,
            )
            report.unwanted.append(change)
        else:
            report.other.append(change)
    return report


def normalization_stats(previous: str, current: str, policy: Policy) -> NormalizationStats:
    """Count marker changes and custom->complete conversions."""
    stats = NormalizationStats()
    standard = (policy.incomplete, policy.complete)
    for change in marker_changes(previous, current):
        stats.changes += 1
        if change.previous not in standard and change.current == policy.complete:
            stats.conversions += 1
    return stats


def looks_like_normalization(previous: str, current: str, policy: Policy) -> bool:
    """Quick statistical check for an editor-made normalization."""
    stats = normalization_stats(previous, current, policy)
    logger.debug("%d custom->complete out of %d marker changes", stats.conversions, stats.changes)
    return stats.likely


def restore_markers(text: str, changes: list[MarkerChange]) -> str:
    """Put each change's previous marker back, one token at a time.

    A line whose marker no longer equals the change's current marker is left
    alone. Returns text itself when nothing was restored.
    """
    if not changes:
        return text
    lines = text.split("\n")
    restored = 0
    for change in changes:
        if change.line >= len(lines):
            continue
        line = lines[change.line]
        if line_marker(line) != change.current:
            continue
        lines[change.line] = replace_line_marker(line, change.previous)
        restored += 1
    if not restored:
        return text
    return "\n".join(lines)


def revert_normalization(previous: str, current: str, policy: Policy) -> str:
    """Undo every change that moved a card away from its column's policy marker."""
    reverts = []
    for change in marker_changes(previous, current):
        if change.column is None:
            continue
        expected = policy.marker_for(change.column)
        if change.previous == expected and change.current != expected:
            reverts.append(change)
    if reverts:
        logger.info("reverting %d normalized markers", len(reverts))
    return restore_markers(current, reverts)
