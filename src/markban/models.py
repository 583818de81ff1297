"""Data models for markban boards."""

from __future__ import annotations

from dataclasses import dataclass, field

from markban.markers import identity_key, is_marker, line_marker

DEFAULT_INCOMPLETE = "[ ]"
DEFAULT_COMPLETE = "[x]"


@dataclass(frozen=True)
class Card:
    """One list item plus its continuation lines."""

    lines: tuple[str, ...]
    start: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def end(self) -> int:
        """Line index one past the card's last line."""
        return self.start + len(self.lines)

    @property
    def identity(self) -> str:
        return identity_key(self.lines)

    @property
    def marker(self) -> str | None:
        return line_marker(self.lines[0]) if self.lines else None


@dataclass
class Column:
    """A named, ordered run of cards under a level-2 heading."""

    name: str
    cards: list[Card] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self):
        return iter(self.cards)


@dataclass
class Board:
    """Columns in document order, keyed case-insensitively.

    ``lines`` holds the source the board was parsed from, so a board is
    always a value derived from text and can be rendered back.
    """

    columns: dict[str, Column] = field(default_factory=dict)
    lines: tuple[str, ...] = ()

    def add_column(self, name: str) -> Column:
        """Return the column called name, creating it at the end if new."""
        key = name.casefold()
        column = self.columns.get(key)
        if column is None:
            column = Column(name=name)
            self.columns[key] = column
        return column

    def __getitem__(self, name: str) -> Column | None:
        return self.columns.get(name.casefold())

    def __contains__(self, name: str) -> bool:
        return name.casefold() in self.columns

    def __iter__(self):
        return iter(self.columns.values())

    def __len__(self) -> int:
        return len(self.columns)

    def names(self) -> list[str]:
        """Column names with their original casing."""
        return [column.name for column in self.columns.values()]

    def cards(self):
        """Yield (column, index, card) for every card in document order."""
        for column in self.columns.values():
            for index, card in enumerate(column.cards):
                yield column, index, card


@dataclass(frozen=True)
class Movement:
    """A card identity that changed column between two snapshots."""

    identity: str
    source: str
    destination: str
    index: int


@dataclass(frozen=True)
class MarkerChange:
    """An aligned line whose marker token changed between two snapshots."""

    line: int
    column: str | None
    previous: str
    current: str


class Policy:
    """Case-insensitive column name -> marker mapping.

    Columns missing from the mapping get the incomplete marker.
    """

    def __init__(
        self,
        mapping: dict[str, str] | None = None,
        incomplete: str = DEFAULT_INCOMPLETE,
        complete: str = DEFAULT_COMPLETE,
    ) -> None:
        for marker in (incomplete, complete):
            if not is_marker(marker):
                raise ValueError(f"invalid marker {marker!r}")
        self.incomplete = incomplete
        self.complete = complete
        self._markers: dict[str, tuple[str, str]] = {}
        for column, marker in (mapping or {}).items():
            self[column] = marker

    def __setitem__(self, column: str, marker: str) -> None:
        if not is_marker(marker):
            raise ValueError(f"invalid marker {marker!r} for column {column!r}")
        self._markers[column.strip().casefold()] = (column.strip(), marker)

    def __contains__(self, column: str) -> bool:
        return column.strip().casefold() in self._markers

    def __len__(self) -> int:
        return len(self._markers)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Policy):
            return NotImplemented
        return (self.items(), self.incomplete, self.complete) == (
            other.items(),
            other.incomplete,
            other.complete,
        )

    def marker_for(self, column: str) -> str:
        """Marker a card in column should carry."""
        entry = self._markers.get(column.strip().casefold())
        return entry[1] if entry else self.incomplete

    def items(self) -> list[tuple[str, str]]:
        """Ordered (column, marker) pairs with original casing."""
        return list(self._markers.values())

    def with_overrides(self, mapping: dict[str, str]) -> Policy:
        """Return a copy with mapping layered on top."""
        policy = Policy(dict(self.items()), self.incomplete, self.complete)
        for column, marker in mapping.items():
            policy[column] = marker
        return policy

    def __repr__(self) -> str:
        pairs = ", ".join(f"{c}={m}" for c, m in self.items())
        return f"<Policy [{pairs}] incomplete={self.incomplete} complete={self.complete}>"
