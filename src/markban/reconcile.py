"""Reconciliation passes over tracked board documents.

A pass runs: detect movements → sync moved cards → protect against
normalization → sync the whole board → write once if anything changed.
All per-document state lives in a DocumentContext held by a ContextStore the
caller owns; documents never share state or block each other.
Document I/O runs via asyncio.to_thread to stay non-blocking.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import PurePath

from markban.config import Settings
from markban.markers import has_markers
from markban.models import MarkerChange, Movement, Policy
from markban.movements import detect_movements
from markban.normalization import analyze, looks_like_normalization, restore_markers, revert_normalization
from markban.parser import parse_board
from markban.sync import sync_board, sync_movements

logger = logging.getLogger(__name__)

IDLE = "idle"
DETECTING = "detecting"
PROTECTING = "protecting"
SYNCING = "syncing"
WRITING = "writing"


@dataclass
class DocumentContext:
    """Cross-call state for one tracked document."""

    doc_id: str
    previous: str | None = None
    state: str = IDLE
    writing: bool = False
    cooldown_until: float = 0.0
    last_write: float | None = None
    auto_synced: bool = False

    def blocked(self, now: float) -> bool:
        """True while writing, and for the cooldown after a write."""
        return self.writing or now < self.cooldown_until


class ContextStore:
    """Document contexts keyed by document identity."""

    def __init__(self) -> None:
        self._contexts: dict[str, DocumentContext] = {}

    def get(self, doc_id: str) -> DocumentContext:
        """Return the context for doc_id, creating it on first use."""
        ctx = self._contexts.get(doc_id)
        if ctx is None:
            ctx = DocumentContext(doc_id)
            self._contexts[doc_id] = ctx
        return ctx

    def discard(self, doc_id: str) -> None:
        self._contexts.pop(doc_id, None)

    def clear(self) -> None:
        self._contexts.clear()

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def __iter__(self):
        return iter(list(self._contexts))


@dataclass
class ReconcileResult:
    """Outcome of one pass. ``text`` is always safe to treat as current."""

    text: str
    changed: bool = False
    written: bool = False
    movements: list[Movement] = field(default_factory=list)
    restored: list[MarkerChange] = field(default_factory=list)
    skipped: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _display_name(doc_id: str) -> str:
    return PurePath(doc_id).name or doc_id


class Reconciler:
    """Runs reconciliation passes for any number of documents.

    ``refresh`` is an optional coroutine function called with the document id
    after each write, for hosts that must re-index the file; it is awaited for
    at most ``settings.index_timeout`` seconds. ``notify`` receives short
    user-facing messages.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: ContextStore | None = None,
        clock=time.monotonic,
        notify=None,
        refresh=None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store if store is not None else ContextStore()
        self._clock = clock
        self._notify = notify
        self._refresh = refresh

    # --- pure passes ---

    def compute(self, previous: str, text: str, policy: Policy | None = None) -> ReconcileResult:
        """Run detection, protection and sync of text against previous. No state."""
        return self._run(DocumentContext(""), previous, text, policy or self.settings.policy_for(text))

    def _run(self, ctx: DocumentContext, previous: str, text: str, policy: Policy) -> ReconcileResult:
        if not has_markers(text):
            return ReconcileResult(text=text)
        ctx.state = DETECTING
        movements = detect_movements(previous, text)
        if movements:
            logger.info("%s: %d card movements", _display_name(ctx.doc_id) or "board", len(movements))
        result = sync_movements(text, movements, policy)

        restored: list[MarkerChange] = []
        if self.settings.protect_normalization:
            ctx.state = PROTECTING
            report = analyze(previous, result, movements, policy)
            if report.unwanted:
                moved_lines = _moved_card_lines(result, movements)
                restored = [c for c in report.unwanted if c.line not in moved_lines]
                result = restore_markers(result, restored)
                if restored:
                    logger.info("restored %d normalized markers", len(restored))

        ctx.state = SYNCING
        result = sync_board(parse_board(result), result, policy)
        ctx.state = IDLE
        return ReconcileResult(text=result, changed=result != text, movements=movements, restored=restored)

    # --- stateful passes ---

    def reconcile(self, doc_id: str, text: str, policy: Policy | None = None) -> ReconcileResult:
        """Reconcile a newly observed text of doc_id against its stored previous text.

        The first observation only records a baseline. Requests arriving while
        the document is blocked are dropped, not queued; the next change
        notification retries.
        """
        ctx = self.store.get(doc_id)
        if ctx.blocked(self._clock()):
            logger.debug("%s: pass dropped while writing", doc_id)
            return ReconcileResult(text=text, skipped="blocked")
        if not self.settings.sync_enabled:
            ctx.previous = text
            return ReconcileResult(text=text, skipped="disabled")
        if ctx.previous is None:
            logger.debug("%s: first observation, storing baseline", doc_id)
            ctx.previous = text
            return ReconcileResult(text=text, skipped="first")
        if text == ctx.previous:
            return ReconcileResult(text=text, skipped="unchanged")

        result = self._run(ctx, ctx.previous, text, policy or self.settings.policy_for(text))
        ctx.previous = result.text
        return result

    def auto_sync(self, doc_id: str, text: str, policy: Policy | None = None) -> ReconcileResult:
        """Full-board sync the first time a document is opened."""
        ctx = self.store.get(doc_id)
        if ctx.blocked(self._clock()):
            return ReconcileResult(text=text, skipped="blocked")
        if ctx.auto_synced:
            return ReconcileResult(text=text, skipped="auto-synced")
        ctx.auto_synced = True
        policy = policy or self.settings.policy_for(text)
        ctx.state = SYNCING
        result = sync_board(parse_board(text), text, policy)
        ctx.state = IDLE
        ctx.previous = result
        return ReconcileResult(text=result, changed=result is not text)

    def intercept(self, doc_id: str, text: str, policy: Policy | None = None) -> ReconcileResult:
        """Low-latency check of an in-flight edit for editor normalization.

        Uses the statistical check only, so it can run before full movement
        detection. When it fires, normalized markers are reverted and the
        board is synced. The stored baseline is left alone; it moves to the
        result once the result is written.
        """
        ctx = self.store.get(doc_id)
        if ctx.blocked(self._clock()):
            return ReconcileResult(text=text, skipped="blocked")
        if not self.settings.sync_enabled:
            return ReconcileResult(text=text, skipped="disabled")
        if not self.settings.protect_normalization or ctx.previous is None:
            return ReconcileResult(text=text, skipped="no baseline")
        policy = policy or self.settings.policy_for(text)
        if not looks_like_normalization(ctx.previous, text, policy):
            return ReconcileResult(text=text, skipped="clean")
        reverted = revert_normalization(ctx.previous, text, policy)
        if reverted is text:
            return ReconcileResult(text=text, skipped="clean")
        result = sync_board(parse_board(reverted), reverted, policy)
        logger.info("%s: reverted editor normalization", doc_id)
        return ReconcileResult(text=result, changed=result != text)

    def forget(self, doc_id: str) -> None:
        """Stop tracking doc_id and drop its state."""
        self.store.discard(doc_id)

    def reset(self) -> None:
        self.store.clear()

    # --- passes with document I/O ---

    async def process(self, document, policy: Policy | None = None) -> ReconcileResult:
        """Read a changed document, reconcile it and write it back if needed.

        The quick normalization check runs first; a full pass runs when it
        finds nothing to revert. document must provide ``doc_id``, ``read()``
        and ``write(text)``.
        """
        ctx = self.store.get(document.doc_id)
        text = await asyncio.to_thread(document.read)
        now = self._clock()
        if ctx.blocked(now):
            logger.debug("%s: pass dropped while writing", document.doc_id)
            return ReconcileResult(text=text, skipped="blocked")
        if ctx.last_write is not None and now - ctx.last_write < self.settings.min_write_interval:
            logger.debug("%s: throttled", document.doc_id)
            return ReconcileResult(text=text, skipped="throttled")

        result = self.intercept(document.doc_id, text, policy)
        if result.changed:
            return await self._write(ctx, document, text, result)

        result = self.reconcile(document.doc_id, text, policy)
        if not result.changed:
            return result
        return await self._write(ctx, document, text, result)

    async def open(self, document, policy: Policy | None = None) -> ReconcileResult:
        """Start tracking a document: record a baseline, auto-syncing if enabled."""
        ctx = self.store.get(document.doc_id)
        text = await asyncio.to_thread(document.read)
        if not (self.settings.sync_enabled and self.settings.auto_sync_on_open):
            if ctx.previous is None:
                ctx.previous = text
            return ReconcileResult(text=text, skipped="baseline")
        result = self.auto_sync(document.doc_id, text, policy)
        if not result.changed:
            return result
        result = await self._write(ctx, document, text, result)
        if result.written and self._notify:
            self._notify(f"Auto-synced card markers in {_display_name(document.doc_id)}")
        return result

    async def _write(self, ctx: DocumentContext, document, original: str, result: ReconcileResult) -> ReconcileResult:
        """Write result.text as one replacement, guarding against our own echo."""
        ctx.writing = True
        ctx.state = WRITING
        try:
            await asyncio.to_thread(document.write, result.text)
        except Exception as exc:
            logger.warning("%s: write failed: %s", document.doc_id, exc)
            ctx.previous = original
            return ReconcileResult(text=original, movements=result.movements, error=str(exc))
        else:
            ctx.previous = result.text
            ctx.last_write = self._clock()
            result.written = True
            logger.info("%s: wrote reconciled board", document.doc_id)
            if self._notify and result.movements:
                self._notify(f"Updated {len(result.movements)} moved card(s) in {_display_name(document.doc_id)}")
            await self._wait_for_refresh(document.doc_id)
            ctx.cooldown_until = self._clock() + self.settings.cooldown
            return result
        finally:
            ctx.writing = False
            ctx.state = IDLE

    async def _wait_for_refresh(self, doc_id: str) -> None:
        if self._refresh is None:
            return
        try:
            await asyncio.wait_for(self._refresh(doc_id), timeout=self.settings.index_timeout)
        except asyncio.TimeoutError:
            logger.debug("%s: index refresh still pending after %.1fs", doc_id, self.settings.index_timeout)
        except Exception as exc:
            logger.warning("%s: index refresh failed: %s", doc_id, exc)


def _moved_card_lines(text: str, movements: list[Movement]) -> set[int]:
    """First-line indexes of the cards named by movements."""
    board = parse_board(text)
    lines = set()
    for movement in movements:
        column = board[movement.destination]
        if column is not None and movement.index < len(column):
            lines.add(column.cards[movement.index].start)
    return lines
