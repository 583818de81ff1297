"""Tests for the reconciliation orchestrator."""

import asyncio

import pytest

from markban.config import Settings
from markban.models import Movement
from markban.reconcile import IDLE, ContextStore, DocumentContext, Reconciler

from tests.conftest import BOARD

MOVED = BOARD.replace("- [ ] Write docs\n", "").replace("- [/] Ship parser\n", "- [/] Ship parser\n- [ ] Write docs\n")
NORMALIZED = BOARD.replace("- [/] Ship parser", "- [x] Ship parser")


class FakeDocument:
    """In-memory document with the read/write interface of FileDocument."""

    def __init__(self, text, doc_id="board.md"):
        self.doc_id = doc_id
        self.text = text
        self.writes = []
        self.fail = False

    def read(self):
        return self.text

    def write(self, text):
        if self.fail:
            raise OSError("disk full")
        self.writes.append(text)
        self.text = text


@pytest.fixture
def clock():
    """A settable clock: clock[0] is the current time."""
    return [100.0]


def make_reconciler(clock, **settings):
    return Reconciler(Settings(**settings), clock=lambda: clock[0])


# --- DocumentContext / ContextStore ---


def test_context_blocked_while_writing_and_cooling_down():
    ctx = DocumentContext("a")
    assert not ctx.blocked(10.0)
    ctx.writing = True
    assert ctx.blocked(10.0)
    ctx.writing = False
    ctx.cooldown_until = 10.3
    assert ctx.blocked(10.2)
    assert not ctx.blocked(10.3)


def test_store_creates_on_get():
    store = ContextStore()
    assert "a" not in store
    ctx = store.get("a")
    assert store.get("a") is ctx
    assert "a" in store
    assert len(store) == 1
    store.discard("a")
    assert "a" not in store
    store.discard("a")


def test_store_iterates_doc_ids():
    store = ContextStore()
    store.get("a")
    store.get("b")
    assert sorted(store) == ["a", "b"]
    store.clear()
    assert len(store) == 0


# --- compute ---


def test_compute_syncs_moved_card():
    result = Reconciler().compute(BOARD, MOVED)
    assert result.changed
    assert result.movements == [Movement("Write docs", "Todo", "In Progress", 1)]
    assert "- [/] Ship parser\n- [/] Write docs\n" in result.text


def test_compute_moved_to_done_gets_complete_marker():
    moved = BOARD.replace("- [/] Ship parser\n", "")
    moved = moved.replace("- [x] Set up CI\n", "- [x] Set up CI\n- [/] Ship parser\n")
    result = Reconciler().compute(BOARD, moved)
    assert result.text.endswith("- [x] Set up CI\n- [x] Ship parser\n")


def test_compute_restores_normalized_marker():
    result = Reconciler().compute(BOARD, NORMALIZED)
    assert result.text == BOARD
    assert result.changed
    assert len(result.restored) == 1
    assert result.restored[0].previous == "[/]"
    assert result.restored[0].current == "[x]"


def test_compute_without_protection_still_syncs():
    result = Reconciler(Settings(protect_normalization=False)).compute(BOARD, NORMALIZED)
    assert result.text == BOARD
    assert result.restored == []


def test_compute_consistent_text_is_unchanged():
    result = Reconciler().compute(BOARD, BOARD)
    assert not result.changed
    assert result.text == BOARD
    assert result.movements == []


def test_compute_result_is_a_fixed_point():
    first = Reconciler().compute(BOARD, MOVED)
    second = Reconciler().compute(BOARD, first.text)
    assert second.text == first.text
    assert not second.changed


def test_compute_text_without_markers_is_untouched():
    result = Reconciler().compute("## Todo\n- a\n", "## Done\n- a\n")
    assert result.text == "## Done\n- a\n"
    assert not result.changed


def test_compute_skips_text_without_markers():
    text = "## Todo\n- a\n## Done\n- b\n"
    result = Reconciler().compute("## Done\n- a\n- b\n", text)
    assert result.text is text
    assert result.movements == []


def test_compute_uses_front_matter_policy():
    text = "---\nmarkban-columns:\n  Review: '[r]'\n---\n## Todo\n## Review\n- [ ] a\n"
    previous = "---\nmarkban-columns:\n  Review: '[r]'\n---\n## Todo\n- [ ] a\n## Review\n"
    result = Reconciler().compute(previous, text)
    assert result.text.endswith("## Review\n- [r] a\n")


# --- reconcile ---


def test_first_observation_records_baseline(clock):
    r = make_reconciler(clock)
    result = r.reconcile("doc", NORMALIZED)
    assert result.skipped == "first"
    assert result.text == NORMALIZED
    assert r.store.get("doc").previous == NORMALIZED


def test_unchanged_text_is_skipped(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    assert r.reconcile("doc", BOARD).skipped == "unchanged"


def test_reconcile_updates_previous_to_result(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    result = r.reconcile("doc", MOVED)
    assert result.changed
    assert r.store.get("doc").previous == result.text
    assert r.store.get("doc").state == IDLE


def test_reconcile_disabled(clock):
    r = make_reconciler(clock, sync_enabled=False)
    r.reconcile("doc", BOARD)
    result = r.reconcile("doc", MOVED)
    assert result.skipped == "disabled"
    assert result.text == MOVED


def test_reconcile_dropped_while_blocked(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    r.store.get("doc").cooldown_until = clock[0] + 1
    result = r.reconcile("doc", MOVED)
    assert result.skipped == "blocked"
    assert r.store.get("doc").previous == BOARD


def test_documents_do_not_block_each_other(clock):
    r = make_reconciler(clock)
    r.reconcile("a", BOARD)
    r.reconcile("b", BOARD)
    r.store.get("a").writing = True
    assert r.reconcile("b", MOVED).changed


def test_forget_drops_state(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    r.forget("doc")
    assert "doc" not in r.store
    assert r.reconcile("doc", MOVED).skipped == "first"


def test_reset_drops_everything(clock):
    r = make_reconciler(clock)
    r.reconcile("a", BOARD)
    r.reconcile("b", BOARD)
    r.reset()
    assert len(r.store) == 0


# --- auto sync / intercept ---


def test_auto_sync_runs_once(clock):
    r = make_reconciler(clock)
    result = r.auto_sync("doc", NORMALIZED)
    assert result.changed
    assert result.text == BOARD
    assert r.store.get("doc").previous == BOARD
    assert r.auto_sync("doc", NORMALIZED).skipped == "auto-synced"


def test_auto_sync_consistent_board(clock):
    r = make_reconciler(clock)
    result = r.auto_sync("doc", BOARD)
    assert not result.changed
    assert result.text is BOARD


def test_intercept_without_baseline(clock):
    r = make_reconciler(clock)
    assert r.intercept("doc", NORMALIZED).skipped == "no baseline"


def test_intercept_reverts_normalization(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    result = r.intercept("doc", NORMALIZED)
    assert result.changed
    assert result.text == BOARD
    assert r.store.get("doc").previous == BOARD


def test_intercept_leaves_baseline_until_written(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    edited = NORMALIZED.replace("# Sprint", "# Sprint 2")
    result = r.intercept("doc", edited)
    assert result.changed
    assert r.store.get("doc").previous == BOARD


def test_intercept_disabled(clock):
    r = make_reconciler(clock, sync_enabled=False)
    r.reconcile("doc", BOARD)
    assert r.intercept("doc", NORMALIZED).skipped == "disabled"


def test_intercept_ignores_ordinary_edits(clock):
    r = make_reconciler(clock)
    r.reconcile("doc", BOARD)
    edited = BOARD.replace("- [ ] Write docs", "- [x] Write docs")
    assert r.intercept("doc", edited).skipped == "clean"


# --- process / open ---


@pytest.mark.asyncio
async def test_process_first_read_is_baseline(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(NORMALIZED)
    result = await r.process(doc)
    assert result.skipped == "first"
    assert doc.writes == []


@pytest.mark.asyncio
async def test_process_writes_once(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    result = await r.process(doc)
    assert result.written
    assert doc.writes == [BOARD]
    ctx = r.store.get(doc.doc_id)
    assert ctx.last_write == clock[0]
    assert ctx.cooldown_until == pytest.approx(clock[0] + 0.3)
    assert not ctx.writing


@pytest.mark.asyncio
async def test_process_reverts_normalization_without_full_pass(clock, monkeypatch):
    r = make_reconciler(clock)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED

    def full_pass(*args, **kwargs):
        raise AssertionError("full pass should not run")

    monkeypatch.setattr(r, "reconcile", full_pass)
    result = await r.process(doc)
    assert result.written
    assert doc.writes == [BOARD]
    assert r.store.get(doc.doc_id).previous == BOARD


@pytest.mark.asyncio
async def test_process_no_change_no_write(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = BOARD.replace("# Sprint", "# Sprint 2")
    result = await r.process(doc)
    assert not result.changed
    assert doc.writes == []


@pytest.mark.asyncio
async def test_process_blocked_during_cooldown(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    await r.process(doc)
    doc.text = MOVED
    clock[0] += 0.1
    assert (await r.process(doc)).skipped == "blocked"
    clock[0] += 0.5
    assert (await r.process(doc)).written


@pytest.mark.asyncio
async def test_process_throttled_after_write(clock):
    r = make_reconciler(clock, cooldown=0.0, min_write_interval=1.0)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    await r.process(doc)
    doc.text = MOVED
    clock[0] += 0.5
    assert (await r.process(doc)).skipped == "throttled"
    clock[0] += 1.0
    assert (await r.process(doc)).written


@pytest.mark.asyncio
async def test_process_write_failure_keeps_original(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    doc.fail = True
    result = await r.process(doc)
    assert not result.ok
    assert result.error == "disk full"
    assert result.text == NORMALIZED
    assert not result.written
    ctx = r.store.get(doc.doc_id)
    assert ctx.previous == NORMALIZED
    assert not ctx.writing
    assert ctx.cooldown_until == 0.0

    doc.fail = False
    doc.text = NORMALIZED.replace("# Sprint", "# Sprint 2")
    result = await r.process(doc)
    assert result.written
    assert doc.writes == [BOARD.replace("# Sprint", "# Sprint 2")]


@pytest.mark.asyncio
async def test_process_notifies_on_movements(clock):
    messages = []
    r = Reconciler(clock=lambda: clock[0], notify=messages.append)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = MOVED
    await r.process(doc)
    assert messages == ["Updated 1 moved card(s) in board.md"]


@pytest.mark.asyncio
async def test_refresh_is_awaited(clock):
    refreshed = []

    async def refresh(doc_id):
        refreshed.append(doc_id)

    r = Reconciler(clock=lambda: clock[0], refresh=refresh)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    await r.process(doc)
    assert refreshed == ["board.md"]


@pytest.mark.asyncio
async def test_refresh_timeout_is_soft(clock):
    async def slow(doc_id):
        await asyncio.sleep(10)

    r = Reconciler(Settings(index_timeout=0.01), clock=lambda: clock[0], refresh=slow)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    result = await r.process(doc)
    assert result.written


@pytest.mark.asyncio
async def test_refresh_failure_is_soft(clock):
    async def broken(doc_id):
        raise RuntimeError("index gone")

    r = Reconciler(clock=lambda: clock[0], refresh=broken)
    doc = FakeDocument(BOARD)
    await r.process(doc)
    doc.text = NORMALIZED
    assert (await r.process(doc)).written


@pytest.mark.asyncio
async def test_open_records_baseline(clock):
    r = make_reconciler(clock)
    doc = FakeDocument(NORMALIZED)
    result = await r.open(doc)
    assert result.skipped == "baseline"
    assert doc.writes == []
    assert r.store.get(doc.doc_id).previous == NORMALIZED


@pytest.mark.asyncio
async def test_open_auto_syncs(clock):
    messages = []
    r = Reconciler(Settings(auto_sync_on_open=True), clock=lambda: clock[0], notify=messages.append)
    doc = FakeDocument(NORMALIZED)
    result = await r.open(doc)
    assert result.written
    assert doc.writes == [BOARD]
    assert messages == ["Auto-synced card markers in board.md"]
