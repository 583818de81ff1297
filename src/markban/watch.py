"""Watch board files with watchdog and run reconciliation passes on them."""

import asyncio
import logging
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from markban.config import Settings
from markban.files import DocumentError, FileDocument
from markban.reconcile import Reconciler, ReconcileResult

logger = logging.getLogger(__name__)

# passes skipped for these reasons are retried once the document unblocks
RETRY_REASONS = ("blocked", "throttled")


class BoardEventHandler(FileSystemEventHandler):
    """Routes filesystem events for markdown files to a BoardWatcher."""

    def __init__(self, watcher: "BoardWatcher") -> None:
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory:
            return
        # editors and our own atomic writes land as a rename onto the document
        for path in (event.src_path, getattr(event, "dest_path", "")):
            if path and self.watcher.wants(path):
                self.watcher.notify(path)


class BoardWatcher:
    """Watches files and directories of markdown documents.

    A watchdog observer thread feeds changed paths into a pending set, and
    the asyncio side drains it. New files are checked against the settings
    and, when they are boards, opened with the reconciler. Known boards that
    changed get a pass. Files that disappear stop being tracked.
    """

    def __init__(self, reconciler: Reconciler, paths, settings: Settings | None = None, observer_factory=Observer):
        self.reconciler = reconciler
        self.settings = settings or reconciler.settings
        self.paths = [Path(p).resolve() for p in paths]
        self._observer_factory = observer_factory
        self._tracked: set[str] = set()
        self._written: dict[str, tuple[int, int]] = {}
        self._pending: set[str] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    @property
    def tracked(self) -> set[str]:
        return set(self._tracked)

    def wants(self, path: str | Path) -> bool:
        """True for markdown files under the watched paths, outside hidden directories."""
        path = Path(path).resolve()
        if path.suffix.lower() != ".md":
            return False
        for root in self.paths:
            if path == root:
                return True
            try:
                relative = path.relative_to(root)
            except ValueError:
                continue
            return not _hidden(relative)
        return False

    def discover(self) -> list[FileDocument]:
        """Markdown files already under the watched paths."""
        found: dict[str, FileDocument] = {}
        for path in self.paths:
            try:
                if path.is_dir():
                    candidates = [p for p in sorted(path.rglob("*.md")) if not _hidden(p.relative_to(path))]
                elif path.suffix.lower() == ".md" and path.is_file():
                    candidates = [path]
                else:
                    candidates = []
            except OSError as e:
                logger.warning("cannot scan %s: %s", path, e)
                continue
            for candidate in candidates:
                doc = FileDocument(candidate)
                found.setdefault(doc.doc_id, doc)
        return list(found.values())

    def notify(self, path: str | Path) -> None:
        """Queue path for a pass. Safe to call from the observer thread."""
        if self._loop is None:
            self._queue(str(path))
        else:
            self._loop.call_soon_threadsafe(self._queue, str(path))

    def _queue(self, path: str) -> None:
        self._pending.add(path)
        if self._wakeup is not None:
            self._wakeup.set()

    async def drain(self) -> list[ReconcileResult]:
        """Run a pass for every queued path. Returns the results of passes run."""
        results = []
        pending, self._pending = self._pending, set()
        for path in sorted(pending):
            result = await self.handle(path)
            if result is not None:
                results.append(result)
        return results

    async def handle(self, path: str | Path) -> ReconcileResult | None:
        """Open, process or forget the document at path. Never raises."""
        doc = FileDocument(path)
        try:
            stamp = doc.stamp()
        except OSError as e:
            logger.warning("skipping %s: %s", doc.path, e)
            return None
        if stamp is None:
            if doc.doc_id in self._tracked:
                logger.info("no longer tracking %s", doc.path)
                self._tracked.discard(doc.doc_id)
                self._written.pop(doc.doc_id, None)
                self.reconciler.forget(doc.doc_id)
            return None
        if self._written.get(doc.doc_id) == stamp:
            logger.debug("%s: ignoring our own write", doc.path)
            return None

        try:
            result = await self._dispatch(doc)
        except DocumentError as e:
            logger.warning("skipping %s: %s", doc.path, e)
            return None
        except Exception:
            logger.exception("reconcile %s failed", doc.path)
            return None
        if result is None:
            return None

        if result.skipped in RETRY_REASONS:
            self._retry(doc.path)
        elif result.written:
            new_stamp = doc.stamp()
            if new_stamp is not None:
                self._written[doc.doc_id] = new_stamp
        return result

    async def _dispatch(self, doc: FileDocument) -> ReconcileResult | None:
        if doc.doc_id in self._tracked:
            return await self.reconciler.process(doc)
        text = await asyncio.to_thread(doc.read)
        if not self.settings.tracks(doc.path, text):
            return None
        logger.info("tracking %s", doc.path)
        self._tracked.add(doc.doc_id)
        return await self.reconciler.open(doc)

    def _retry(self, path: Path) -> None:
        delay = max(self.settings.cooldown, self.settings.min_write_interval)
        if self._loop is None:
            self._queue(str(path))
        else:
            self._loop.call_later(delay, self._queue, str(path))

    def _schedule(self, observer) -> int:
        handler = BoardEventHandler(self)
        scheduled = 0
        for path in self.paths:
            if path.is_dir():
                observer.schedule(handler, str(path), recursive=True)
            elif path.parent.is_dir():
                observer.schedule(handler, str(path.parent), recursive=False)
            else:
                logger.warning("%s not found, skipping", path)
                continue
            scheduled += 1
        return scheduled

    async def run(self, stop: asyncio.Event) -> None:
        """Watch until stop is set."""
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        observer = self._observer_factory()
        if not self._schedule(observer):
            logger.warning("no watch paths found")
        observer.start()
        try:
            for doc in self.discover():
                self._queue(str(doc.path))
            while not stop.is_set():
                await self.drain()
                self._wakeup.clear()
                if self._pending:
                    continue
                waiter = asyncio.ensure_future(self._wakeup.wait())
                stopper = asyncio.ensure_future(stop.wait())
                await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
                waiter.cancel()
                stopper.cancel()
        finally:
            observer.stop()
            await asyncio.to_thread(observer.join)
            self._loop = None
            self._wakeup = None
        logger.info("stopped")


def _hidden(relative: Path) -> bool:
    return any(part.startswith(".") for part in relative.parts)
