"""Handler for 'markban watch'."""

import asyncio
import logging
import signal
import sys
from functools import partial

from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from markban.cli._common import error, load_settings_or_die, notifier
from markban.reconcile import Reconciler
from markban.watch import BoardWatcher

logger = logging.getLogger(__name__)


def watch(args) -> int:
    """Watch board files and reconcile them until SIGINT/SIGTERM."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    settings = load_settings_or_die(args)
    if not settings.sync_enabled:
        error("sync is disabled in settings", args.json)

    if args.poll:
        interval = args.interval if args.interval is not None else settings.poll_interval
        observer_factory = partial(PollingObserver, timeout=interval)
    else:
        observer_factory = Observer

    reconciler = Reconciler(settings, notify=notifier(args.json))
    watcher = BoardWatcher(reconciler, args.paths, settings, observer_factory=observer_factory)

    asyncio.run(_run(watcher))
    return 0


async def _run(watcher: BoardWatcher) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    logger.info("watching %s", ", ".join(str(p) for p in watcher.paths))
    await watcher.run(stop)
