"""Debounced rebuilds for the development server.

The watcher listens to filesystem events in the layouts, data and includes
directories and in every directory under the source tree. Each relevant event
(re)arms a single timer; when the timer fires after a quiet period the site is
reloaded and rebuilt, watches are re-registered (new directories may have
appeared) and, if the build succeeded, a rebuild event is published.

States: IDLE -> PENDING (timer armed) -> REBUILDING -> IDLE.

Key classes:
- DebouncedWatcher: watchdog event handler driving the rebuild timer.
- WatcherState: The watcher's current state.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .broker import REBUILD_EVENT, EventBroker
from .build import build_site
from .config import Config
from .errors import BuildError
from .site import Site

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.1

# Events that do not change file contents or directory entries.
IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class WatcherState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    REBUILDING = "rebuilding"


def rebuild_site(config: Config) -> None:
    """Reload the site from scratch and build it."""
    build_site(Site.load(config))


class DebouncedWatcher(FileSystemEventHandler):
    """Coalesces bursts of filesystem events into single rebuilds.

    Attributes:
        config: Project configuration.
        broker: Broker notified after each successful rebuild.
        delay: Quiet period in seconds before a rebuild starts.
    """

    def __init__(
        self,
        config: Config,
        broker: EventBroker,
        delay: float = DEBOUNCE_SECONDS,
        rebuild: Callable[[Config], None] | None = None,
        observer=None,
    ):
        """Initialize the watcher.

        Args:
            config: Project configuration.
            broker: Broker to publish rebuild events to.
            delay: Debounce delay in seconds.
            rebuild: Callable doing the actual rebuild, defaults to rebuild_site.
            observer: watchdog observer, a new Observer when omitted.
        """
        super().__init__()
        self.config = config
        self.broker = broker
        self.delay = delay
        self._rebuild = rebuild or rebuild_site
        self._observer = observer if observer is not None else Observer()
        self._watches: dict[str, object] = {}
        self._stats: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()
        self._build_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._state = WatcherState.IDLE

    @property
    def state(self) -> WatcherState:
        with self._lock:
            return self._state

    def start(self) -> None:
        """Start observing and run the first rebuild right away."""
        self._observer.start()
        self.watch_all()
        self._arm(0)

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._state = WatcherState.IDLE
        self._observer.stop()
        self._observer.join()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if not self.is_relevant(event):
            return
        logger.info("file %s changed", event.src_path)
        self._arm(self.delay)

    def is_relevant(self, event: FileSystemEvent) -> bool:
        """Whether ``event`` should trigger a rebuild.

        Access-only events, changes inside the target directory and
        metadata-only changes are ignored. watchdog reports chmod as
        ``modified``, so a modified file counts only when its mtime or size
        moved; a modified directory always has its entry changes reported
        as separate events.
        """
        if event.event_type in IGNORED_EVENT_TYPES:
            return False
        path = Path(os.fsdecode(event.src_path))
        try:
            path.relative_to(self.config.target_dir)
            return False
        except ValueError:
            pass
        if event.event_type == "modified":
            if event.is_directory:
                return False
            return self._content_changed(path)
        return True

    def _content_changed(self, path: Path) -> bool:
        key = str(path)
        try:
            st = path.stat()
        except OSError:
            return True
        current = (st.st_mtime_ns, st.st_size)
        with self._lock:
            previous = self._stats.get(key)
            self._stats[key] = current
        return previous != current

    def _snapshot(self, directories: list[Path]) -> None:
        """Record mtime and size of files in ``directories`` not seen before.

        Known entries keep their old values so a change whose event arrives
        after the snapshot is still detected.
        """
        stats: dict[str, tuple[int, int]] = {}
        for directory in directories:
            try:
                entries = list(os.scandir(directory))
            except OSError:
                continue
            for entry in entries:
                try:
                    if entry.is_file():
                        st = entry.stat()
                        stats[entry.path] = (st.st_mtime_ns, st.st_size)
                except OSError:
                    continue
        with self._lock:
            for key, value in stats.items():
                self._stats.setdefault(key, value)

    def watched_dirs(self) -> list[Path]:
        """Directories to watch: layouts, data, includes and every source directory."""
        config = self.config
        dirs = [config.layouts_dir, config.data_dir, config.includes_dir]
        if config.src_dir.is_dir():
            for dirpath, dirnames, _ in os.walk(config.src_dir):
                dirnames.sort()
                dirs.append(Path(dirpath))
        return dirs

    def watch_all(self) -> None:
        """Register a non-recursive watch on every watched directory.

        Watches on directories that no longer exist are dropped. Failures are
        logged and the remaining directories are still watched.
        """
        for key, watch in list(self._watches.items()):
            if not os.path.isdir(key):
                try:
                    self._observer.unschedule(watch)
                except (KeyError, OSError) as exc:
                    logger.debug("couldn't remove watch on %s: %s", key, exc)
                del self._watches[key]

        directories = self.watched_dirs()
        self._snapshot(directories)
        for directory in directories:
            key = str(directory)
            if key in self._watches or not directory.is_dir():
                continue
            try:
                self._watches[key] = self._observer.schedule(self, key, recursive=False)
            except OSError as exc:
                logger.warning("couldn't watch %s: %s", key, exc)

    def _arm(self, delay: float) -> None:
        """Replace any pending timer with one firing after ``delay`` seconds."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(delay, self._fire)
            timer.daemon = True
            self._timer = timer
            if self._state is WatcherState.IDLE:
                self._state = WatcherState.PENDING
            timer.start()

    def _fire(self) -> None:
        # One rebuild at a time; a timer firing mid-build waits here.
        with self._build_lock:
            with self._lock:
                if self._timer is threading.current_thread():
                    self._timer = None
                self._state = WatcherState.REBUILDING
            try:
                self._run_rebuild()
            finally:
                with self._lock:
                    pending = self._timer is not None
                    self._state = WatcherState.PENDING if pending else WatcherState.IDLE

    def _run_rebuild(self) -> None:
        logger.info("building site")
        try:
            self._rebuild(self.config)
        except BuildError as exc:
            logger.error("build error: %s", exc)
            self.watch_all()
            return
        self.watch_all()
        self.broker.publish(REBUILD_EVENT)
        url = self.config.site_url or str(self.config.target_dir)
        logger.info("done, serving at %s", url)
