from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Set
import asyncio
import os
import re

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..config import settings
from ..parser.source_parser import normalize_path
from ..scanner.local_codebase_scanner import load_gitignore_spec
from ..utils.logger import app_logger


class WatchEventHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread into the event loop."""

    def __init__(self, watcher: "ChangeWatcher", loop: asyncio.AbstractEventLoop):
        self.watcher = watcher
        self.loop = loop

    def _forward(self, event, path):
        if event.is_directory:
            return
        self.loop.call_soon_threadsafe(self.watcher.handle_event, os.fsdecode(path))

    def on_created(self, event):
        self._forward(event, event.src_path)

    def on_modified(self, event):
        self._forward(event, event.src_path)

    def on_moved(self, event):
        self._forward(event, event.dest_path)


class ChangeWatcher:
    """Re-registers source files after they stop changing.

    Every accepted event restarts that path's timer; when the timer
    elapses without another event the ``on_change`` coroutine runs for the
    path. Paths are debounced independently of each other.
    """

    def __init__(self, root_path: str, on_change: Callable[[str], Awaitable],
                 extensions: Optional[List[str]] = None,
                 ignore_patterns: Optional[List[str]] = None,
                 debounce_seconds: Optional[float] = None):
        self.root_path = Path(root_path).resolve()
        self.on_change = on_change
        self.extensions = {ext.lower() for ext in extensions or settings.source_extensions_list}
        patterns = settings.watch_ignore_patterns_list if ignore_patterns is None else ignore_patterns
        self.ignore_regexes = [re.compile(pattern) for pattern in patterns]
        self.debounce_seconds = settings.debounce_seconds if debounce_seconds is None else debounce_seconds
        self.gitignore = load_gitignore_spec(self.root_path)
        self.logger = app_logger.bind(component="watcher")

        self.timers: Dict[str, asyncio.TimerHandle] = {}
        self.tasks: Set[asyncio.Task] = set()
        self.observer = None

    def should_watch(self, path: str) -> bool:
        """Extension, ignore-pattern and .gitignore filtering for an absolute path."""
        file_path = Path(path)
        if file_path.suffix.lower() not in self.extensions:
            return False

        try:
            relative = file_path.relative_to(self.root_path).as_posix()
        except ValueError:
            return False

        if any(regex.search(relative) for regex in self.ignore_regexes):
            return False

        if self.gitignore is not None and self.gitignore.match_file(relative):
            return False

        return True

    def handle_event(self, path: str):
        """Restart the debounce timer for a changed path. Runs on the loop."""
        path = normalize_path(path)
        if not self.should_watch(path):
            return

        existing = self.timers.pop(path, None)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self.timers[path] = loop.call_later(self.debounce_seconds, self._fire, path)
        self.logger.debug(f"Change detected: {path}")

    def _fire(self, path: str):
        self.timers.pop(path, None)
        if not os.path.isfile(path):
            self.logger.debug(f"Skipping vanished file: {path}")
            return

        task = asyncio.get_running_loop().create_task(self._run_change(path))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def _run_change(self, path: str):
        self.logger.info(f"Re-indexing changed file: {path}")
        try:
            await self.on_change(path)
        except Exception as e:
            self.logger.error(f"Error re-indexing {path}: {e}")

    def start(self):
        """Start observing; must be called from inside the running loop."""
        loop = asyncio.get_running_loop()
        self.observer = Observer()
        self.observer.schedule(WatchEventHandler(self, loop), str(self.root_path), recursive=True)
        self.observer.start()
        self.logger.info(f"Watching {self.root_path} (debounce {self.debounce_seconds}s)")

    async def stop(self):
        for timer in self.timers.values():
            timer.cancel()
        self.timers.clear()

        if self.observer is not None:
            self.observer.stop()
            await asyncio.get_running_loop().run_in_executor(None, self.observer.join)
            self.observer = None

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.logger.info("Watcher stopped")
