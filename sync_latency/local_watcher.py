"""Poll the local sync folder and report test files as they disappear."""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, Optional, Set

from watchdog.utils.dirsnapshot import DirectorySnapshot

WATCHING = "watching"
DONE = "done"


class LocalDeletionWatcher:
    """Compare successive listings of ``folder`` and call ``on_deleted(name, ts)``
    for every prefixed file name that went away.

    Stops by itself once no prefixed file is left (after having seen some), or
    when ``stop()`` is called.
    """

    def __init__(self, folder: str, prefix: str, on_deleted: Callable[[str, float], object],
                 interval: float = 0.1, clock: Callable[[], float] = time.time):
        self.folder = os.path.abspath(os.path.expanduser(folder))
        self.prefix = prefix
        self.on_deleted = on_deleted
        self.interval = interval
        self.clock = clock
        self.state = WATCHING
        self.stop_event = threading.Event()
        self.done = threading.Event()
        self._previous: Optional[Set[str]] = None
        self._thread: Optional[threading.Thread] = None

    def _listing(self) -> Set[str]:
        # names only: a file replaced in place keeps its name, a renamed one loses it
        snapshot = DirectorySnapshot(self.folder, recursive=False)
        return {os.path.basename(p) for p in snapshot.paths
                if p != self.folder and os.path.basename(p).startswith(self.prefix)}

    def _finish(self):
        self.state = DONE
        self.done.set()

    def prime(self) -> Set[str]:
        """Take the initial listing; returns the watched file names.

        A failed listing leaves the watcher unprimed so the next tick retries.
        """
        try:
            watched = self._listing()
        except OSError as e:
            logging.warning(f"Local listing of {self.folder} failed ({e}); will retry")
            return set()
        self._previous = watched
        if not watched:
            self._finish()
        logging.info(f"Watching {len(watched)} local file(s) in {self.folder}")
        return set(watched)

    def tick(self) -> bool:
        """One poll. Returns True while still watching."""
        if self.state == DONE:
            return False
        if self._previous is None:
            self.prime()
            return self.state == WATCHING
        try:
            current = self._listing()
        except OSError as e:
            logging.warning(f"Local listing of {self.folder} failed ({e}); skipping tick")
            return True
        now = self.clock()
        for name in sorted(self._previous - current):
            self.on_deleted(name, now)
        self._previous = current
        if not current:
            self._finish()
        return self.state == WATCHING

    def run(self):
        try:
            if self._previous is None:
                self.prime()
            while self.state == WATCHING and not self.stop_event.wait(self.interval):
                self.tick()
        finally:
            self._finish()

    def start(self) -> "LocalDeletionWatcher":
        if self._previous is None:
            self.prime()
        self._thread = threading.Thread(target=self.run, name="local-watcher", daemon=True)
        self._thread.start()
        return self

    def stop(self):
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
