"""Watch the hosts file for edits made outside hostgate."""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class HostsModifiedHandler(FileSystemEventHandler):
    """Forwards content modifications of a single file."""

    def __init__(self, hosts_path: Path, on_modified: Callable[[], None]) -> None:
        super().__init__()
        self.hosts_path = hosts_path
        self.callback = on_modified

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if Path(os.fsdecode(event.src_path)) != self.hosts_path:
            return

        logger.debug(f"{self.hosts_path} modified")
        self.callback()


class HostsWatcher:
    """Runs a watchdog observer on the hosts file's directory."""

    def __init__(self, hosts_path: Path, on_modified: Callable[[], None]) -> None:
        """Initialize the watcher.

        Args:
            hosts_path: File to watch
            on_modified: Called from the observer thread after each modification
        """
        self.hosts_path = hosts_path.absolute()
        self.handler = HostsModifiedHandler(self.hosts_path, on_modified)
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        """Start observing."""
        observer = Observer()
        observer.schedule(self.handler, str(self.hosts_path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.hosts_path} for changes")

    def stop(self) -> None:
        """Stop observing."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
