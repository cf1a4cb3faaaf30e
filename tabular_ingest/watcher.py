import logging
import os
import threading
import time
from typing import Callable, Iterable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class SourceFolderHandler(FileSystemEventHandler):
    """
    Turns "a source file appeared" into a pass trigger.

    The trigger runs on a short-lived thread so the observer keeps
    receiving events while a file is still being copied in.
    """

    def __init__(
        self,
        extensions: Iterable[str],
        on_ready: Callable[[str], None],
        settle_seconds: float = 5.0,
        ready_timeout: float = 60.0,
    ):
        super().__init__()
        self.extensions = tuple(e.lower() for e in extensions)
        self.on_ready = on_ready
        self.settle_seconds = settle_seconds
        self.ready_timeout = ready_timeout

    def _interesting(self, path: str) -> bool:
        name = os.path.basename(path)
        return not name.startswith("~") and os.path.splitext(name)[1].lower() in self.extensions

    def on_created(self, event):
        if event.is_directory or not self._interesting(event.src_path):
            return
        logger.info("Detected new file: %s", event.src_path)
        self._dispatch(event.src_path)

    def on_moved(self, event):
        # Files copied in under a temp name and renamed at the end
        if event.is_directory or not self._interesting(event.dest_path):
            return
        logger.info("Detected renamed file: %s", event.dest_path)
        self._dispatch(event.dest_path)

    def _dispatch(self, path: str) -> None:
        threading.Thread(target=self._handle, args=(path,), daemon=True).start()

    def _handle(self, path: str) -> None:
        if not self._wait_until_ready(path):
            logger.warning("File not ready after %.0fs, leaving it for the next pass: %s", self.ready_timeout, path)
            return
        if self.settle_seconds:
            time.sleep(self.settle_seconds)
        self.on_ready(path)

    def _wait_until_ready(self, file_path: str) -> bool:
        """Wait until the file size stops changing (copy finished)."""
        start = time.time()
        last_size = -1

        while time.time() - start < self.ready_timeout:
            try:
                size = os.path.getsize(file_path)
            except FileNotFoundError:
                return False

            if size == last_size:
                return True

            last_size = size
            time.sleep(0.5)

        return False


class FolderWatcher:
    def __init__(self, folder: str, handler: SourceFolderHandler, recursive: bool = False):
        self.folder = folder
        self.handler = handler
        self.recursive = recursive
        self._observer = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, self.folder, recursive=self.recursive)
        observer.start()
        self._observer = observer
        logger.info("Watching %s for new files", self.folder)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Stopped watching %s", self.folder)
