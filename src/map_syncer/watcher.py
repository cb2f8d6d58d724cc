import os
import time

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import MapSyncerError
from .logging_utils import get_logger
from .repack import ExclusionPredicate, repack_in_place

logger = get_logger(__name__)

PACKAGE_SUFFIX = ".vpk"


class PackageEventHandler(FileSystemEventHandler):
    """Repack every .vpk that appears in the watched tree, in place.

    Downloads arrive progressively, so a package is only repacked once its
    size holds still for ``settle_delay`` seconds. A failed repack does not
    start the cooldown; the next write or close event for the file retries.
    """

    def __init__(self, is_excluded: ExclusionPredicate, cooldown: int = 10, settle_delay: float = 1.0) -> None:
        self.is_excluded = is_excluded
        self.cooldown = cooldown
        self.settle_delay = settle_delay
        self.last_triggered_time: dict[str, float] = {}

    def on_created(self, event) -> None:
        if event.is_directory:
            return
        self.handle_path(event.src_path)

    def on_modified(self, event) -> None:
        if event.is_directory:
            return
        self.handle_path(event.src_path)

    def on_closed(self, event) -> None:
        if event.is_directory:
            return
        self.handle_path(event.src_path)

    def on_moved(self, event) -> None:
        if event.is_directory:
            return
        self.handle_path(event.dest_path)

    def _size_is_stable(self, path: str) -> bool:
        try:
            before = os.path.getsize(path)
            if self.settle_delay:
                time.sleep(self.settle_delay)
            return os.path.getsize(path) == before
        except OSError:
            return False

    def handle_path(self, path: str) -> bool:
        if not path.lower().endswith(PACKAGE_SUFFIX):
            return False
        key = os.path.abspath(path)
        current_time = time.time()
        last_time = self.last_triggered_time.get(key, 0)
        if current_time - last_time < self.cooldown:
            return False
        if not self._size_is_stable(path):
            logger.debug("Still being written, waiting: %s", path)
            return False
        logger.info("Detected new package: %s", path)
        self.last_triggered_time[key] = time.time()
        try:
            report = repack_in_place(path, self.is_excluded)
        except MapSyncerError:
            logger.exception("Failed to repack %s, will retry on next change", path)
            self.last_triggered_time.pop(key, None)
            return False
        # The replacement itself shows up as a move event.
        self.last_triggered_time[key] = time.time()
        logger.info("Repacked %s: kept %d, removed %d", path, len(report.entries), report.removed)
        return True


def run_watcher(directory: str, is_excluded: ExclusionPredicate, cooldown: int = 10) -> None:
    logger.info("Starting package monitor on: %s", directory)
    event_handler = PackageEventHandler(is_excluded, cooldown=cooldown)
    observer = Observer()
    observer.schedule(event_handler, directory, recursive=True)
    observer.start()
    logger.info("Monitor started. Waiting for new '%s' files...", PACKAGE_SUFFIX)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Monitor stopped by user.")
        observer.stop()
    observer.join()
