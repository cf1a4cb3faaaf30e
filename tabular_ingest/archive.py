# ==============================================
# Archive + Retry Staging
# ==============================================
#
# PURPOSE:
#   Keep a copy of every processed file, filed by outcome, and keep
#   a copy of failed files where the next retry pass can find them.
#
#   Source files are only ever COPIED. Nothing here moves or deletes
#   a file in the source folder.
#
# LAYOUT:
# -------
#   <archive>/<Status>/<stem>_<yyyymmdd_HHMMSS>_<Status><ext>
#   <retry>/<file name>            (timestamp suffix on collision)
#
# ==============================================

import logging
import os
import re
import shutil
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from tabular_ingest.models import FileStatus

logger = logging.getLogger(__name__)


def unique_destination(dest_dir: str, file_name: str, stamp: str) -> str:
    dest = os.path.join(dest_dir, file_name)
    if not os.path.exists(dest):
        return dest

    base, ext = os.path.splitext(file_name)
    dest = os.path.join(dest_dir, f"{base}_{stamp}{ext}")
    i = 1
    while os.path.exists(dest):
        dest = os.path.join(dest_dir, f"{base}_{stamp}_{i}{ext}")
        i += 1
    return dest


def remove_older_than(folders: Iterable[str], cutoff: datetime) -> int:
    """Delete files (never folders) last modified before `cutoff`."""
    removed = 0
    for folder in folders:
        if not os.path.isdir(folder):
            continue
        for root, _dirs, files in os.walk(folder):
            for name in files:
                path = os.path.join(root, name)
                try:
                    if datetime.fromtimestamp(os.path.getmtime(path)) < cutoff:
                        os.remove(path)
                        removed += 1
                except OSError as e:
                    logger.warning("Could not remove old file %s: %s", path, e)
    return removed


class Archiver:
    def __init__(self, archive_folder: str, clock: Callable[[], datetime] = datetime.now):
        self.archive_folder = archive_folder
        self.clock = clock

    def archive(self, path: str, status: FileStatus) -> str:
        """Copy `path` into the folder for `status`; return the copy's path."""
        status_folder = os.path.join(self.archive_folder, status.value)
        os.makedirs(status_folder, exist_ok=True)

        stem, ext = os.path.splitext(os.path.basename(path))
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        dest = unique_destination(status_folder, f"{stem}_{stamp}_{status.value}{ext}", stamp)

        shutil.copy(path, dest)
        logger.info("Archived %s -> %s", os.path.basename(path), dest)
        return dest

    def cleanup(self, days_to_keep: int) -> int:
        cutoff = self.clock() - timedelta(days=days_to_keep)
        removed = remove_older_than([self.archive_folder], cutoff)
        if removed:
            logger.info("Removed %d archived file(s) older than %d day(s)", removed, days_to_keep)
        return removed


class RetryStaging:
    """
    A folder of copies of failed files.

    The retry pass reads the staged copy when one exists, so a file
    that is being rewritten in the source folder does not block it.
    """

    def __init__(self, retry_folder: str, clock: Callable[[], datetime] = datetime.now):
        self.retry_folder = retry_folder
        self.clock = clock

    def _matches(self, source_path: str) -> List[str]:
        if not os.path.isdir(self.retry_folder):
            return []
        stem, ext = os.path.splitext(os.path.basename(source_path))
        # plain name, or name plus the collision stamp added by stage()
        pattern = re.compile(
            re.escape(stem) + r"(_\d{8}_\d{6}(_\d+)?)?" + re.escape(ext) + "$",
            re.IGNORECASE,
        )
        found = []
        for name in os.listdir(self.retry_folder):
            if pattern.match(name):
                found.append(os.path.join(self.retry_folder, name))
        return found

    def stage(self, path: str) -> str:
        os.makedirs(self.retry_folder, exist_ok=True)
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        dest = unique_destination(self.retry_folder, os.path.basename(path), stamp)
        shutil.copy(path, dest)
        logger.info("Staged for retry: %s", dest)
        return dest

    def locate(self, path: str) -> Optional[str]:
        """Newest staged copy of `path`, if any."""
        matches = self._matches(path)
        if not matches:
            return None
        return max(matches, key=os.path.getmtime)

    def clear(self, path: str) -> int:
        removed = 0
        for staged in self._matches(path):
            try:
                os.remove(staged)
                removed += 1
            except OSError as e:
                logger.warning("Could not remove staged copy %s: %s", staged, e)
        return removed

    def cleanup(self, days_to_keep: int) -> int:
        cutoff = self.clock() - timedelta(days=days_to_keep)
        return remove_older_than([self.retry_folder], cutoff)
