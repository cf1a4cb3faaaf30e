# ==============================================
# SourceSnapshot
# ==============================================
#
# PURPOSE:
#   List the candidate source files in a folder, with the size and
#   modification time the status store needs to decide whether a
#   file is new, changed or already imported.
#
# CLASS: SourceSnapshot
# ---------------------
#   Stateless apart from its filter settings.
#
#   - scan(directory) -> list[SnapshotEntry]
#       Files whose extension matches, sorted by path. Temporary
#       files (leading "~") and the status file are never listed.
#       Raises DirectoryUnavailable if the folder is gone.
#
# ==============================================

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List

from tabular_ingest.config import DEFAULT_EXTENSIONS, STATUS_FILE_NAME
from tabular_ingest.errors import DirectoryUnavailable
from tabular_ingest.models import normalize_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    path: str
    size: int
    modified: datetime

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)


class SourceSnapshot:
    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS, recursive: bool = False):
        self.extensions = tuple(e.lower() for e in extensions)
        self.recursive = recursive

    def matches(self, path: str) -> bool:
        name = os.path.basename(path)
        if name.startswith("~") or name == STATUS_FILE_NAME:
            return False
        return os.path.splitext(name)[1].lower() in self.extensions

    def scan(self, directory: str) -> List[SnapshotEntry]:
        if not os.path.isdir(directory):
            raise DirectoryUnavailable(f"Source folder not found: {directory}", path=directory)

        try:
            candidates = list(self._walk(directory))
        except OSError as e:
            raise DirectoryUnavailable(f"Cannot list {directory}: {e}", path=directory) from e

        entries = []
        for path in candidates:
            try:
                stat = os.stat(path)
            except FileNotFoundError:
                # Removed between listing and stat
                continue
            entries.append(
                SnapshotEntry(
                    path=normalize_path(path),
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime),
                )
            )

        entries.sort(key=lambda e: e.path)
        logger.debug("Scanned %s: %d candidate file(s)", directory, len(entries))
        return entries

    def _walk(self, directory: str):
        if self.recursive:
            for root, _dirs, files in os.walk(directory):
                for name in files:
                    path = os.path.join(root, name)
                    if self.matches(path):
                        yield path
            return

        with os.scandir(directory) as it:
            for entry in it:
                if entry.is_file() and self.matches(entry.path):
                    yield entry.path
