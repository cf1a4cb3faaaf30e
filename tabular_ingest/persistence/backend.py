import json
import logging
import os
import tempfile
from typing import Any, Dict, List

from tabular_ingest.errors import StorageIOError

logger = logging.getLogger(__name__)


class JsonStatusBackend:
    """
    Stores the list of file records as one JSON document.

    Writes go to a temp file in the same folder and are then swapped in
    with os.replace, so readers never see a half-written file.
    """

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def read_all(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageIOError(f"Cannot read status file {self.path}: {e}", path=self.path) from e

        # Accept a bare list as well as the wrapped document
        if isinstance(data, dict):
            data = data.get("files", [])
        if not isinstance(data, list):
            raise StorageIOError(f"Unexpected status file layout in {self.path}", path=self.path)
        return data

    def write_all(self, records: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".status-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"version": 1, "files": records}, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise StorageIOError(f"Cannot write status file {self.path}: {e}", path=self.path) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
            logger.info("Removed status file %s", self.path)
