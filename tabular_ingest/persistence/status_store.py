# ==============================================
# FileStatusStore
# ==============================================
#
# PURPOSE:
#   Remember, per source file, what happened to it so that every
#   version of a file is imported exactly once, failures are retried
#   a bounded number of times, and a restart picks up where the last
#   run stopped.
#
# WHY THIS CLASS EXISTS:
#   The source folder is scanned over and over. Without a durable
#   record the same file would be imported on every pass. This class
#   is the ONLY owner of FileRecord state; the orchestrator asks it
#   for transitions and gets copies back.
#
# STATES:
# -------
#   Pending → Processing → Success | PartialSuccess | Failed | Skipped
#
#   Failed is eligible again while retry_count < max_retries.
#   A newer mtime sends any record back to Pending.
#
# CONCURRENCY:
# ------------
#   - self._lock (RLock) around every read-modify-write of a record
#   - self._write_lock around snapshot + backend write, so saves
#     never overlap and a newer snapshot is never overwritten by an
#     older one. Lock order: _write_lock, then _lock.
#   Records are replaced, never mutated in place.
#
# ==============================================

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from tabular_ingest.errors import StorageIOError
from tabular_ingest.models import FileRecord, FileStatus, normalize_path
from tabular_ingest.persistence.backend import JsonStatusBackend
from tabular_ingest.source.snapshot import SnapshotEntry

logger = logging.getLogger(__name__)


@dataclass
class StoreStatistics:
    total_files: int = 0
    by_status: Dict[FileStatus, int] = field(default_factory=dict)
    total_tables: int = 0
    total_rows: int = 0
    last_processed: Optional[datetime] = None

    def count(self, status: FileStatus) -> int:
        return self.by_status.get(status, 0)

    def to_dict(self) -> dict:
        return {
            "total_files": self.total_files,
            "by_status": {s.value: n for s, n in self.by_status.items()},
            "total_tables": self.total_tables,
            "total_rows": self.total_rows,
            "last_processed": self.last_processed.isoformat() if self.last_processed else None,
        }


class FileStatusStore:
    def __init__(
        self,
        backend: JsonStatusBackend,
        max_retries: int = 3,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backend = backend
        self.max_retries = max_retries
        self.clock = clock
        self._records: Dict[str, FileRecord] = {}
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()

    # --------------------------
    # Loading / saving
    # --------------------------

    def load(self) -> Dict[str, FileRecord]:
        """
        Replace the in-memory state with what the backend holds.

        A record left in Processing means the previous run stopped
        mid-file; it goes back to Pending without using a retry.
        Records of files that no longer exist are discarded.
        An unreadable status file starts an empty store.
        """
        try:
            raw_records = self.backend.read_all()
        except StorageIOError as e:
            logger.error("Could not load status file, starting empty: %s", e)
            raw_records = []

        records: Dict[str, FileRecord] = {}
        interrupted = 0
        vanished = 0
        for raw in raw_records:
            try:
                record = FileRecord.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring malformed status entry %r: %s", raw, e)
                continue
            key = normalize_path(record.path)
            if not os.path.exists(key):
                vanished += 1
                continue
            if record.status is FileStatus.PROCESSING:
                record = record.copy(status=FileStatus.PENDING)
                interrupted += 1
            records[key] = record.copy(path=key)

        with self._lock:
            self._records = records

        logger.info(
            "Loaded %d file record(s) from %s%s",
            len(records),
            self.backend.path,
            f" ({interrupted} interrupted, reset to Pending)" if interrupted else "",
        )
        if vanished:
            logger.info("Discarded %d record(s) of files that no longer exist", vanished)
        return self.records()

    def save(self) -> bool:
        """
        Write the current state. Retries once; on a second failure logs
        a warning and returns False. The in-memory state stays
        authoritative either way.

        The snapshot is taken while holding the writer lock, so writes
        land in snapshot order. Never call this while holding self._lock.
        """
        with self._write_lock:
            with self._lock:
                payload = [r.to_dict() for r in sorted(self._records.values(), key=lambda r: r.path)]
            for attempt in (1, 2):
                try:
                    self.backend.write_all(payload)
                    return True
                except StorageIOError as e:
                    if attempt == 1:
                        logger.debug("Status save failed, retrying: %s", e)
                        continue
                    logger.warning("Status file not saved, keeping in-memory state: %s", e)
        return False

    # --------------------------
    # Reconcile
    # --------------------------

    def _observe(self, entry: SnapshotEntry) -> FileRecord:
        # caller holds self._lock
        key = normalize_path(entry.path)
        existing = self._records.get(key)

        if existing is None:
            record = FileRecord(
                path=key,
                file_name=os.path.basename(entry.path),
                status=FileStatus.PENDING,
                last_modified=entry.modified,
                file_size=entry.size,
            )
            logger.info("New file: %s", record.file_name)
        elif existing.last_modified is None or entry.modified > existing.last_modified:
            record = existing.copy(
                status=FileStatus.PENDING,
                last_modified=entry.modified,
                file_size=entry.size,
                error_message=None,
                destination_path=None,
                table_count=0,
                imported_rows=0,
            )
            if existing.status is not FileStatus.PENDING:
                logger.info(
                    "File changed since last import (%s), back to Pending: %s",
                    existing.status.value,
                    record.file_name,
                )
        else:
            return existing

        self._records[key] = record
        return record

    def _is_eligible(self, record: FileRecord) -> bool:
        if record.status is FileStatus.PENDING:
            return True
        return record.status is FileStatus.FAILED and record.retry_count < self.max_retries

    def reconcile(self, snapshot: Iterable[SnapshotEntry]) -> List[FileRecord]:
        """
        Merge a folder scan into the store and return the eligible
        records, in snapshot order.
        """
        eligible = []
        with self._lock:
            for entry in snapshot:
                record = self._observe(entry)
                if self._is_eligible(record):
                    eligible.append(record.copy())
        self.save()
        logger.info("Reconciled folder scan: %d file(s) eligible", len(eligible))
        return eligible

    def register(self, path: str) -> FileRecord:
        """Observe one explicit file, the same way a folder scan would."""
        stat = os.stat(path)
        entry = SnapshotEntry(
            path=normalize_path(path),
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
        )
        with self._lock:
            record = self._observe(entry).copy()
        self.save()
        return record

    def eligible_files(self) -> List[FileRecord]:
        with self._lock:
            return [
                r.copy()
                for r in sorted(self._records.values(), key=lambda r: r.path)
                if self._is_eligible(r)
            ]

    # --------------------------
    # Transitions
    # --------------------------

    def _transition(self, path: str, count_retry: bool = False, **changes) -> FileRecord:
        key = normalize_path(path)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise KeyError(f"No status record for {path}")
            if count_retry:
                changes["retry_count"] = current.retry_count + 1
            updated = current.copy(**changes)
            self._records[key] = updated
        self.save()
        return updated.copy()

    def mark_processing(self, path: str) -> FileRecord:
        return self._transition(path, status=FileStatus.PROCESSING, process_time=self.clock())

    def mark_success(
        self, path: str, table_count: int, rows: int, destination_path: Optional[str] = None
    ) -> FileRecord:
        return self._transition(
            path,
            status=FileStatus.SUCCESS,
            process_time=self.clock(),
            retry_count=0,
            error_message=None,
            table_count=table_count,
            imported_rows=rows,
            destination_path=destination_path,
        )

    def mark_partial_success(self, path: str, message: str, table_count: int, rows: int) -> FileRecord:
        return self._transition(
            path,
            status=FileStatus.PARTIAL_SUCCESS,
            process_time=self.clock(),
            error_message=message,
            table_count=table_count,
            imported_rows=rows,
        )

    def mark_failed(self, path: str, error: str, table_count: int = 0, rows: int = 0) -> FileRecord:
        record = self._transition(
            path,
            count_retry=True,
            status=FileStatus.FAILED,
            process_time=self.clock(),
            error_message=error,
            table_count=table_count,
            imported_rows=rows,
        )
        if record.retry_count >= self.max_retries:
            logger.warning(
                "%s failed %d time(s), no more retries: %s",
                record.file_name, record.retry_count, error,
            )
        return record

    def mark_skipped(self, path: str, reason: str) -> FileRecord:
        return self._transition(
            path,
            status=FileStatus.SKIPPED,
            process_time=self.clock(),
            error_message=reason,
        )

    def release(self, path: str, reason: Optional[str] = None) -> FileRecord:
        """Back to Pending without using a retry (locked or cancelled)."""
        return self._transition(path, status=FileStatus.PENDING, error_message=reason)

    def set_destination(self, path: str, destination_path: str) -> FileRecord:
        return self._transition(path, destination_path=destination_path)

    # --------------------------
    # Queries
    # --------------------------

    def get(self, path: str) -> Optional[FileRecord]:
        with self._lock:
            record = self._records.get(normalize_path(path))
            return record.copy() if record else None

    def records(self) -> Dict[str, FileRecord]:
        with self._lock:
            return {k: r.copy() for k, r in self._records.items()}

    def files_by_status(self, status: FileStatus) -> List[FileRecord]:
        with self._lock:
            return [
                r.copy()
                for r in sorted(self._records.values(), key=lambda r: r.path)
                if r.status is status
            ]

    def should_retry(self, path: str) -> bool:
        record = self.get(path)
        return (
            record is not None
            and record.status is FileStatus.FAILED
            and record.retry_count < self.max_retries
        )

    def statistics(self) -> StoreStatistics:
        stats = StoreStatistics()
        with self._lock:
            records = list(self._records.values())
        stats.total_files = len(records)
        for record in records:
            stats.by_status[record.status] = stats.by_status.get(record.status, 0) + 1
            stats.total_tables += record.table_count
            stats.total_rows += record.imported_rows
            if record.process_time and (
                stats.last_processed is None or record.process_time > stats.last_processed
            ):
                stats.last_processed = record.process_time
        return stats

    # --------------------------
    # Retention
    # --------------------------

    def cleanup(self, days_to_keep: int) -> int:
        """
        Forget terminal records older than `days_to_keep` whose source
        file is gone. Records of files still in the folder are kept, or
        the next scan would import them again.
        """
        cutoff = self.clock() - timedelta(days=days_to_keep)
        with self._lock:
            stale = [
                key
                for key, r in self._records.items()
                if r.status.is_terminal
                and r.process_time is not None
                and r.process_time < cutoff
                and not os.path.exists(r.path)
            ]
            for key in stale:
                del self._records[key]
        if stale:
            self.save()
            logger.info("Status cleanup removed %d record(s) older than %d day(s)", len(stale), days_to_keep)
        return len(stale)
