# ==============================================
# Models (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes shared by the status store, the orchestrator
#   and the scheduler.
#
# ENUMS:
# ------
# - FileStatus(Enum): PENDING, PROCESSING, SUCCESS, PARTIAL_SUCCESS,
#                     FAILED, SKIPPED
# - TableStatus(Enum): SUCCESS, FAILED
#
# CLASSES:
# --------
# - FileRecord          durable, one per source file path
# - TableImportOutcome  result of one table, never persisted
# - FileImportResult    result of one file, never persisted
# - ProcessingResult    counters for one pass
#
# ==============================================

import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


def normalize_path(path: str) -> str:
    """Absolute, case-normalized path used as the FileRecord key."""
    return os.path.normcase(os.path.abspath(path))


class FileStatus(Enum):
    """
    Lifecycle of a source file.

    PENDING -> PROCESSING -> SUCCESS | PARTIAL_SUCCESS | FAILED | SKIPPED
    """
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCESS = "Success"
    PARTIAL_SUCCESS = "PartialSuccess"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (
            FileStatus.SUCCESS,
            FileStatus.PARTIAL_SUCCESS,
            FileStatus.FAILED,
            FileStatus.SKIPPED,
        )


class TableStatus(Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class FileRecord:
    """
    Durable status of one source file.

    Only FileStatusStore creates or changes these; everyone else gets
    copies.
    """

    path: str
    file_name: str
    status: FileStatus = FileStatus.PENDING
    last_modified: Optional[datetime] = None
    process_time: Optional[datetime] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    table_count: int = 0
    imported_rows: int = 0
    destination_path: Optional[str] = None
    file_size: int = 0

    def copy(self, **changes: Any) -> "FileRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "file_name": self.file_name,
            "status": self.status.value,
            "last_modified": _dt_to_str(self.last_modified),
            "process_time": _dt_to_str(self.process_time),
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "table_count": self.table_count,
            "imported_rows": self.imported_rows,
            "destination_path": self.destination_path,
            "file_size": self.file_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        return cls(
            path=data["path"],
            file_name=data.get("file_name") or os.path.basename(data["path"]),
            status=FileStatus(data.get("status", FileStatus.PENDING.value)),
            last_modified=_dt_from_str(data.get("last_modified")),
            process_time=_dt_from_str(data.get("process_time")),
            retry_count=int(data.get("retry_count", 0)),
            error_message=data.get("error_message"),
            table_count=int(data.get("table_count", 0)),
            imported_rows=int(data.get("imported_rows", 0)),
            destination_path=data.get("destination_path"),
            file_size=int(data.get("file_size", 0)),
        )


@dataclass
class TableImportOutcome:
    table_name: str
    destination_table: Optional[str] = None
    status: TableStatus = TableStatus.FAILED
    rows_imported: int = 0
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    created: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is TableStatus.SUCCESS


@dataclass
class FileImportResult:
    """What happened to one file during a pass."""

    path: str
    status: FileStatus
    message: str = ""
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    tables: List[TableImportOutcome] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    @property
    def total_tables(self) -> int:
        return len(self.tables)

    @property
    def success_tables(self) -> int:
        return sum(1 for t in self.tables if t.succeeded)

    @property
    def failed_tables(self) -> int:
        return sum(1 for t in self.tables if not t.succeeded)

    @property
    def rows_imported(self) -> int:
        return sum(t.rows_imported for t in self.tables)

    @property
    def duration(self) -> timedelta:
        return (self.end_time or datetime.now()) - self.start_time

    def error_summary(self) -> str:
        """`table: message` for every failed table, joined with `; `."""
        return "; ".join(
            f"{t.table_name}: {t.error_message or 'unknown error'}"
            for t in self.tables
            if not t.succeeded
        )


@dataclass
class ProcessingResult:
    """Counters for one scheduler pass."""

    total: int = 0
    success: int = 0
    partial_success: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    message: str = ""
    cancelled: bool = False
    file_results: List[FileImportResult] = field(default_factory=list)

    @property
    def duration(self) -> timedelta:
        return (self.end_time or datetime.now()) - self.start_time

    def add(self, result: FileImportResult) -> None:
        self.file_results.append(result)
        if result.status is FileStatus.SUCCESS:
            self.success += 1
        elif result.status is FileStatus.PARTIAL_SUCCESS:
            self.partial_success += 1
        elif result.status is FileStatus.FAILED:
            self.failed += 1
        else:
            # Skipped, or released back to Pending (locked / cancelled)
            self.skipped += 1

    def counters(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "success": self.success,
            "partial_success": self.partial_success,
            "failed": self.failed,
            "skipped": self.skipped,
        }
