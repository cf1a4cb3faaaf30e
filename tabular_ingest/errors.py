# ==============================================
# Error Taxonomy
# ==============================================
#
# Every failure the ingest path can hit is one of these. The
# `scope` says which loop handles it:
#
#   table  -> recorded on that table's outcome, siblings continue
#   file   -> recorded on the FileRecord, sibling files continue
#   pass   -> the whole pass stops, next pass starts fresh
#
# For a file-scope error `retryable` picks the outcome in the
# orchestrator: True leaves the file Pending for the next pass
# without using a retry (FileLocked), False marks it Skipped
# (SourceOpenError). The scheduler aborts a pass only on pass scope.
#
# ==============================================

from typing import Optional


class IngestError(Exception):
    """Base class for all ingest errors."""

    scope = "file"
    retryable = True

    def __init__(self, message: str, *, path: Optional[str] = None, table: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.table = table

    def __str__(self) -> str:
        return self.message


class DirectoryUnavailable(IngestError):
    """The source folder is missing or cannot be listed."""
    scope = "pass"


class FileLocked(IngestError):
    """Another process has the source file open."""
    scope = "file"


class SourceOpenError(IngestError):
    """The source file is corrupt or not readable as a database."""
    scope = "file"
    retryable = False


class SchemaUnavailable(IngestError):
    """The source table exposes no usable column metadata."""
    scope = "table"


class SchemaMismatch(IngestError):
    """The destination table cannot accept the source columns under current policy."""
    scope = "table"


class TransferError(IngestError):
    """A batch read or write failed; the table's transaction was rolled back."""
    scope = "table"


class TransferCancelled(TransferError):
    """The pass was cancelled while this table was being transferred."""


class StorageIOError(IngestError):
    """The status file could not be read or written."""
    scope = "pass"
