# ==============================================
# ImportOrchestrator: one file, all of its tables
# ==============================================
#
# PURPOSE:
#   Import every table of one source file, record the outcome in
#   the status store, and take care of the archive / retry copies.
#
# HOW ONE FILE FLOWS:
#
#   ┌──────────────────────────────────────────────────────────┐
#   │ pre-checks: missing → Skipped, empty → Skipped            │
#   │ mark_processing                                           │
#   │                                                           │
#   │ SourceProvider.open(file)                                 │
#   │   file-scope error, retryable (FileLocked):               │
#   │       Skipped this pass, record stays Pending             │
#   │   file-scope error, not retryable (SourceOpenError):      │
#   │       Skipped                                             │
#   │   no tables        → Skipped                              │
#   │                                                           │
#   │ for each table (source order):                            │
#   │   SchemaInspector.describe                                │
#   │   sanitize names                                          │
#   │   SchemaSynchronizer.ensure_table                         │
#   │   BulkTransferEngine.transfer                             │
#   │   → TableImportOutcome (errors stay on the table)         │
#   │                                                           │
#   │ all ok → Success, some ok → PartialSuccess,               │
#   │ none ok → Failed (cancelled with none ok → Pending)       │
#   │                                                           │
#   │ archive copy, retry staging copy, store transition        │
#   └──────────────────────────────────────────────────────────┘
#
#   The source file itself is never moved or deleted.
#
#   One orchestrator is shared by all workers of a pass. Each call
#   to process() opens its own source and destination sessions.
#
# ==============================================

import logging
import os
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from tabular_ingest.archive import Archiver, RetryStaging
from tabular_ingest.errors import IngestError
from tabular_ingest.models import (
    FileImportResult,
    FileStatus,
    TableImportOutcome,
    TableStatus,
    normalize_path,
)
from tabular_ingest.persistence.status_store import FileStatusStore
from tabular_ingest.schema.inspector import SchemaInspector
from tabular_ingest.schema.naming import destination_table_name, unique_identifiers
from tabular_ingest.schema.synchronizer import SchemaSynchronizer
from tabular_ingest.source.provider import SourceConnection, SourceProvider
from tabular_ingest.storage.destination import Destination
from tabular_ingest.storage.transfer import BulkTransferEngine

logger = logging.getLogger(__name__)


class _NoTables(Exception):
    pass


class ImportOrchestrator:
    def __init__(
        self,
        store: FileStatusStore,
        source_provider: SourceProvider,
        destination_factory: Callable[[], Destination],
        synchronizer: Optional[SchemaSynchronizer] = None,
        transfer_engine: Optional[BulkTransferEngine] = None,
        inspector: Optional[SchemaInspector] = None,
        archiver: Optional[Archiver] = None,
        retry_staging: Optional[RetryStaging] = None,
        table_prefix: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.source_provider = source_provider
        self.destination_factory = destination_factory
        self.synchronizer = synchronizer or SchemaSynchronizer()
        self.transfer_engine = transfer_engine or BulkTransferEngine()
        self.inspector = inspector or SchemaInspector()
        self.archiver = archiver
        self.retry_staging = retry_staging
        self.table_prefix = table_prefix
        self.clock = clock

    # --------------------------
    # Public
    # --------------------------

    def process(
        self,
        path: str,
        cancel_event: Optional[threading.Event] = None,
        prefer_staged: bool = False,
    ) -> FileImportResult:
        """
        Import one file and record the outcome. Never raises for
        problems with the file itself; they end up in the result and
        in the file's status record.
        """
        key = normalize_path(path)
        result = FileImportResult(path=key, status=FileStatus.PROCESSING, start_time=self.clock())
        file_name = os.path.basename(key)
        read_path = None

        try:
            read_path = self._read_path(key, prefer_staged)
            if read_path is None:
                return self._skip(result, "File not found")
            if self.store.get(key) is None and os.path.exists(key):
                self.store.register(key)
            if os.path.getsize(read_path) == 0:
                return self._skip(result, "File is empty")

            self.store.mark_processing(key)
            logger.info("Processing %s", file_name)

            try:
                result.tables = self._import_tables(read_path, file_name, cancel_event)
            except IngestError as e:
                if e.scope != "file":
                    raise
                if e.retryable:
                    # e.g. FileLocked: skipped for this pass, the record stays Pending
                    self.store.release(key, str(e))
                    result.status = FileStatus.SKIPPED
                    result.message = f"Will retry next pass: {e}"
                    logger.warning("%s left Pending: %s", file_name, e)
                    return result
                return self._skip(result, str(e))
            except _NoTables:
                return self._skip(result, "No importable tables")

            self._finish(result, key, read_path, cancel_event)
        except Exception as e:
            logger.exception("Unexpected error processing %s", file_name)
            result.status = FileStatus.FAILED
            result.message = str(e) or type(e).__name__
            if self.store.get(key) is not None:
                record = self.store.mark_failed(key, result.message, result.total_tables, result.rows_imported)
                self._stage_for_retry(key, record.retry_count)
                if read_path is not None:
                    self._archive(key, read_path, FileStatus.FAILED)
        finally:
            result.end_time = self.clock()

        return result

    # --------------------------
    # Tables
    # --------------------------

    def _import_tables(
        self, read_path: str, file_name: str, cancel_event: Optional[threading.Event]
    ) -> List[TableImportOutcome]:
        outcomes = []
        with self.source_provider.open(read_path) as source:
            tables = source.list_tables()
            if not tables:
                raise _NoTables()
            logger.info("%s: %d table(s) to import", file_name, len(tables))

            import_time = self.clock()
            with self.destination_factory() as destination:
                for table in tables:
                    outcome = self._import_table(
                        source, destination, table, file_name, import_time, cancel_event
                    )
                    outcomes.append(outcome)
        return outcomes

    def _import_table(
        self,
        source: SourceConnection,
        destination: Destination,
        table: str,
        file_name: str,
        import_time: datetime,
        cancel_event: Optional[threading.Event],
    ) -> TableImportOutcome:
        outcome = TableImportOutcome(table_name=table)

        if cancel_event is not None and cancel_event.is_set():
            outcome.error_message = "Cancelled before start"
            outcome.error_type = "TransferCancelled"
            return outcome

        try:
            with source.open_cursor(table) as cursor:
                columns = self.inspector.describe(cursor, table)
                dest_table = destination_table_name(table, self.table_prefix)
                names = unique_identifiers([c.name for c in columns])
                dest_columns = [replace(c, name=n) for c, n in zip(columns, names)]
                outcome.destination_table = dest_table

                outcome.created = self.synchronizer.ensure_table(destination, dest_table, dest_columns)
                insert_columns = [c.name for c in self.synchronizer.expected_columns(dest_columns)]
                outcome.rows_imported = self.transfer_engine.transfer(
                    cursor,
                    destination,
                    dest_table,
                    insert_columns,
                    cancel_event=cancel_event,
                    lineage=self.synchronizer.lineage_values(file_name, import_time),
                )
                outcome.status = TableStatus.SUCCESS
        except IngestError as e:
            outcome.error_message = str(e)
            outcome.error_type = type(e).__name__
            logger.warning("%s / %s failed: %s", file_name, table, e)
        except Exception as e:
            outcome.error_message = str(e) or type(e).__name__
            outcome.error_type = type(e).__name__
            logger.exception("%s / %s failed unexpectedly", file_name, table)

        return outcome

    # --------------------------
    # Outcome
    # --------------------------

    def _finish(
        self,
        result: FileImportResult,
        key: str,
        read_path: str,
        cancel_event: Optional[threading.Event],
    ) -> None:
        succeeded = result.success_tables
        failed = result.failed_tables
        count = result.total_tables
        rows = result.rows_imported
        file_name = os.path.basename(key)

        if failed == 0:
            result.status = FileStatus.SUCCESS
            result.message = f"Imported {count} table(s), {rows} row(s)"
            self.store.mark_success(key, count, rows)
            logger.info("✓ %s: %s", file_name, result.message)
        elif succeeded > 0:
            result.status = FileStatus.PARTIAL_SUCCESS
            result.message = result.error_summary()
            self.store.mark_partial_success(key, result.message, count, rows)
            logger.warning("⚠ %s: %d of %d table(s) failed: %s", file_name, failed, count, result.message)
        elif cancel_event is not None and cancel_event.is_set():
            # Cancellation is not a processing failure
            result.status = FileStatus.SKIPPED
            result.message = f"Cancelled before any table completed: {result.error_summary()}"
            self.store.release(key, result.message)
            logger.info("%s: cancelled, left Pending", file_name)
            return
        else:
            result.status = FileStatus.FAILED
            result.message = result.error_summary()
            record = self.store.mark_failed(key, result.message, count, rows)
            logger.error("✗ %s: all %d table(s) failed: %s", file_name, count, result.message)
            self._stage_for_retry(key, record.retry_count)

        self._archive(key, read_path, result.status)
        if result.status is not FileStatus.FAILED and self.retry_staging is not None:
            self.retry_staging.clear(key)

    def _archive(self, key: str, read_path: str, status: FileStatus) -> None:
        if self.archiver is None:
            return
        origin = key if os.path.exists(key) else read_path
        try:
            archived = self.archiver.archive(origin, status)
        except OSError as e:
            logger.error("Could not archive %s: %s", os.path.basename(key), e)
            return
        self.store.set_destination(key, archived)

    def _stage_for_retry(self, key: str, retry_count: int) -> None:
        if self.retry_staging is None or retry_count >= self.store.max_retries:
            return
        if not os.path.exists(key):
            return
        try:
            self.retry_staging.stage(key)
        except OSError as e:
            logger.error("Could not stage %s for retry: %s", os.path.basename(key), e)

    def _read_path(self, key: str, prefer_staged: bool) -> Optional[str]:
        if prefer_staged and self.retry_staging is not None:
            staged = self.retry_staging.locate(key)
            if staged is not None:
                return staged
        return key if os.path.exists(key) else None

    def _skip(self, result: FileImportResult, reason: str) -> FileImportResult:
        result.status = FileStatus.SKIPPED
        result.message = reason
        if self.store.get(result.path) is not None:
            self.store.mark_skipped(result.path, reason)
        logger.info("Skipped %s: %s", result.file_name, reason)
        return result
