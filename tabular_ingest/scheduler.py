# ==============================================
# Scheduler
# ==============================================
#
# PURPOSE:
#   Decide WHEN passes run and run them: on demand, on a timer, or
#   when a new file shows up in the source folder. All three funnel
#   into the same _run().
#
# RULES:
# ------
#   - Only one pass at a time. A trigger that arrives while a pass
#     is running is dropped, not queued.
#   - Sequential by default; parallel mode uses a bounded
#     ThreadPoolExecutor. Table order inside a file is always kept.
#   - cancel() stops handing out new files. Files already running
#     stop their current table at the next batch boundary.
#   - Pass-scope errors (DirectoryUnavailable, StorageIOError) abort
#     the pass; the next pass starts fresh.
#
# ==============================================

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from tabular_ingest.archive import Archiver, RetryStaging
from tabular_ingest.errors import IngestError
from tabular_ingest.models import FileImportResult, FileStatus, ProcessingResult, normalize_path
from tabular_ingest.orchestrator import ImportOrchestrator
from tabular_ingest.persistence.status_store import FileStatusStore
from tabular_ingest.report import write_processing_report
from tabular_ingest.source.snapshot import SourceSnapshot
from tabular_ingest.watcher import FolderWatcher, SourceFolderHandler

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        store: FileStatusStore,
        orchestrator: ImportOrchestrator,
        snapshot: SourceSnapshot,
        source_folder: str,
        parallel: bool = False,
        max_workers: int = 4,
        report_folder: Optional[str] = None,
        archiver: Optional[Archiver] = None,
        retry_staging: Optional[RetryStaging] = None,
        settle_seconds: float = 5.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.store = store
        self.orchestrator = orchestrator
        self.snapshot = snapshot
        self.source_folder = source_folder
        self.parallel = parallel
        self.max_workers = max_workers
        self.report_folder = report_folder
        self.archiver = archiver
        self.retry_staging = retry_staging
        self.settle_seconds = settle_seconds
        self.clock = clock
        self.last_result: Optional[ProcessingResult] = None

        self._pass_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._stop_event = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None
        self._watcher: Optional[FolderWatcher] = None

    @property
    def busy(self) -> bool:
        return self._pass_lock.locked()

    # --------------------------
    # Passes
    # --------------------------

    def run_pass(self) -> Optional[ProcessingResult]:
        """Scan the folder, reconcile, process every eligible file."""
        def select() -> List[str]:
            entries = self.snapshot.scan(self.source_folder)
            return [r.path for r in self.store.reconcile(entries)]

        return self._run(select, "folder pass")

    def process_files(self, paths: Iterable[str]) -> Optional[ProcessingResult]:
        """
        Process an explicit list of files. Files already imported at
        their current version are left alone; missing files are
        reported as skipped.
        """
        requested = [normalize_path(p) for p in paths]

        def select() -> List[str]:
            selected = []
            for path in requested:
                try:
                    record = self.store.register(path)
                except FileNotFoundError:
                    selected.append(path)
                    continue
                if record.status is FileStatus.PENDING or self.store.should_retry(path):
                    selected.append(path)
                else:
                    logger.info("%s already %s, not reprocessed", record.file_name, record.status.value)
            return selected

        return self._run(select, "explicit files")

    def retry_failed(self) -> Optional[ProcessingResult]:
        """Re-run Failed files that still have retries left, reading staged copies first."""
        def select() -> List[str]:
            return [
                r.path
                for r in self.store.files_by_status(FileStatus.FAILED)
                if r.retry_count < self.store.max_retries
            ]

        return self._run(select, "retry failed", prefer_staged=True)

    def _run(
        self,
        select: Callable[[], List[str]],
        label: str,
        prefer_staged: bool = False,
    ) -> Optional[ProcessingResult]:
        if not self._pass_lock.acquire(blocking=False):
            logger.info("Pass already running, %s trigger dropped", label)
            return None

        try:
            self._cancel_event.clear()
            result = ProcessingResult(start_time=self.clock())
            logger.info("Starting %s", label)

            try:
                paths = select()
            except IngestError as e:
                if e.scope != "pass":
                    raise
                result.message = f"Pass aborted: {e}"
                result.end_time = self.clock()
                logger.error("%s aborted: %s", label, e)
                self.last_result = result
                return result

            result.total = len(paths)
            if paths:
                if self.parallel and self.max_workers > 1 and len(paths) > 1:
                    self._process_parallel(paths, result, prefer_staged)
                else:
                    self._process_sequential(paths, result, prefer_staged)

            result.cancelled = self._cancel_event.is_set()
            result.end_time = self.clock()
            result.message = self._summary(result)
            logger.info("Finished %s: %s", label, result.message)

            self._write_report(result)
            self.last_result = result
            return result
        finally:
            self._pass_lock.release()

    def _process_one(self, path: str, prefer_staged: bool) -> Optional[FileImportResult]:
        if self._cancel_event.is_set():
            return None
        return self.orchestrator.process(path, self._cancel_event, prefer_staged=prefer_staged)

    def _process_sequential(self, paths: List[str], result: ProcessingResult, prefer_staged: bool) -> None:
        for path in paths:
            file_result = self._process_one(path, prefer_staged)
            if file_result is None:
                logger.info("Pass cancelled, %d file(s) not started", result.total - len(result.file_results))
                break
            result.add(file_result)

    def _process_parallel(self, paths: List[str], result: ProcessingResult, prefer_staged: bool) -> None:
        workers = min(self.max_workers, len(paths))
        logger.info("Processing %d file(s) with %d worker(s)", len(paths), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as pool:
            futures = [pool.submit(self._process_one, path, prefer_staged) for path in paths]
            for future in as_completed(futures):
                file_result = future.result()
                if file_result is not None:
                    result.add(file_result)

    def _summary(self, result: ProcessingResult) -> str:
        if result.total == 0:
            return "No eligible files"
        text = (
            f"{result.total} file(s): {result.success} succeeded, "
            f"{result.partial_success} partial, {result.failed} failed, "
            f"{result.skipped} skipped"
        )
        if result.cancelled:
            text += " (cancelled)"
        return text

    def _write_report(self, result: ProcessingResult) -> None:
        if not self.report_folder or result.total == 0:
            return
        try:
            write_processing_report(result, self.store.statistics(), self.report_folder, self.clock())
        except OSError as e:
            logger.warning("Could not write processing report: %s", e)

    # --------------------------
    # Triggers
    # --------------------------

    def start_timer(self, interval_seconds: float, run_immediately: bool = True) -> None:
        if self._timer_thread is not None and self._timer_thread.is_alive():
            return
        self._stop_event.clear()

        def loop():
            if run_immediately:
                self.run_pass()
            while not self._stop_event.wait(interval_seconds):
                self.run_pass()

        self._timer_thread = threading.Thread(target=loop, name="ingest-timer", daemon=True)
        self._timer_thread.start()
        logger.info("Timer started, one pass every %.0f second(s)", interval_seconds)

    def start_watching(self, recursive: bool = False) -> None:
        if self._watcher is not None:
            return
        handler = SourceFolderHandler(
            extensions=self.snapshot.extensions,
            on_ready=lambda _path: self.run_pass(),
            settle_seconds=self.settle_seconds,
        )
        self._watcher = FolderWatcher(self.source_folder, handler, recursive=recursive)
        self._watcher.start()

    def cancel(self) -> None:
        if self.busy:
            logger.info("Cancelling current pass")
        self._cancel_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        self.cancel()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._timer_thread is not None:
            self._timer_thread.join(timeout)
            self._timer_thread = None

    # --------------------------
    # Maintenance
    # --------------------------

    def cleanup_old_files(self, days_to_keep: int) -> Dict[str, int]:
        removed = {"status_records": self.store.cleanup(days_to_keep)}
        if self.archiver is not None:
            removed["archived_files"] = self.archiver.cleanup(days_to_keep)
        if self.retry_staging is not None:
            removed["staged_files"] = self.retry_staging.cleanup(days_to_keep)
        logger.info("Cleanup older than %d day(s): %s", days_to_keep, removed)
        return removed
