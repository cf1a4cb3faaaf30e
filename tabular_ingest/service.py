# ==============================================
# IngestService: wires everything together
# ==============================================
#
# PURPOSE:
#   The one class callers construct. Builds every component from
#   AppConfig, loads the status store, and exposes the operations
#   the CLI (or a host process) needs.
#
#   ┌────────────────────────────────────────────────────┐
#   │ IngestService                                      │
#   │                                                    │
#   │  SourceSnapshot ──► FileStatusStore.reconcile      │
#   │                        │ eligible files            │
#   │                        ▼                           │
#   │  Scheduler ──► ImportOrchestrator.process(file)    │
#   │                 ├─ SchemaInspector                 │
#   │                 ├─ SchemaSynchronizer (TypeMapper) │
#   │                 ├─ BulkTransferEngine              │
#   │                 └─ Archiver / RetryStaging         │
#   └────────────────────────────────────────────────────┘
#
#   The source provider and destination factory can be injected;
#   by default they are the Access (pyodbc) reader and a MySQL
#   client per file.
#
#   SourceAnalyzer shares the provider and synchronizer, so analyze()
#   and generate_scripts() describe exactly what an import would do.
#
# ==============================================

import logging
import os
from typing import Callable, Dict, Iterable, List, Optional

from tabular_ingest.analyzer import FileAnalysis, SourceAnalyzer
from tabular_ingest.archive import Archiver, RetryStaging
from tabular_ingest.config import AppConfig, get_config
from tabular_ingest.models import ProcessingResult
from tabular_ingest.orchestrator import ImportOrchestrator
from tabular_ingest.persistence.backend import JsonStatusBackend
from tabular_ingest.persistence.status_store import FileStatusStore
from tabular_ingest.report import status_report
from tabular_ingest.scheduler import Scheduler
from tabular_ingest.schema.synchronizer import SchemaSynchronizer
from tabular_ingest.schema.type_mapper import TypeMapper
from tabular_ingest.source.provider import SourceProvider
from tabular_ingest.source.snapshot import SourceSnapshot
from tabular_ingest.storage.destination import Destination
from tabular_ingest.storage.transfer import BulkTransferEngine

logger = logging.getLogger(__name__)


def default_source_provider(config: AppConfig) -> SourceProvider:
    # Imported here: pyodbc needs an ODBC driver manager installed
    from tabular_ingest.source.access_provider import AccessSourceProvider

    return AccessSourceProvider(
        driver=config.imports.access_driver,
        password=config.imports.access_password,
    )


def default_destination_factory(config: AppConfig) -> Callable[[], Destination]:
    from tabular_ingest.storage.mysql_client import MySQLClient

    return lambda: MySQLClient.from_config(config.mysql)


class IngestService:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        source_provider: Optional[SourceProvider] = None,
        destination_factory: Optional[Callable[[], Destination]] = None,
    ):
        self.config = config or get_config()
        folders = self.config.folders
        imports = self.config.imports
        processing = self.config.processing

        self.store = FileStatusStore(
            JsonStatusBackend(folders.status_path),
            max_retries=processing.max_retry_count,
        )
        self.store.load()

        self.archiver = Archiver(folders.archive_folder) if imports.archive_processed_files else None
        self.retry_staging = RetryStaging(folders.retry_folder)

        self.synchronizer = SchemaSynchronizer(
            TypeMapper(imports.max_varchar_length),
            auto_create=imports.auto_create_tables,
            sync_structure=imports.sync_table_structure,
            add_source_file_column=imports.add_source_file_column,
            add_import_time_column=imports.add_import_time_column,
        )

        self.orchestrator = ImportOrchestrator(
            store=self.store,
            source_provider=source_provider or default_source_provider(self.config),
            destination_factory=destination_factory or default_destination_factory(self.config),
            synchronizer=self.synchronizer,
            transfer_engine=BulkTransferEngine(imports.batch_size, imports.progress_interval),
            archiver=self.archiver,
            retry_staging=self.retry_staging,
            table_prefix=imports.table_prefix,
        )

        self.analyzer = SourceAnalyzer(
            self.orchestrator.source_provider,
            self.synchronizer,
            table_prefix=imports.table_prefix,
        )

        self.scheduler = Scheduler(
            store=self.store,
            orchestrator=self.orchestrator,
            snapshot=SourceSnapshot(folders.extensions, folders.recursive),
            source_folder=folders.source_folder,
            parallel=processing.parallel_processing,
            max_workers=processing.max_degree_of_parallelism,
            report_folder=folders.archive_folder if processing.generate_report else None,
            archiver=self.archiver,
            retry_staging=self.retry_staging,
            settle_seconds=processing.processing_delay_seconds,
        )

        logger.info(
            "Ingest service ready: source=%s, %d file record(s), %s mode",
            folders.source_folder,
            len(self.store.records()),
            "parallel" if processing.parallel_processing else "sequential",
        )

    def run_once(self) -> Optional[ProcessingResult]:
        return self.scheduler.run_pass()

    def process_files(self, paths: Iterable[str]) -> Optional[ProcessingResult]:
        return self.scheduler.process_files(paths)

    def retry_failed(self) -> Optional[ProcessingResult]:
        return self.scheduler.retry_failed()

    def start(self) -> None:
        processing = self.config.processing
        self.scheduler.start_timer(processing.batch_processing_interval_minutes * 60)
        if processing.monitor_source_folder:
            self.scheduler.start_watching(self.config.folders.recursive)

    def stop(self) -> None:
        self.scheduler.stop()

    def cleanup(self, days_to_keep: Optional[int] = None) -> Dict[str, int]:
        days = days_to_keep if days_to_keep is not None else self.config.processing.retention_days
        return self.scheduler.cleanup_old_files(days)

    def status_report(self) -> str:
        return status_report(self.store.records(), self.store.statistics())

    # --------------------------
    # Analysis (no import)
    # --------------------------

    def source_files(self, paths: Optional[Iterable[str]] = None) -> List[str]:
        if paths:
            return list(paths)
        folders = self.config.folders
        return [e.path for e in self.scheduler.snapshot.scan(folders.source_folder)]

    def analyze(self, paths: Optional[Iterable[str]] = None) -> List[FileAnalysis]:
        return [self.analyzer.analyze(path) for path in self.source_files(paths)]

    def generate_scripts(
        self, output_folder: Optional[str] = None, paths: Optional[Iterable[str]] = None
    ) -> Dict[str, Optional[str]]:
        """Map each source file to its written script, or None when it could not be analyzed."""
        output_folder = output_folder or os.path.join(self.config.folders.source_folder, "SQLScripts")
        return {
            path: self.analyzer.write_create_script(path, output_folder)
            for path in self.source_files(paths)
        }
