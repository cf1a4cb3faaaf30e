# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests. Nothing here needs a MySQL server
# or an ODBC driver: the source reader and the destination are the
# in-memory fakes from tests/fakes.py.
#
# FIXTURES:
# ---------
# - folders         tmp source / archive / retry folders
# - make_file       write a source file with given bytes and mtime
# - database        FakeDatabase shared by all sessions of a test
# - provider        FakeSourceProvider
# - store           FileStatusStore backed by a tmp JSON file
# - build_pipeline  orchestrator + scheduler wired to the above
#
# ==============================================

import os
from datetime import datetime
from types import SimpleNamespace

import pytest

from tabular_ingest.archive import Archiver, RetryStaging
from tabular_ingest.orchestrator import ImportOrchestrator
from tabular_ingest.persistence.backend import JsonStatusBackend
from tabular_ingest.persistence.status_store import FileStatusStore
from tabular_ingest.scheduler import Scheduler
from tabular_ingest.schema.synchronizer import SchemaSynchronizer
from tabular_ingest.source.snapshot import SourceSnapshot
from tabular_ingest.storage.transfer import BulkTransferEngine
from tests.fakes import FakeDatabase, FakeSourceProvider


@pytest.fixture
def folders(tmp_path):
    paths = SimpleNamespace(
        source=tmp_path / "incoming",
        archive=tmp_path / "archive",
        retry=tmp_path / "retry",
        status=tmp_path / "incoming" / "_import_status.json",
    )
    paths.source.mkdir()
    return paths


@pytest.fixture
def make_file(folders):
    def _make(name: str, content: bytes = b"MDBDATA", mtime: float = None) -> str:
        path = folders.source / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return str(path)

    return _make


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def provider():
    return FakeSourceProvider()


@pytest.fixture
def store(folders):
    s = FileStatusStore(JsonStatusBackend(str(folders.status)), max_retries=3)
    s.load()
    return s


@pytest.fixture
def build_pipeline(folders, database, provider, store):
    """
    Returns a function that wires an orchestrator and a scheduler.
    Keyword arguments override the defaults.
    """

    def _build(
        batch_size: int = 5000,
        parallel: bool = False,
        max_workers: int = 4,
        archive: bool = True,
        report: bool = False,
        synchronizer: SchemaSynchronizer = None,
        table_prefix: str = "MDB_",
        clock=datetime.now,
    ):
        archiver = Archiver(str(folders.archive), clock=clock) if archive else None
        staging = RetryStaging(str(folders.retry), clock=clock)
        orchestrator = ImportOrchestrator(
            store=store,
            source_provider=provider,
            destination_factory=database.session,
            synchronizer=synchronizer or SchemaSynchronizer(),
            transfer_engine=BulkTransferEngine(batch_size=batch_size, progress_interval=0),
            archiver=archiver,
            retry_staging=staging,
            table_prefix=table_prefix,
            clock=clock,
        )
        scheduler = Scheduler(
            store=store,
            orchestrator=orchestrator,
            snapshot=SourceSnapshot(),
            source_folder=str(folders.source),
            parallel=parallel,
            max_workers=max_workers,
            report_folder=str(folders.archive) if report else None,
            archiver=archiver,
            retry_staging=staging,
            settle_seconds=0,
            clock=clock,
        )
        return SimpleNamespace(
            orchestrator=orchestrator,
            scheduler=scheduler,
            archiver=archiver,
            staging=staging,
        )

    return _build
