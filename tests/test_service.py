# ==============================================
# End-to-end tests for IngestService
# ==============================================
#
# The service is built from a real AppConfig pointing at tmp
# folders, with the in-memory source and destination injected.
#
# ==============================================

import glob
import os

import pytest

from tabular_ingest.config import AppConfig, FolderConfig, ImportConfig, LoggingConfig, ProcessingConfig
from tabular_ingest.errors import SourceOpenError
from tabular_ingest.models import FileStatus, normalize_path
from tabular_ingest.service import IngestService
from tests.fakes import FakeDatabase, FakeSourceProvider, simple_table


@pytest.fixture
def config(tmp_path):
    (tmp_path / "incoming").mkdir()
    return AppConfig(
        folders=FolderConfig(
            source_folder=str(tmp_path / "incoming"),
            archive_folder=str(tmp_path / "archive"),
            retry_folder=str(tmp_path / "retry"),
        ),
        imports=ImportConfig(batch_size=2, table_prefix="ACC_", add_source_file_column=True),
        processing=ProcessingConfig(max_retry_count=2),
        logging=LoggingConfig(log_file=None),
    )


@pytest.fixture
def service(config):
    provider = FakeSourceProvider()
    database = FakeDatabase()
    svc = IngestService(config, source_provider=provider, destination_factory=database.session)
    svc.provider = provider
    svc.database = database
    return svc


def write(config, name, content=b"data"):
    path = os.path.join(config.folders.source_folder, name)
    with open(path, "wb") as f:
        f.write(content)
    return path


class TestIngestService:
    def test_run_once_imports_archives_and_reports(self, service, config):
        path = write(config, "sales.mdb")
        service.provider.add("sales.mdb", {"Orders": simple_table(5)})

        result = service.run_once()

        assert result.success == 1
        assert len(service.database.rows("ACC_Orders")) == 5
        assert service.database.columns("ACC_Orders")[-1] == "_source_file"
        assert glob.glob(os.path.join(config.folders.archive_folder, "Success", "sales_*_Success.mdb"))
        assert glob.glob(os.path.join(config.folders.archive_folder, "ProcessingReport_*.txt"))
        assert os.path.exists(config.folders.status_path)
        assert os.path.exists(path)

    def test_state_survives_restart(self, service, config):
        write(config, "sales.mdb")
        service.provider.add("sales.mdb", {"Orders": simple_table()})
        service.run_once()

        restarted = IngestService(
            config, source_provider=service.provider, destination_factory=service.database.session
        )
        assert restarted.run_once().total == 0

    def test_retry_limit_from_config(self, service, config):
        path = write(config, "bad.mdb")
        service.provider.add("bad.mdb", {"T": simple_table()})
        service.database.fail_inserts["ACC_T"] = RuntimeError("boom")

        service.run_once()
        service.retry_failed()
        assert service.store.get(path).retry_count == 2
        assert service.retry_failed().total == 0

    def test_no_archive_when_disabled(self, config):
        config.imports.archive_processed_files = False
        provider = FakeSourceProvider()
        svc = IngestService(config, source_provider=provider, destination_factory=FakeDatabase().session)
        write(config, "a.mdb")
        provider.add("a.mdb", {"T": simple_table()})
        svc.run_once()
        assert svc.store.get(os.path.join(config.folders.source_folder, "a.mdb")).destination_path is None

    def test_status_report(self, service, config):
        write(config, "sales.mdb")
        service.provider.add("sales.mdb", {"Orders": simple_table()})
        service.run_once()
        text = service.status_report()
        assert "=== Import Status Report ===" in text
        assert "sales.mdb" in text

    def test_cleanup_uses_retention_default(self, service):
        assert service.cleanup() == {"status_records": 0, "archived_files": 0, "staged_files": 0}

    def test_process_files(self, service, config):
        path = write(config, "one.mdb")
        write(config, "two.mdb")
        service.provider.add("one.mdb", {"T": simple_table()})
        result = service.process_files([path])
        assert result.total == 1
        assert service.store.get(path).status is FileStatus.SUCCESS


class TestAnalysis:
    def test_analyze_scans_source_folder(self, service, config):
        write(config, "sales.mdb")
        write(config, "notes.txt")
        service.provider.add("sales.mdb", {"Orders": simple_table(5)})

        analyses = service.analyze()

        assert [a.file_name for a in analyses] == ["sales.mdb"]
        assert analyses[0].tables[0].destination_table == "ACC_Orders"
        assert analyses[0].total_rows == 5
        assert service.store.records() == {}
        assert service.database.ddl == []

    def test_generate_scripts_default_folder(self, service, config):
        path = write(config, "sales.mdb")
        write(config, "broken.mdb")
        service.provider.add("sales.mdb", {"Orders": simple_table()})
        service.provider.add("broken.mdb", SourceOpenError("Unrecognized database format"))

        scripts = service.generate_scripts()

        expected = os.path.join(config.folders.source_folder, "SQLScripts", "sales_CreateTables.sql")
        assert scripts[normalize_path(path)] == expected
        assert list(scripts.values()).count(None) == 1
        with open(expected, encoding="utf-8") as f:
            assert "`_source_file` LONGTEXT NULL" in f.read()

    def test_generate_scripts_for_given_files(self, service, config, tmp_path):
        path = write(config, "sales.mdb")
        service.provider.add("sales.mdb", {"Orders": simple_table()})
        scripts = service.generate_scripts(str(tmp_path / "out"), [path])
        assert scripts == {path: os.path.join(str(tmp_path / "out"), "sales_CreateTables.sql")}
