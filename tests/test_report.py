from datetime import datetime, timedelta

from tabular_ingest.models import (
    FileImportResult,
    FileRecord,
    FileStatus,
    ProcessingResult,
    TableImportOutcome,
    TableStatus,
)
from tabular_ingest.persistence.status_store import StoreStatistics
from tabular_ingest.report import format_size, processing_report, status_report, write_processing_report

NOW = datetime(2024, 6, 1, 10, 0, 0)


def record(name, status, minutes_ago=0, **kwargs):
    return FileRecord(
        path=f"/data/{name}",
        file_name=name,
        status=status,
        process_time=NOW - timedelta(minutes=minutes_ago),
        **kwargs,
    )


def stats_for(records):
    stats = StoreStatistics(total_files=len(records))
    for r in records:
        stats.by_status[r.status] = stats.by_status.get(r.status, 0) + 1
    return stats


def test_format_size():
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.00 KB"
    assert format_size(5 * 1024 ** 3) == "5.00 GB"


class TestStatusReport:
    def test_distribution_and_failed_section(self):
        records = [
            record("a.mdb", FileStatus.SUCCESS, table_count=2, imported_rows=1000),
            record("b.mdb", FileStatus.FAILED, retry_count=2, error_message="T1: boom"),
            record("c.mdb", FileStatus.SUCCESS),
            record("d.mdb", FileStatus.PENDING),
        ]
        text = status_report(records, stats_for(records), now=NOW)

        assert "Success: 2 (50.0%)" in text
        assert "Failed: 1 (25.0%)" in text
        assert "Failed files:" in text
        assert "b.mdb (retries: 2)" in text
        assert "T1: boom" in text

    def test_recent_files_limited_to_ten(self):
        records = [record(f"f{i:02}.mdb", FileStatus.SUCCESS, minutes_ago=i) for i in range(15)]
        text = status_report({r.path: r for r in records}, stats_for(records), now=NOW)
        assert "f00.mdb" in text
        assert "f09.mdb" in text
        assert "f10.mdb" not in text

    def test_empty_store(self):
        text = status_report([], StoreStatistics(), now=NOW)
        assert "Files tracked:     0" in text
        assert "Failed files:" not in text


class TestProcessingReport:
    def _result(self):
        file_result = FileImportResult(
            path="/data/multi.mdb",
            status=FileStatus.PARTIAL_SUCCESS,
            start_time=NOW,
            end_time=NOW + timedelta(seconds=3),
            tables=[
                TableImportOutcome("T1", status=TableStatus.SUCCESS, rows_imported=10),
                TableImportOutcome("T2", error_message="Data too long"),
            ],
        )
        result = ProcessingResult(total=1, start_time=NOW, end_time=NOW + timedelta(seconds=4))
        result.add(file_result)
        result.message = "1 file(s): 0 succeeded, 1 partial, 0 failed, 0 skipped"
        return result

    def test_lists_failed_tables(self):
        text = processing_report(self._result())
        assert "multi.mdb: PartialSuccess (1/2 tables, 10 rows" in text
        assert "✗ T2: Data too long" in text
        assert "T1:" not in text
        assert "Partial success: 1" in text

    def test_written_to_timestamped_file(self, tmp_path):
        path = write_processing_report(self._result(), None, str(tmp_path / "reports"), now=NOW)
        assert path.endswith("ProcessingReport_20240601_100000.txt")
        with open(path, encoding="utf-8") as f:
            assert "=== Processing Report ===" in f.read()
