# ==============================================
# Tests for Scheduler
# ==============================================
#
# TEST CASES:
# -----------
# - a second pass over an unchanged folder opens nothing
# - a failing file is tried max_retries times, then left alone
# - parallel and sequential passes end in the same state
# - cancel mid-batch: finished tables stay, current one rolls back,
#   later tables and files are not started
# - a trigger during a pass is dropped
# - missing source folder (any pass-scope error) aborts the pass;
#   other errors during selection are not swallowed
# - explicit files, retry pass, report file, timer
#
# ==============================================

import glob
import shutil
import time

import pytest

from tabular_ingest.errors import FileLocked, SourceOpenError, StorageIOError
from tabular_ingest.models import FileStatus
from tests.fakes import FakeTable, simple_table


class TestRunPass:
    def test_second_pass_is_a_no_op(self, build_pipeline, provider, make_file):
        pipeline = build_pipeline()
        make_file("a.mdb")
        make_file("b.accdb")
        provider.add("a.mdb", {"T": simple_table()})
        provider.add("b.accdb", {"T": simple_table()})

        first = pipeline.scheduler.run_pass()
        opened = len(provider.opened)
        second = pipeline.scheduler.run_pass()

        assert first.success == 2
        assert second.total == 0
        assert second.message == "No eligible files"
        assert len(provider.opened) == opened

    def test_changed_file_imported_again(self, build_pipeline, provider, database, make_file):
        pipeline = build_pipeline()
        make_file("a.mdb", mtime=1_700_000_000)
        provider.add("a.mdb", {"T": simple_table()})
        pipeline.scheduler.run_pass()

        make_file("a.mdb", b"new content", mtime=1_700_000_600)
        result = pipeline.scheduler.run_pass()

        assert result.success == 1
        assert len(database.rows("MDB_T")) == 6

    def test_failing_file_stops_after_max_retries(self, build_pipeline, provider, store, make_file):
        pipeline = build_pipeline()
        path = make_file("bad.mdb")
        provider.add("bad.mdb", {"T": FakeTable([])})

        for attempt in (1, 2, 3):
            result = pipeline.scheduler.run_pass()
            assert result.failed == 1
            assert store.get(path).retry_count == attempt

        assert pipeline.scheduler.run_pass().total == 0
        assert store.get(path).status is FileStatus.FAILED

    def test_locked_file_picked_up_next_pass(self, build_pipeline, provider, store, make_file):
        pipeline = build_pipeline()
        path = make_file("busy.mdb")
        provider.add("busy.mdb", FileLocked("in use", path=path))

        first = pipeline.scheduler.run_pass()
        assert first.skipped == 1
        assert store.get(path).status is FileStatus.PENDING

        provider.add("busy.mdb", {"T": simple_table()})
        assert pipeline.scheduler.run_pass().success == 1
        assert store.get(path).retry_count == 0

    def test_skipped_file_not_retried(self, build_pipeline, provider, make_file):
        pipeline = build_pipeline()
        make_file("corrupt.mdb")
        provider.add("corrupt.mdb", SourceOpenError("bad format"))
        assert pipeline.scheduler.run_pass().skipped == 1
        assert pipeline.scheduler.run_pass().total == 0

    def test_missing_folder_aborts_pass(self, build_pipeline, folders):
        pipeline = build_pipeline()
        shutil.rmtree(folders.source)
        result = pipeline.scheduler.run_pass()
        assert result.message.startswith("Pass aborted")
        assert result.total == 0
        assert not pipeline.scheduler.busy

    def test_any_pass_scope_error_aborts_pass(self, build_pipeline, monkeypatch):
        pipeline = build_pipeline()

        def scan(directory):
            raise StorageIOError("Status volume is read-only")

        monkeypatch.setattr(pipeline.scheduler.snapshot, "scan", scan)
        result = pipeline.scheduler.run_pass()
        assert result.message == "Pass aborted: Status volume is read-only"

    def test_file_scope_error_during_selection_propagates(self, build_pipeline, monkeypatch):
        pipeline = build_pipeline()

        def scan(directory):
            raise FileLocked("Folder entry locked")

        monkeypatch.setattr(pipeline.scheduler.snapshot, "scan", scan)
        with pytest.raises(FileLocked):
            pipeline.scheduler.run_pass()
        assert not pipeline.scheduler.busy

    def test_report_written_for_non_empty_pass(self, build_pipeline, provider, make_file, folders):
        pipeline = build_pipeline(report=True)
        make_file("a.mdb")
        provider.add("a.mdb", {"T": simple_table()})
        pipeline.scheduler.run_pass()
        reports = glob.glob(str(folders.archive / "ProcessingReport_*.txt"))
        assert len(reports) == 1
        with open(reports[0], encoding="utf-8") as f:
            assert "a.mdb: Success" in f.read()


@pytest.mark.parametrize("parallel, workers", [(False, 1), (True, 1), (True, 2), (True, 3), (True, 8)])
def test_parallel_matches_sequential(build_pipeline, provider, database, store, make_file, parallel, workers):
    """Same files, same final state, whatever the worker count."""
    pipeline = build_pipeline(parallel=parallel, max_workers=workers, batch_size=2)
    for i in range(5):
        make_file(f"ok{i}.mdb")
        provider.add(f"ok{i}.mdb", {"Shared": simple_table(3), f"Own{i}": simple_table(i + 1)})
    make_file("partial.mdb")
    provider.add("partial.mdb", {"Shared": simple_table(3), "Broken": simple_table(2)})
    database.fail_inserts["MDB_Broken"] = RuntimeError("bad row")
    make_file("corrupt.mdb")
    provider.add("corrupt.mdb", SourceOpenError("bad format"))

    result = pipeline.scheduler.run_pass()

    assert result.counters() == {"total": 7, "success": 5, "partial_success": 1, "failed": 0, "skipped": 1}
    assert len(database.rows("MDB_Shared")) == 18
    for i in range(5):
        assert len(database.rows(f"MDB_Own{i}")) == i + 1
    assert len([d for d in database.ddl if "`MDB_Shared`" in d]) == 1
    statuses = sorted(r.status.value for r in store.records().values())
    assert statuses == ["PartialSuccess", "Skipped"] + ["Success"] * 5


class TestCancellation:
    def test_cancel_mid_batch(self, build_pipeline, provider, database, store, make_file):
        pipeline = build_pipeline(batch_size=2)
        scheduler = pipeline.scheduler

        second = simple_table(6)
        second.on_fetch = lambda batch: scheduler.cancel() if batch == 2 else None
        provider.add("a.mdb", {"T1": simple_table(3), "T2": second, "T3": simple_table(3)})
        provider.add("b.mdb", {"T1": simple_table(3)})
        first_path = make_file("a.mdb")
        other_path = make_file("b.mdb")

        result = scheduler.run_pass()

        assert result.cancelled
        assert result.message.endswith("(cancelled)")
        assert len(result.file_results) == 1
        tables = result.file_results[0].tables
        assert tables[0].succeeded and tables[0].rows_imported == 3
        assert tables[1].error_type == "TransferCancelled"
        assert tables[2].error_message == "Cancelled before start"

        assert len(database.rows("MDB_T1")) == 3
        assert database.rows("MDB_T2") == []
        assert "MDB_T3" not in database.tables
        assert store.get(first_path).status is FileStatus.PARTIAL_SUCCESS
        assert store.get(other_path).status is FileStatus.PENDING

    def test_cancel_before_any_table_finishes(self, build_pipeline, provider, store, make_file):
        pipeline = build_pipeline(batch_size=2)
        table = simple_table(6)
        table.on_fetch = lambda batch: pipeline.scheduler.cancel()
        provider.add("a.mdb", {"T1": table})
        path = make_file("a.mdb")

        result = pipeline.scheduler.run_pass()

        assert result.skipped == 1
        record = store.get(path)
        assert record.status is FileStatus.PENDING
        assert record.retry_count == 0

    def test_next_pass_starts_clean(self, build_pipeline, provider, make_file):
        pipeline = build_pipeline()
        make_file("a.mdb")
        provider.add("a.mdb", {"T": simple_table()})
        pipeline.scheduler.cancel()
        assert pipeline.scheduler.run_pass().success == 1


def test_trigger_during_pass_is_dropped(build_pipeline, provider, make_file):
    pipeline = build_pipeline()
    nested = []
    table = simple_table()
    table.on_fetch = lambda batch: nested.append(pipeline.scheduler.run_pass()) if batch == 1 else None
    provider.add("a.mdb", {"T": table})
    make_file("a.mdb")

    result = pipeline.scheduler.run_pass()

    assert nested == [None]
    assert result.success == 1
    assert not pipeline.scheduler.busy


class TestExplicitFiles:
    def test_processes_only_given_files(self, build_pipeline, provider, store, make_file):
        pipeline = build_pipeline()
        wanted = make_file("a.mdb")
        other = make_file("b.mdb")
        provider.add("a.mdb", {"T": simple_table()})

        result = pipeline.scheduler.process_files([wanted])

        assert result.success == 1
        assert store.get(wanted).status is FileStatus.SUCCESS
        assert store.get(other) is None

    def test_imported_file_not_reprocessed(self, build_pipeline, provider, make_file):
        pipeline = build_pipeline()
        path = make_file("a.mdb")
        provider.add("a.mdb", {"T": simple_table()})
        pipeline.scheduler.process_files([path])
        opened = len(provider.opened)

        result = pipeline.scheduler.process_files([path])

        assert result.total == 0
        assert len(provider.opened) == opened

    def test_missing_file_reported_skipped(self, build_pipeline, folders):
        pipeline = build_pipeline()
        result = pipeline.scheduler.process_files([str(folders.source / "ghost.mdb")])
        assert result.skipped == 1
        assert result.file_results[0].message == "File not found"


def test_retry_failed_uses_staged_copy(build_pipeline, provider, database, store, make_file):
    pipeline = build_pipeline()
    path = make_file("flaky.mdb")
    provider.add("flaky.mdb", {"T": simple_table()})
    database.fail_inserts["MDB_T"] = RuntimeError("lock wait timeout")
    assert pipeline.scheduler.run_pass().failed == 1
    staged = pipeline.staging.locate(path)

    del database.fail_inserts["MDB_T"]
    result = pipeline.scheduler.retry_failed()

    assert result.success == 1
    assert staged in provider.opened
    assert store.get(path).status is FileStatus.SUCCESS


def test_timer_runs_a_pass(build_pipeline, provider, make_file):
    pipeline = build_pipeline()
    make_file("a.mdb")
    provider.add("a.mdb", {"T": simple_table()})

    pipeline.scheduler.start_timer(3600, run_immediately=True)
    deadline = time.time() + 5
    while pipeline.scheduler.last_result is None and time.time() < deadline:
        time.sleep(0.05)
    pipeline.scheduler.stop(timeout=5)

    assert pipeline.scheduler.last_result is not None
    assert pipeline.scheduler.last_result.success == 1


def test_cleanup_old_files_reports_each_area(build_pipeline):
    removed = build_pipeline().scheduler.cleanup_old_files(30)
    assert removed == {"status_records": 0, "archived_files": 0, "staged_files": 0}


def test_non_positive_workers_rejected(build_pipeline):
    with pytest.raises(ValueError):
        build_pipeline(max_workers=0)
