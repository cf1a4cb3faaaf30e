# ==============================================
# Tests for SourceAnalyzer
# ==============================================
#
# TEST CASES:
# -----------
# - tables listed in source order with row counts, sanitized
#   destination names and mapped MySQL types
# - a table without metadata carries its own error, siblings listed
# - missing / locked / corrupt file → invalid analysis
# - CREATE TABLE script: one statement per valid table, lineage
#   columns included, skipped tables commented
# - <stem>_CreateTables.sql written, nothing for an unreadable file
# - text report
#
# ==============================================

import os
from datetime import datetime

import pytest

from tabular_ingest.analyzer import SourceAnalyzer, analysis_report
from tabular_ingest.errors import FileLocked, SourceOpenError
from tabular_ingest.schema.column import ColumnDescriptor, LogicalType
from tabular_ingest.schema.synchronizer import SchemaSynchronizer
from tests.fakes import FakeSourceConnection, FakeTable, simple_table


FIXED_NOW = datetime(2024, 3, 1, 12, 30, 0)


@pytest.fixture
def analyzer(provider):
    return SourceAnalyzer(provider, table_prefix="MDB_", clock=lambda: FIXED_NOW)


class TestAnalyze:
    def test_tables_rows_and_types(self, analyzer, provider, make_file):
        path = make_file("sales.mdb", b"12345")
        provider.add("sales.mdb", {"Orders": simple_table(4), "Order Lines": simple_table(2)})

        analysis = analyzer.analyze(path)

        assert analysis.valid
        assert analysis.file_name == "sales.mdb"
        assert analysis.file_size == 5
        assert analysis.modified is not None
        assert [t.name for t in analysis.tables] == ["Orders", "Order Lines"]
        assert [t.destination_table for t in analysis.tables] == ["MDB_Orders", "MDB_Order_Lines"]
        assert [t.row_count for t in analysis.tables] == [4, 2]
        assert analysis.total_rows == 6
        assert analysis.tables[0].sql_types == ["INT", "VARCHAR(50)", "DECIMAL(19,4)"]

    def test_column_names_sanitized(self, analyzer, provider, make_file):
        table = FakeTable(
            [ColumnDescriptor("Qty kg", LogicalType.DOUBLE), ColumnDescriptor("qty-kg", LogicalType.DOUBLE)],
            [(1.0, 2.0)],
        )
        provider.add("a.mdb", {"T": table})
        analysis = analyzer.analyze(make_file("a.mdb"))
        assert [c.name for c in analysis.tables[0].columns] == ["Qty_kg", "qty_kg_2"]

    def test_table_without_metadata_keeps_siblings(self, analyzer, provider, make_file):
        broken = simple_table()
        broken.describe_error = RuntimeError("no metadata")
        provider.add("a.mdb", {"Broken": broken, "Good": simple_table(3)})

        analysis = analyzer.analyze(make_file("a.mdb"))

        assert analysis.valid
        assert not analysis.tables[0].valid
        assert "no metadata" in analysis.tables[0].error_message
        assert analysis.tables[1].valid
        assert analysis.total_rows == 3

    def test_missing_file(self, analyzer, provider, folders):
        analysis = analyzer.analyze(str(folders.source / "ghost.mdb"))
        assert not analysis.valid
        assert analysis.error_message.startswith("File not found")
        assert provider.opened == []

    @pytest.mark.parametrize("error", [
        FileLocked("File is in use"),
        SourceOpenError("Unrecognized database format"),
    ])
    def test_unreadable_file(self, analyzer, provider, make_file, error):
        provider.add("a.mdb", error)
        analysis = analyzer.analyze(make_file("a.mdb"))
        assert not analysis.valid
        assert analysis.error_message == str(error)
        assert analysis.tables == []


def test_default_row_count_reads_whole_table():
    connection = FakeSourceConnection({"T": simple_table(7)})
    assert connection.count_rows("T", batch_size=3) == 7


class TestCreateTableScript:
    def test_one_statement_per_table(self, analyzer, provider, make_file):
        provider.add("sales.mdb", {"Orders": simple_table(4), "Customers": simple_table(2)})
        script = analyzer.create_table_script(analyzer.analyze(make_file("sales.mdb")))

        assert "-- CREATE TABLE script for sales.mdb" in script
        assert "-- Generated: 2024-03-01 12:30:00" in script
        assert "-- Tables: 2" in script
        assert "-- Source table: Orders (4 rows)" in script
        assert script.count("CREATE TABLE IF NOT EXISTS") == 2
        assert "CREATE TABLE IF NOT EXISTS `MDB_Orders` (" in script
        assert "PRIMARY KEY (`ID`)" in script
        assert ") DEFAULT CHARSET=utf8mb4;" in script

    def test_lineage_columns_included(self, provider, make_file):
        sync = SchemaSynchronizer(add_source_file_column=True, add_import_time_column=True)
        analyzer = SourceAnalyzer(provider, synchronizer=sync)
        provider.add("a.mdb", {"T": simple_table()})

        script = analyzer.create_table_script(analyzer.analyze(make_file("a.mdb")))

        assert "`_source_file` LONGTEXT NULL" in script
        assert "`_import_time` DATETIME NULL" in script

    def test_unreadable_table_commented_out(self, analyzer, provider, make_file):
        provider.add("a.mdb", {"Empty": FakeTable([]), "Good": simple_table()})
        script = analyzer.create_table_script(analyzer.analyze(make_file("a.mdb")))
        assert "-- Skipped: Source exposes no columns" in script
        assert "`MDB_Empty`" not in script
        assert "`MDB_Good`" in script


class TestWriteCreateScript:
    def test_writes_named_script(self, analyzer, provider, make_file, tmp_path):
        provider.add("sales.mdb", {"Orders": simple_table()})
        output = tmp_path / "scripts"

        script_path = analyzer.write_create_script(make_file("sales.mdb"), str(output))

        assert script_path == os.path.join(str(output), "sales_CreateTables.sql")
        with open(script_path, encoding="utf-8") as f:
            assert "CREATE TABLE IF NOT EXISTS `MDB_Orders`" in f.read()

    def test_nothing_written_for_unreadable_file(self, analyzer, provider, make_file, tmp_path):
        provider.add("bad.mdb", SourceOpenError("Unrecognized database format"))
        output = tmp_path / "scripts"
        assert analyzer.write_create_script(make_file("bad.mdb"), str(output)) is None
        assert not output.exists()


class TestReport:
    def test_valid_file(self, analyzer, provider, make_file):
        provider.add("sales.mdb", {"Order Lines": simple_table(1200)})
        text = analysis_report(analyzer.analyze(make_file("sales.mdb")))

        assert text.startswith("=== sales.mdb ===")
        assert "Tables:   1" in text
        assert "Rows:     1,200" in text
        assert "Order Lines → MDB_Order_Lines (1,200 rows)" in text
        assert "INT [PK, not null]" in text
        assert "VARCHAR(50)" in text

    def test_invalid_file(self, analyzer, provider, make_file):
        provider.add("a.mdb", FileLocked("File is in use"))
        text = analysis_report(analyzer.analyze(make_file("a.mdb")))
        assert text == "=== a.mdb ===\n✗ File is in use"
