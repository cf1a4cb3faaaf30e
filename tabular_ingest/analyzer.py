# ==============================================
# SourceAnalyzer
# ==============================================
#
# PURPOSE:
#   Look inside source files without importing anything:
#   - analyze(path)              tables, row counts, column
#                                descriptors and the MySQL type each
#                                column would get
#   - create_table_script(a)     the CREATE TABLE statements an
#                                import would run, as one .sql text
#   - write_create_script(p, d)  writes <stem>_CreateTables.sql
#
# WHY THIS CLASS EXISTS:
#   Operators want to see what a file contains, and what the
#   destination will look like, before the first import. The
#   analyzer reuses the import path's own pieces (SchemaInspector,
#   naming, SchemaSynchronizer DDL builders), so the script is
#   exactly the DDL an import would execute.
#
#   Nothing here touches the status store or the destination.
#
# ==============================================

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional

from tabular_ingest.errors import IngestError
from tabular_ingest.schema.column import ColumnDescriptor
from tabular_ingest.schema.inspector import SchemaInspector
from tabular_ingest.schema.naming import destination_table_name, unique_identifiers
from tabular_ingest.schema.synchronizer import SchemaSynchronizer
from tabular_ingest.source.provider import SourceProvider

logger = logging.getLogger(__name__)


@dataclass
class TableAnalysis:
    name: str
    destination_table: str = ""
    row_count: int = 0
    columns: List[ColumnDescriptor] = field(default_factory=list)
    sql_types: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error_message is None


@dataclass
class FileAnalysis:
    path: str
    file_name: str
    file_size: int = 0
    modified: Optional[datetime] = None
    tables: List[TableAnalysis] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error_message is None

    @property
    def table_count(self) -> int:
        return len(self.tables)

    @property
    def total_rows(self) -> int:
        return sum(t.row_count for t in self.tables)


class SourceAnalyzer:
    def __init__(
        self,
        source_provider: SourceProvider,
        synchronizer: Optional[SchemaSynchronizer] = None,
        inspector: Optional[SchemaInspector] = None,
        table_prefix: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.source_provider = source_provider
        self.synchronizer = synchronizer or SchemaSynchronizer()
        self.inspector = inspector or SchemaInspector()
        self.table_prefix = table_prefix
        self.clock = clock

    # --------------------------
    # Analysis
    # --------------------------

    def analyze(self, path: str) -> FileAnalysis:
        """
        Describe one file. File-level problems (missing, locked,
        unreadable) end up in `error_message`; a table that cannot be
        described carries its own error and the others are still listed.
        """
        analysis = FileAnalysis(path=path, file_name=os.path.basename(path))
        try:
            stat = os.stat(path)
        except OSError as e:
            analysis.error_message = f"File not found: {e}"
            return analysis
        analysis.file_size = stat.st_size
        analysis.modified = datetime.fromtimestamp(stat.st_mtime)

        try:
            with self.source_provider.open(path) as source:
                for table in source.list_tables():
                    analysis.tables.append(self._analyze_table(source, table))
        except IngestError as e:
            analysis.error_message = str(e)
            logger.warning("Cannot analyze %s: %s", analysis.file_name, e)
            return analysis

        logger.info(
            "Analyzed %s: %d table(s), %d row(s)",
            analysis.file_name, analysis.table_count, analysis.total_rows,
        )
        return analysis

    def _analyze_table(self, source, table: str) -> TableAnalysis:
        result = TableAnalysis(name=table, destination_table=destination_table_name(table, self.table_prefix))
        try:
            with source.open_cursor(table) as cursor:
                columns = self.inspector.describe(cursor, table)
            names = unique_identifiers([c.name for c in columns])
            result.columns = [replace(c, name=n) for c, n in zip(columns, names)]
            result.sql_types = [self.synchronizer.type_mapper.map_type(c).sql_type for c in result.columns]
            result.row_count = source.count_rows(table)
        except IngestError as e:
            result.error_message = str(e)
            logger.warning("Cannot analyze table %s: %s", table, e)
        except Exception as e:
            result.error_message = str(e) or type(e).__name__
            logger.exception("Unexpected error analyzing table %s", table)
        return result

    # --------------------------
    # CREATE TABLE scripts
    # --------------------------

    def create_table_script(self, analysis: FileAnalysis) -> str:
        lines = [
            "-- ============================================",
            f"-- CREATE TABLE script for {analysis.file_name}",
            f"-- Generated: {self.clock():%Y-%m-%d %H:%M:%S}",
            f"-- Tables: {analysis.table_count}",
            f"-- Rows: {analysis.total_rows}",
            "-- ============================================",
            "",
        ]
        for table in analysis.tables:
            lines.append(f"-- Source table: {table.name} ({table.row_count} rows)")
            if not table.valid:
                lines.append(f"-- Skipped: {table.error_message}")
                lines.append("")
                continue
            columns = self.synchronizer.expected_columns(table.columns)
            lines.append(self.synchronizer.build_create_table_sql(table.destination_table, columns) + ";")
            lines.append("")
        return "\n".join(lines)

    def write_create_script(self, path: str, output_folder: str) -> Optional[str]:
        """Returns the script path, or None when the file could not be analyzed."""
        analysis = self.analyze(path)
        if not analysis.valid:
            logger.error("No script for %s: %s", analysis.file_name, analysis.error_message)
            return None

        os.makedirs(output_folder, exist_ok=True)
        stem = os.path.splitext(analysis.file_name)[0]
        script_path = os.path.join(output_folder, f"{stem}_CreateTables.sql")
        with open(script_path, "w", encoding="utf-8") as f:
            f.write(self.create_table_script(analysis))
        logger.info("Wrote %s", script_path)
        return script_path


def analysis_report(analysis: FileAnalysis) -> str:
    lines = [f"=== {analysis.file_name} ==="]
    if not analysis.valid:
        lines.append(f"✗ {analysis.error_message}")
        return "\n".join(lines)

    lines.append(f"Size:     {analysis.file_size:,} bytes")
    if analysis.modified is not None:
        lines.append(f"Modified: {analysis.modified:%Y-%m-%d %H:%M:%S}")
    lines.append(f"Tables:   {analysis.table_count}")
    lines.append(f"Rows:     {analysis.total_rows:,}")
    for table in analysis.tables:
        lines.append("")
        lines.append(f"   {table.name} → {table.destination_table} ({table.row_count:,} rows)")
        if not table.valid:
            lines.append(f"     ✗ {table.error_message}")
            continue
        for column, sql_type in zip(table.columns, table.sql_types):
            flags = []
            if column.is_primary_key:
                flags.append("PK")
            if column.is_identity:
                flags.append("identity")
            if not column.nullable:
                flags.append("not null")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            lines.append(f"     {column.name:<30} {column.logical_type.value:<10} {sql_type}{suffix}")
    return "\n".join(lines)
