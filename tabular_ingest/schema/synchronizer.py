# ==============================================
# SchemaSynchronizer
# ==============================================
#
# PURPOSE:
#   Make sure a destination table exists and can take every source
#   column before any rows are sent.
#
# WHY THIS CLASS EXISTS:
#   Destination tables are never declared up front. The first file
#   that carries a table creates it; later files may carry extra
#   columns. This class owns that decision so the transfer engine
#   can assume the table is ready.
#
# RULES:
# ------
#   - Missing table + auto_create      → CREATE TABLE IF NOT EXISTS
#   - Missing table, no auto_create    → SchemaMismatch
#   - Existing table + sync_structure  → ADD COLUMN for missing ones,
#                                        always nullable
#   - Existing table, no sync          → SchemaMismatch if a source
#                                        column is missing
#   - Columns are never dropped, renamed or narrowed.
#   - PRIMARY KEY only when the source flags key columns. Key columns
#     are forced NOT NULL.
#   - The first integer identity column gets AUTO_INCREMENT.
#
# CONCURRENCY:
#   One lock per destination table name (case-insensitive) around
#   check-and-create, so two workers importing the same table from
#   different files do not race each other.
#
# ==============================================

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from tabular_ingest.errors import SchemaMismatch
from tabular_ingest.schema.column import ColumnDescriptor, LogicalType
from tabular_ingest.schema.naming import quote_identifier
from tabular_ingest.schema.type_mapper import TypeMapper
from tabular_ingest.storage.destination import Destination

logger = logging.getLogger(__name__)

SOURCE_FILE_COLUMN = "_source_file"
IMPORT_TIME_COLUMN = "_import_time"

_AUTO_INCREMENT_TYPES = ("TINYINT", "SMALLINT", "INT", "BIGINT")


class SchemaSynchronizer:
    def __init__(
        self,
        type_mapper: Optional[TypeMapper] = None,
        auto_create: bool = True,
        sync_structure: bool = False,
        add_source_file_column: bool = False,
        add_import_time_column: bool = False,
    ):
        self.type_mapper = type_mapper or TypeMapper()
        self.auto_create = auto_create
        self.sync_structure = sync_structure
        self.add_source_file_column = add_source_file_column
        self.add_import_time_column = add_import_time_column
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --------------------------
    # Lineage columns
    # --------------------------

    def lineage_columns(self) -> List[ColumnDescriptor]:
        columns = []
        if self.add_source_file_column:
            columns.append(ColumnDescriptor(SOURCE_FILE_COLUMN, LogicalType.STRING, max_length=500))
        if self.add_import_time_column:
            columns.append(ColumnDescriptor(IMPORT_TIME_COLUMN, LogicalType.DATETIME))
        return columns

    def lineage_values(self, source_file: str, import_time: datetime) -> Tuple:
        # same order as lineage_columns()
        values = []
        if self.add_source_file_column:
            values.append(source_file)
        if self.add_import_time_column:
            values.append(import_time)
        return tuple(values)

    def expected_columns(self, columns: List[ColumnDescriptor]) -> List[ColumnDescriptor]:
        return list(columns) + self.lineage_columns()

    # --------------------------
    # DDL builders (pure)
    # --------------------------

    def column_definition(self, column: ColumnDescriptor, *, force_nullable: bool = False, auto_increment: bool = False) -> str:
        sql_type = self.type_mapper.map_type(column).sql_type
        if force_nullable:
            nullable = True
        else:
            nullable = column.nullable and not column.is_primary_key
        parts = [quote_identifier(column.name), sql_type, "NULL" if nullable else "NOT NULL"]
        if auto_increment:
            parts.append("AUTO_INCREMENT")
        return " ".join(parts)

    def _auto_increment_column(self, columns: List[ColumnDescriptor]) -> Optional[ColumnDescriptor]:
        for column in columns:
            if column.is_identity:
                if self.type_mapper.map_type(column).sql_type in _AUTO_INCREMENT_TYPES:
                    return column
                return None
        return None

    def build_create_table_sql(self, table_name: str, columns: List[ColumnDescriptor]) -> str:
        identity = self._auto_increment_column(columns)
        definitions = [
            self.column_definition(c, auto_increment=c is identity)
            for c in columns
        ]

        key_columns = [c.name for c in columns if c.is_primary_key]
        if key_columns:
            definitions.append(
                "PRIMARY KEY (" + ", ".join(quote_identifier(n) for n in key_columns) + ")"
            )
        if identity is not None and not identity.is_primary_key:
            # AUTO_INCREMENT needs an index of its own
            definitions.append(f"KEY ({quote_identifier(identity.name)})")

        body = ",\n  ".join(definitions)
        return (
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} (\n  {body}\n)"
            " DEFAULT CHARSET=utf8mb4"
        )

    def build_add_column_sql(self, table_name: str, column: ColumnDescriptor) -> str:
        definition = self.column_definition(column, force_nullable=True)
        return f"ALTER TABLE {quote_identifier(table_name)} ADD COLUMN {definition}"

    # --------------------------
    # ensure_table
    # --------------------------

    def _lock_for(self, table_name: str) -> threading.Lock:
        key = table_name.lower()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def ensure_table(self, destination: Destination, table_name: str, columns: List[ColumnDescriptor]) -> bool:
        """
        Create or extend `table_name` so it can take `columns`.

        Returns True if the table was created by this call. Running it
        again with the same columns executes no DDL.
        """
        expected = self.expected_columns(columns)

        with self._lock_for(table_name):
            if not destination.table_exists(table_name):
                if not self.auto_create:
                    raise SchemaMismatch(
                        f"Destination table {table_name} does not exist and auto-create is disabled",
                        table=table_name,
                    )
                for column in expected:
                    if column.is_primary_key and column.nullable:
                        logger.info(
                            "Key column %s.%s reported nullable by source; creating as NOT NULL",
                            table_name, column.name,
                        )
                destination.execute_ddl(self.build_create_table_sql(table_name, expected))
                logger.info("Created table %s (%d columns)", table_name, len(expected))
                return True

            existing = {name.lower() for name in destination.list_columns(table_name)}
            missing = [c for c in expected if c.name.lower() not in existing]
            if not missing:
                return False

            names = ", ".join(c.name for c in missing)
            if not self.sync_structure:
                raise SchemaMismatch(
                    f"Destination table {table_name} is missing column(s): {names}",
                    table=table_name,
                )

            for column in missing:
                destination.execute_ddl(self.build_add_column_sql(table_name, column))
            logger.info("Added %d column(s) to %s: %s", len(missing), table_name, names)
            return False
