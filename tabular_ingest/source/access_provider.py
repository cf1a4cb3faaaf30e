# ==============================================
# AccessSourceProvider
# ==============================================
#
# PURPOSE:
#   Read Microsoft Access .mdb / .accdb files through the Access
#   ODBC driver (pyodbc).
#
# DETAILS:
# --------
#   - A file with a sibling .ldb / .laccdb lock file is open in
#     Access somewhere → FileLocked. Driver errors that say the same
#     thing are mapped to FileLocked too; every other open error is
#     SourceOpenError.
#   - System and temporary tables (MSys*, ~*, _*) are not listed.
#   - Column metadata comes from the driver's catalog (SQLColumns),
#     the primary key from the index named "PrimaryKey"
#     (SQLStatistics). A table without one simply has no key.
#   - GUID values arrive as "{xxxxxxxx-...}" and are sent without
#     braces so they fit CHAR(36).
#
# ==============================================

import logging
import os
from typing import List, Optional, Sequence

import pyodbc

from tabular_ingest.errors import FileLocked, SchemaUnavailable, SourceOpenError
from tabular_ingest.schema.column import ColumnDescriptor, LogicalType
from tabular_ingest.source.provider import RowCursor, SourceConnection, SourceProvider

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "Microsoft Access Driver (*.mdb, *.accdb)"

SYSTEM_TABLE_PREFIXES = ("msys", "~", "_")

LOCK_FILE_EXTENSIONS = {".mdb": ".ldb", ".accdb": ".laccdb"}

_LOCK_MESSAGES = (
    "already in use",
    "exclusively locked",
    "could not lock file",
    "file is locked",
    "opened exclusively",
)

# Access ODBC type names → logical types
_TYPE_NAMES = {
    "COUNTER": LogicalType.INTEGER,
    "AUTOINCREMENT": LogicalType.INTEGER,
    "INTEGER": LogicalType.INTEGER,
    "LONG": LogicalType.INTEGER,
    "SMALLINT": LogicalType.SMALLINT,
    "SHORT": LogicalType.SMALLINT,
    # Access BYTE is unsigned 0..255, MySQL TINYINT is signed
    "BYTE": LogicalType.SMALLINT,
    "TINYINT": LogicalType.SMALLINT,
    "BIGINT": LogicalType.BIGINT,
    "BIT": LogicalType.BOOLEAN,
    "YESNO": LogicalType.BOOLEAN,
    "REAL": LogicalType.FLOAT,
    "SINGLE": LogicalType.FLOAT,
    "DOUBLE": LogicalType.DOUBLE,
    "FLOAT": LogicalType.DOUBLE,
    "CURRENCY": LogicalType.CURRENCY,
    "MONEY": LogicalType.CURRENCY,
    "DECIMAL": LogicalType.DECIMAL,
    "NUMERIC": LogicalType.DECIMAL,
    "DATETIME": LogicalType.DATETIME,
    "DATE": LogicalType.DATETIME,
    "VARCHAR": LogicalType.STRING,
    "CHAR": LogicalType.STRING,
    "TEXT": LogicalType.STRING,
    "LONGCHAR": LogicalType.TEXT,
    "MEMO": LogicalType.TEXT,
    "LONGBINARY": LogicalType.BINARY,
    "BINARY": LogicalType.BINARY,
    "VARBINARY": LogicalType.BINARY,
    "GUID": LogicalType.GUID,
}

_IDENTITY_TYPE_NAMES = ("COUNTER", "AUTOINCREMENT")


def logical_type_for(type_name: Optional[str]) -> LogicalType:
    if not type_name:
        return LogicalType.UNKNOWN
    return _TYPE_NAMES.get(type_name.strip().upper(), LogicalType.UNKNOWN)


def is_system_table(name: str) -> bool:
    return name.lower().startswith(SYSTEM_TABLE_PREFIXES)


def lock_file_for(path: str) -> Optional[str]:
    base, ext = os.path.splitext(path)
    lock_ext = LOCK_FILE_EXTENSIONS.get(ext.lower())
    return base + lock_ext if lock_ext else None


def _is_lock_error(error: Exception) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in _LOCK_MESSAGES)


def _bracket(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def _clean_value(value):
    if isinstance(value, str) and len(value) == 38 and value.startswith("{") and value.endswith("}"):
        return value[1:-1]
    return value


class AccessRowCursor(RowCursor):
    def __init__(self, connection: pyodbc.Connection, table_name: str):
        self.connection = connection
        self.table_name = table_name
        self._columns: Optional[List[ColumnDescriptor]] = None
        self._cursor: Optional[pyodbc.Cursor] = None

    def _primary_key_columns(self) -> set:
        keys = set()
        meta = self.connection.cursor()
        try:
            for row in meta.statistics(self.table_name, unique=True):
                if row.index_name and row.index_name.lower() == "primarykey" and row.column_name:
                    keys.add(row.column_name.lower())
        except pyodbc.Error as e:
            # Some driver builds do not implement SQLStatistics
            logger.debug("No index metadata for %s: %s", self.table_name, e)
        finally:
            meta.close()
        return keys

    def describe(self) -> List[ColumnDescriptor]:
        if self._columns is not None:
            return self._columns

        meta = self.connection.cursor()
        try:
            rows = list(meta.columns(table=self.table_name))
        except pyodbc.Error as e:
            raise SchemaUnavailable(f"Cannot read columns: {e}", table=self.table_name) from e
        finally:
            meta.close()

        rows.sort(key=lambda r: r.ordinal_position or 0)
        keys = self._primary_key_columns()

        columns = []
        for index, row in enumerate(rows):
            type_name = (row.type_name or "").upper()
            logical = logical_type_for(type_name)
            columns.append(
                ColumnDescriptor(
                    name=row.column_name,
                    logical_type=logical,
                    nullable=bool(row.nullable),
                    max_length=row.column_size if logical is LogicalType.STRING else None,
                    is_identity=type_name in _IDENTITY_TYPE_NAMES,
                    is_primary_key=row.column_name.lower() in keys,
                    precision=row.column_size if logical is LogicalType.DECIMAL else None,
                    scale=row.decimal_digits if logical is LogicalType.DECIMAL else None,
                    ordinal=index,
                )
            )
        self._columns = columns
        return columns

    def fetchmany(self, size: int) -> List[Sequence]:
        if self._cursor is None:
            column_list = ", ".join(_bracket(c.name) for c in self.describe())
            self._cursor = self.connection.cursor()
            self._cursor.execute(f"SELECT {column_list} FROM {_bracket(self.table_name)}")
        rows = self._cursor.fetchmany(size)
        return [tuple(_clean_value(v) for v in row) for row in rows]

    def close(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None


class AccessConnection(SourceConnection):
    def __init__(self, connection: pyodbc.Connection, path: str):
        self.connection = connection
        self.path = path

    def list_tables(self) -> List[str]:
        cursor = self.connection.cursor()
        try:
            names = [row.table_name for row in cursor.tables(tableType="TABLE")]
        finally:
            cursor.close()
        return [n for n in names if not is_system_table(n)]

    def open_cursor(self, table_name: str) -> RowCursor:
        return AccessRowCursor(self.connection, table_name)

    def count_rows(self, table_name: str, batch_size: int = 5000) -> int:
        cursor = self.connection.cursor()
        try:
            cursor.execute(f"SELECT COUNT(*) FROM {_bracket(table_name)}")
            return int(cursor.fetchone()[0])
        finally:
            cursor.close()

    def close(self) -> None:
        try:
            self.connection.close()
        except pyodbc.Error as e:
            logger.debug("Error closing %s: %s", self.path, e)


class AccessSourceProvider(SourceProvider):
    def __init__(self, driver: str = DEFAULT_DRIVER, password: Optional[str] = None, timeout: int = 30):
        self.driver = driver
        self.password = password
        self.timeout = timeout

    def connection_string(self, path: str) -> str:
        parts = [f"DRIVER={{{self.driver}}}", f"DBQ={path}", "ReadOnly=1"]
        if self.password:
            parts.append(f"PWD={self.password}")
        return ";".join(parts) + ";"

    def open(self, path: str) -> SourceConnection:
        lock_file = lock_file_for(path)
        if lock_file and os.path.exists(lock_file):
            raise FileLocked(f"File is in use ({os.path.basename(lock_file)} present)", path=path)

        try:
            connection = pyodbc.connect(self.connection_string(path), timeout=self.timeout, autocommit=True)
        except pyodbc.Error as e:
            if _is_lock_error(e):
                raise FileLocked(f"File is in use: {e}", path=path) from e
            raise SourceOpenError(f"Cannot open source file: {e}", path=path) from e

        return AccessConnection(connection, path)
