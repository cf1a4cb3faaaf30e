# ==============================================
# Source Provider Interfaces
# ==============================================
#
# The ingest core never talks to a file format directly. It asks a
# SourceProvider to open a file, then reads tables through RowCursor.
#
#   provider.open(path)          -> SourceConnection (context manager)
#   connection.list_tables()     -> user table names, in source order
#   connection.open_cursor(t)    -> RowCursor
#   cursor.describe()            -> list[ColumnDescriptor]
#   cursor.fetchmany(n)          -> up to n rows (tuples), [] when done
#   connection.count_rows(t)     -> number of rows in a table
#
# open() raises FileLocked when another process holds the file and
# SourceOpenError when the file cannot be read at all.
#
# ==============================================

from abc import ABC, abstractmethod
from typing import List, Sequence

from tabular_ingest.schema.column import ColumnDescriptor


class RowCursor(ABC):
    @abstractmethod
    def describe(self) -> List[ColumnDescriptor]:
        ...

    @abstractmethod
    def fetchmany(self, size: int) -> List[Sequence]:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SourceConnection(ABC):
    @abstractmethod
    def list_tables(self) -> List[str]:
        ...

    @abstractmethod
    def open_cursor(self, table_name: str) -> RowCursor:
        ...

    def count_rows(self, table_name: str, batch_size: int = 5000) -> int:
        """Count by reading the whole table. Override where the source can count itself."""
        total = 0
        with self.open_cursor(table_name) as cursor:
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    return total
                total += len(rows)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SourceProvider(ABC):
    @abstractmethod
    def open(self, path: str) -> SourceConnection:
        ...
