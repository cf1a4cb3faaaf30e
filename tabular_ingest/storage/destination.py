from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import List, Sequence


class Destination(ABC):
    """
    What the synchronizer and the transfer engine need from a sink.

    One instance is one session. Sessions are not shared between
    threads; every worker opens its own.
    """

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        ...

    @abstractmethod
    def list_columns(self, table_name: str) -> List[str]:
        ...

    @abstractmethod
    def execute_ddl(self, sql: str) -> None:
        ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Commit on clean exit, roll back if the block raises."""

    @abstractmethod
    def insert_rows(self, table_name: str, columns: List[str], rows: Sequence[Sequence]) -> int:
        """Insert inside the current transaction; return affected rows."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
