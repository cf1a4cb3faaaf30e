# ==============================================
# MySQLClient
# ==============================================
#
# PURPOSE:
#   One MySQL session for the import of one source file.
#   Answers schema questions, runs DDL, and inserts row batches
#   inside an explicit transaction.
#
# WHY THIS CLASS EXISTS:
#   Tables are created ON THE FLY from whatever the source files
#   contain. The synchronizer decides WHAT DDL to run; this class
#   is the only place that talks to pymysql.
#
# CLASS: MySQLClient
# ------------------
#   Stateful: holds one connection. Not thread safe; every worker
#   opens its own client.
#
#   - connect() / disconnect()
#       Create the database if needed, autocommit off.
#   - table_exists(table_name) -> bool
#   - list_columns(table_name) -> list[str]     (ordinal order)
#   - execute_ddl(sql) -> None                  (DDL commits implicitly)
#   - transaction()                             (context manager)
#   - insert_rows(table, columns, rows) -> int  (executemany)
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MySQLClient(...) as db:` usage.
#
# ==============================================

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

import pymysql

from tabular_ingest.config import MySQLConfig
from tabular_ingest.schema.naming import quote_identifier
from tabular_ingest.storage.destination import Destination

logger = logging.getLogger(__name__)


class MySQLClient(Destination):
    def __init__(self, host, port, user, password, database, charset="utf8mb4", connect_timeout=30):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.charset = charset
        self.connect_timeout = connect_timeout
        self.connection: Optional[pymysql.connections.Connection] = None

    @classmethod
    def from_config(cls, config: MySQLConfig) -> "MySQLClient":
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            database=config.database,
            charset=config.charset,
            connect_timeout=config.connect_timeout,
        )

    def connect(self) -> None:
        # Establish connection to MySQL, create database if it doesn't exist
        self.connection = pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            charset=self.charset,
            connect_timeout=self.connect_timeout,
            autocommit=False,
        )
        with self.connection.cursor() as cursor:
            cursor.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.database)}")
            cursor.execute(f"USE {quote_identifier(self.database)}")
        logger.debug("Connected to MySQL %s:%s/%s", self.host, self.port, self.database)

    def disconnect(self) -> None:
        if self.connection:
            try:
                self.connection.close()
            except pymysql.err.Error as e:
                logger.warning("Error closing MySQL connection: %s", e)
            self.connection = None

    close = disconnect

    def _require_connection(self) -> pymysql.connections.Connection:
        if self.connection is None:
            raise RuntimeError("Not connected to MySQL")
        return self.connection

    def table_exists(self, table_name: str) -> bool:
        connection = self._require_connection()
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES "
                "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
                (self.database, table_name),
            )
            row = cursor.fetchone()
        if row is None:
            raise RuntimeError("COUNT query returned no rows")
        return row[0] > 0

    def list_columns(self, table_name: str) -> List[str]:
        connection = self._require_connection()
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS "
                "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s "
                "ORDER BY ORDINAL_POSITION",
                (self.database, table_name),
            )
            return [str(row[0]) for row in cursor.fetchall()]

    def execute_ddl(self, sql: str) -> None:
        connection = self._require_connection()
        logger.debug("DDL: %s", sql)
        with connection.cursor() as cursor:
            cursor.execute(sql)
        connection.commit()

    @contextmanager
    def transaction(self) -> Iterator["MySQLClient"]:
        connection = self._require_connection()
        connection.begin()
        try:
            yield self
        except BaseException:
            connection.rollback()
            raise
        else:
            connection.commit()

    def insert_rows(self, table_name: str, columns: List[str], rows: Sequence[Sequence]) -> int:
        if not rows:
            return 0
        connection = self._require_connection()
        column_names = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        query = f"INSERT INTO {quote_identifier(table_name)} ({column_names}) VALUES ({placeholders})"
        with connection.cursor() as cursor:
            affected = cursor.executemany(query, [tuple(r) for r in rows])
        # executemany returns None for an empty sequence on some versions
        return int(affected or 0)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
