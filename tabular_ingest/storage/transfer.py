# ==============================================
# BulkTransferEngine
# ==============================================
#
# PURPOSE:
#   Copy every row of one source table into its destination table.
#
# HOW:
#   - Rows are read with cursor.fetchmany(batch_size) and written
#     with one destination.insert_rows() call per batch.
#   - The whole table is one transaction: either every batch is
#     committed or none is.
#   - The cancel event is checked between batches. A cancelled
#     table is rolled back and TransferCancelled is raised.
#   - Any read or write error rolls back and is re-raised as
#     TransferError with the original exception chained.
#
#   Row counts come from the destination's affected-row count,
#   not from the number of rows read.
#
# ==============================================

import logging
import threading
from datetime import datetime
from typing import List, Optional, Sequence

from tabular_ingest.errors import TransferCancelled, TransferError
from tabular_ingest.source.provider import RowCursor
from tabular_ingest.storage.destination import Destination

logger = logging.getLogger(__name__)


class BulkTransferEngine:
    def __init__(self, batch_size: int = 5000, progress_interval: int = 10000):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size
        self.progress_interval = progress_interval

    def transfer(
        self,
        cursor: RowCursor,
        destination: Destination,
        table_name: str,
        columns: List[str],
        cancel_event: Optional[threading.Event] = None,
        lineage: Sequence = (),
    ) -> int:
        """
        Returns the number of rows the destination reports as inserted.

        `columns` are destination column names in source order. Values
        in `lineage` are appended to every row; their column names must
        already be at the end of `columns`.
        """
        extra = tuple(lineage)
        rows_imported = 0
        next_report = self.progress_interval
        started = datetime.now()

        try:
            with destination.transaction():
                while True:
                    if cancel_event is not None and cancel_event.is_set():
                        raise TransferCancelled(
                            f"Cancelled after {rows_imported} rows; table rolled back",
                            table=table_name,
                        )

                    batch = cursor.fetchmany(self.batch_size)
                    if not batch:
                        break

                    if extra:
                        batch = [tuple(row) + extra for row in batch]
                    rows_imported += destination.insert_rows(table_name, columns, batch)

                    if self.progress_interval and rows_imported >= next_report:
                        logger.info("%s: %d rows transferred", table_name, rows_imported)
                        next_report = rows_imported + self.progress_interval
        except TransferError:
            raise
        except Exception as e:
            raise TransferError(
                f"Transfer failed after {rows_imported} rows: {e}", table=table_name
            ) from e

        elapsed = (datetime.now() - started).total_seconds()
        logger.info("%s: %d rows committed in %.1fs", table_name, rows_imported, elapsed)
        return rows_imported
