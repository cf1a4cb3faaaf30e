import logging
from dataclasses import replace
from typing import List

from tabular_ingest.errors import SchemaUnavailable
from tabular_ingest.schema.column import ColumnDescriptor
from tabular_ingest.source.provider import RowCursor

logger = logging.getLogger(__name__)


class SchemaInspector:
    """
    Reads column descriptors from an open source cursor.

    There is exactly one way to get metadata per provider: the cursor's
    own describe(). No fallback probing. A cursor that cannot describe
    itself makes the table unimportable.
    """

    def describe(self, cursor: RowCursor, table_name: str = "") -> List[ColumnDescriptor]:
        try:
            columns = cursor.describe()
        except SchemaUnavailable:
            raise
        except Exception as e:
            raise SchemaUnavailable(
                f"Cannot read column metadata: {e}", table=table_name
            ) from e

        if not columns:
            raise SchemaUnavailable("Source exposes no columns", table=table_name)

        seen = set()
        for column in columns:
            if not column.name:
                raise SchemaUnavailable("Source column without a name", table=table_name)
            key = column.name.lower()
            if key in seen:
                raise SchemaUnavailable(f"Duplicate column name '{column.name}'", table=table_name)
            seen.add(key)

        ordered = [
            replace(column, ordinal=index)
            for index, column in enumerate(columns)
        ]
        logger.debug(
            "Table %s: %d column(s), primary key: %s",
            table_name or "?",
            len(ordered),
            ", ".join(c.name for c in ordered if c.is_primary_key) or "none",
        )
        return ordered
