# ==============================================
# TypeMapper
# ==============================================
#
# PURPOSE:
#   Decide the MySQL column type for a source column.
#
# WHY THIS CLASS EXISTS:
#   Source readers report logical types (see LogicalType). The
#   destination needs concrete DDL types. Keeping the policy in one
#   pure class means the synchronizer and the tests see exactly the
#   same decision for the same column, every time.
#
# POLICY:
# -------
#   STRING    -> VARCHAR(n) if 0 < n <= max_varchar_length else LONGTEXT
#   TEXT      -> LONGTEXT
#   integers  -> TINYINT / SMALLINT / INT / BIGINT
#   FLOAT     -> FLOAT,  DOUBLE -> DOUBLE
#   DECIMAL   -> DECIMAL(p,s) from the source, else DECIMAL(18,6)
#   CURRENCY  -> DECIMAL(19,4)
#   DATETIME / DATE / TIME -> same name
#   BOOLEAN   -> BIT(1)
#   BINARY    -> LONGBLOB
#   GUID      -> CHAR(36)
#   UNKNOWN   -> name heuristics if no length is known, else as STRING
#
#   Primary key columns never get LONGTEXT: MySQL cannot index it,
#   so they are capped at VARCHAR(max_varchar_length).
#
#   Nullability is not decided here.
#
# ==============================================

import re
from typing import Optional

from tabular_ingest.schema.column import ColumnDescriptor, DestinationTypeSpec, LogicalType

MAX_DECIMAL_PRECISION = 65
MAX_DECIMAL_SCALE = 30

_FIXED_TYPES = {
    LogicalType.TEXT: "LONGTEXT",
    LogicalType.TINYINT: "TINYINT",
    LogicalType.SMALLINT: "SMALLINT",
    LogicalType.INTEGER: "INT",
    LogicalType.BIGINT: "BIGINT",
    LogicalType.FLOAT: "FLOAT",
    LogicalType.DOUBLE: "DOUBLE",
    LogicalType.CURRENCY: "DECIMAL(19,4)",
    LogicalType.DATETIME: "DATETIME",
    LogicalType.DATE: "DATE",
    LogicalType.TIME: "TIME",
    LogicalType.BOOLEAN: "BIT(1)",
    LogicalType.BINARY: "LONGBLOB",
    LogicalType.GUID: "CHAR(36)",
}

# Checked in order; first token hit wins
_NAME_HINTS = (
    (("date", "time", "datetime", "timestamp"), "DATETIME"),
    (("amount", "price", "money", "cost"), "DECIMAL(18,2)"),
    (("quantity", "qty", "weight", "volume"), "DECIMAL(18,4)"),
    (("code", "no", "num"), "VARCHAR(50)"),
    (("name", "title"), "VARCHAR(200)"),
    (("description", "remark", "note", "comment"), "LONGTEXT"),
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def _name_tokens(name: str) -> list[str]:
    spaced = _CAMEL_BOUNDARY.sub("_", name)
    return [t for t in _TOKEN_SPLIT.split(spaced.lower()) if t]


class TypeMapper:
    def __init__(self, max_varchar_length: int = 255):
        if max_varchar_length <= 0:
            raise ValueError("max_varchar_length must be positive")
        self.max_varchar_length = max_varchar_length

    def map_type(self, column: ColumnDescriptor) -> DestinationTypeSpec:
        spec = self._map(column)
        if column.is_primary_key and spec.sql_type == "LONGTEXT":
            return DestinationTypeSpec(
                f"VARCHAR({self.max_varchar_length})",
                "key column capped to an indexable length",
            )
        return spec

    def _map(self, column: ColumnDescriptor) -> DestinationTypeSpec:
        logical = column.logical_type

        if logical in _FIXED_TYPES:
            return DestinationTypeSpec(_FIXED_TYPES[logical], f"{logical.value} column")

        if logical is LogicalType.STRING:
            return self._string_type(column.max_length)

        if logical is LogicalType.DECIMAL:
            return self._decimal_type(column.precision, column.scale)

        # UNKNOWN: a reported length is better evidence than the name
        if column.max_length is not None:
            return self._string_type(column.max_length)

        hint = self._from_name(column.name)
        if hint is not None:
            return hint
        return DestinationTypeSpec("LONGTEXT", "unknown type, no name hint")

    def _string_type(self, max_length: Optional[int]) -> DestinationTypeSpec:
        if max_length is not None and 0 < max_length <= self.max_varchar_length:
            return DestinationTypeSpec(f"VARCHAR({max_length})", f"string of length {max_length}")
        return DestinationTypeSpec("LONGTEXT", "string without a usable length")

    def _decimal_type(self, precision: Optional[int], scale: Optional[int]) -> DestinationTypeSpec:
        if (
            precision is not None
            and 0 < precision <= MAX_DECIMAL_PRECISION
            and scale is not None
            and 0 <= scale <= min(precision, MAX_DECIMAL_SCALE)
        ):
            return DestinationTypeSpec(f"DECIMAL({precision},{scale})", "decimal with source precision")
        return DestinationTypeSpec("DECIMAL(18,6)", "decimal without usable precision")

    def _from_name(self, name: str) -> Optional[DestinationTypeSpec]:
        tokens = set(_name_tokens(name))
        for hints, sql_type in _NAME_HINTS:
            for token in hints:
                if token in tokens:
                    return DestinationTypeSpec(sql_type, f"inferred from column name token '{token}'")
        return None
