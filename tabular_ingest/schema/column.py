# ==============================================
# Column Types (Data Classes)
# ==============================================
#
# PURPOSE:
#   The vocabulary shared between source readers, the type mapper
#   and the table synchronizer.
#
# ENUMS:
# ------
# - LogicalType(Enum)
#     Source-independent column types. Readers translate their
#     native type names into one of these.
#
# CLASSES:
# --------
# - ColumnDescriptor (dataclass)
#     One source column: name, logical type, nullability, length,
#     identity / primary key flags, decimal precision and scale.
#
# - DestinationTypeSpec (dataclass, frozen)
#     The MySQL column type chosen for a descriptor, plus the reason
#     it was chosen.
#
# ==============================================

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LogicalType(Enum):
    STRING = "string"
    TEXT = "text"
    TINYINT = "tinyint"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    CURRENCY = "currency"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    BOOLEAN = "boolean"
    BINARY = "binary"
    GUID = "guid"
    UNKNOWN = "unknown"


@dataclass
class ColumnDescriptor:
    """
    One column as the source describes it.

    `max_length` is None when the source does not report a length.
    `precision` / `scale` are only meaningful for DECIMAL.
    """

    name: str
    logical_type: LogicalType = LogicalType.UNKNOWN
    nullable: bool = True
    max_length: Optional[int] = None
    is_identity: bool = False
    is_primary_key: bool = False
    precision: Optional[int] = None
    scale: Optional[int] = None
    ordinal: int = 0


@dataclass(frozen=True)
class DestinationTypeSpec:
    sql_type: str
    reason: str = ""
