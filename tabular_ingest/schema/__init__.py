# ==============================================
# SCHEMA: column metadata → MySQL tables
# ==============================================
#
# Modules:
# --------
# - column.py        → LogicalType, ColumnDescriptor, DestinationTypeSpec
# - inspector.py     → Read column descriptors from a source cursor
# - type_mapper.py   → Logical type → MySQL column type
# - naming.py        → Safe, idempotent identifier sanitization
# - synchronizer.py  → Create / extend destination tables
#
# ==============================================

from .column import ColumnDescriptor, DestinationTypeSpec, LogicalType

__all__ = ["ColumnDescriptor", "DestinationTypeSpec", "LogicalType"]
