# ==============================================
# SOURCE: folder snapshots + source file readers
# ==============================================
#
# Modules:
# --------
# - snapshot.py         → List candidate files with size / mtime
# - provider.py         → Interfaces every source reader implements
# - access_provider.py  → Access .mdb / .accdb reader (pyodbc)
#
# access_provider is not imported here: it needs an ODBC driver
# manager on the machine, and nothing else in the package does.
#
# ==============================================

from .provider import RowCursor, SourceConnection, SourceProvider
from .snapshot import SnapshotEntry, SourceSnapshot

__all__ = [
    "RowCursor",
    "SnapshotEntry",
    "SourceConnection",
    "SourceProvider",
    "SourceSnapshot",
]
