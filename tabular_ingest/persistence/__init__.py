# ==============================================
# PERSISTENCE: import status across restarts
# ==============================================
#
# This package remembers, per source file, whether it was imported,
# failed, or is waiting, so a restart does not import anything twice.
#
# Modules:
# --------
# - backend.py       → JSON status file, atomic replace on write
# - status_store.py  → FileRecord lifecycle + reconcile against a scan
#
# ==============================================
