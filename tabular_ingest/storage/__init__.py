# ==============================================
# STORAGE: destination database + bulk transfer
# ==============================================
#
# Modules:
# --------
# - destination.py   → Interface the transfer engine writes through
# - mysql_client.py  → MySQL destination (PyMySQL)
# - transfer.py      → Batched, cancellable, per-table transactional copy
#
# ==============================================
