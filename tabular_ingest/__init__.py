# ==============================================
# Tabular Ingest
# ==============================================
#
# Package Structure:
#
# tabular_ingest/
# ├── source/           # Folder snapshot + source file readers
# ├── schema/           # Column inspection, type mapping, table sync
# ├── storage/          # MySQL destination + batched bulk transfer
# ├── persistence/      # Durable per-file import status
# ├── archive.py        # Archive copies + retry staging
# ├── orchestrator.py   # One file, all of its tables
# ├── scheduler.py      # Passes over the source folder
# ├── watcher.py        # File-appeared trigger
# ├── report.py         # Text reports
# ├── config.py         # Configuration management
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
