# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# COMMANDS:
# ---------
# 1. One pass over the source folder:
#    python -m tabular_ingest.cli run
#    python -m tabular_ingest.cli run --files a.mdb b.accdb
#
# 2. Retry failed files that still have retries left:
#    python -m tabular_ingest.cli retry
#
# 3. Keep running (timer, plus folder watch if enabled):
#    python -m tabular_ingest.cli watch
#
# 4. Show the status report:
#    python -m tabular_ingest.cli status
#
# 5. Write the status report to a file:
#    python -m tabular_ingest.cli report --output report.txt
#
# 6. Remove old archive / retry copies and stale status records:
#    python -m tabular_ingest.cli cleanup --days 30
#
# 7. Describe source files (tables, row counts, columns), no import:
#    python -m tabular_ingest.cli analyze
#    python -m tabular_ingest.cli analyze --files a.mdb
#
# 8. Write the CREATE TABLE statements an import would run:
#    python -m tabular_ingest.cli script --output sql/
#
# ==============================================

import argparse
import sys
import threading
from typing import List, Optional

from tabular_ingest.analyzer import analysis_report
from tabular_ingest.archive import Archiver, RetryStaging
from tabular_ingest.config import get_config
from tabular_ingest.errors import DirectoryUnavailable
from tabular_ingest.logging_config import setup_logging
from tabular_ingest.models import ProcessingResult
from tabular_ingest.persistence.backend import JsonStatusBackend
from tabular_ingest.persistence.status_store import FileStatusStore
from tabular_ingest.report import processing_report, status_report
from tabular_ingest.service import IngestService


def _print_result(result: Optional[ProcessingResult]) -> int:
    if result is None:
        print("⚠ A pass is already running; nothing done")
        return 1
    print(processing_report(result))
    if result.message.startswith("Pass aborted"):
        print(f"✗ {result.message}")
        return 2
    if result.failed:
        print(f"⚠ {result.failed} file(s) failed")
        return 1
    print(f"✓ {result.message}")
    return 0


def _load_store(config) -> FileStatusStore:
    store = FileStatusStore(
        JsonStatusBackend(config.folders.status_path),
        max_retries=config.processing.max_retry_count,
    )
    store.load()
    return store


def cmd_run(args, config) -> int:
    service = IngestService(config)
    if args.files:
        return _print_result(service.process_files(args.files))
    return _print_result(service.run_once())


def cmd_retry(args, config) -> int:
    service = IngestService(config)
    return _print_result(service.retry_failed())


def cmd_watch(args, config) -> int:
    service = IngestService(config)
    service.start()
    print(
        f"✓ Watching {config.folders.source_folder} "
        f"(every {config.processing.batch_processing_interval_minutes} min"
        f"{', plus folder events' if config.processing.monitor_source_folder else ''}). Ctrl+C to stop."
    )
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        service.stop()
    return 0


def cmd_status(args, config) -> int:
    store = _load_store(config)
    print(status_report(store.records(), store.statistics()))
    return 0


def cmd_report(args, config) -> int:
    store = _load_store(config)
    text = status_report(store.records(), store.statistics())
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(text)
    print(f"✓ Report written to {args.output}")
    return 0


def cmd_cleanup(args, config) -> int:
    days = args.days if args.days is not None else config.processing.retention_days
    store = _load_store(config)
    removed = {
        "status_records": store.cleanup(days),
        "archived_files": Archiver(config.folders.archive_folder).cleanup(days),
        "staged_files": RetryStaging(config.folders.retry_folder).cleanup(days),
    }
    for name, count in removed.items():
        print(f"   {name}: {count}")
    print(f"✓ Cleanup of items older than {days} day(s) done")
    return 0


def cmd_analyze(args, config) -> int:
    service = IngestService(config)
    try:
        analyses = service.analyze(args.files)
    except DirectoryUnavailable as e:
        print(f"✗ {e}")
        return 2
    if not analyses:
        print("⚠ No source files found")
        return 0
    for analysis in analyses:
        print(analysis_report(analysis))
        print()
    invalid = sum(1 for a in analyses if not a.valid)
    print(f"✓ Analyzed {len(analyses)} file(s), {invalid} unreadable")
    return 1 if invalid else 0


def cmd_script(args, config) -> int:
    service = IngestService(config)
    try:
        scripts = service.generate_scripts(args.output, args.files)
    except DirectoryUnavailable as e:
        print(f"✗ {e}")
        return 2
    if not scripts:
        print("⚠ No source files found")
        return 0
    failed = 0
    for source, script in scripts.items():
        if script is None:
            failed += 1
            print(f"✗ {source}: could not be analyzed")
        else:
            print(f"✓ {source} → {script}")
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabular-ingest",
        description="Import Access database files from a folder into MySQL.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="one pass over the source folder")
    run.add_argument("--files", nargs="+", help="process only these files")
    run.set_defaults(func=cmd_run)

    retry = sub.add_parser("retry", help="retry failed files")
    retry.set_defaults(func=cmd_retry)

    watch = sub.add_parser("watch", help="run on a timer until interrupted")
    watch.set_defaults(func=cmd_watch)

    status = sub.add_parser("status", help="print the status report")
    status.set_defaults(func=cmd_status)

    report = sub.add_parser("report", help="write the status report to a file")
    report.add_argument("--output", "-o", default="import_status_report.txt")
    report.set_defaults(func=cmd_report)

    cleanup = sub.add_parser("cleanup", help="remove old copies and stale records")
    cleanup.add_argument("--days", type=int, default=None)
    cleanup.set_defaults(func=cmd_cleanup)

    analyze = sub.add_parser("analyze", help="describe source files without importing")
    analyze.add_argument("--files", nargs="+", help="analyze only these files")
    analyze.set_defaults(func=cmd_analyze)

    script = sub.add_parser("script", help="write CREATE TABLE scripts for source files")
    script.add_argument("--files", nargs="+", help="only these files")
    script.add_argument("--output", "-o", default=None, help="folder for the .sql files (default <source>/SQLScripts)")
    script.set_defaults(func=cmd_script)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config.logging)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
