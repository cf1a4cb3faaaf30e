# ==============================================
# Reports
# ==============================================
#
# Plain-text reports for operators:
#
# - status_report(records, stats)     whole status store: totals,
#                                     status distribution, the ten
#                                     most recent files, failed files
# - processing_report(result, stats)  one pass: counters, and every
#                                     file with its failed tables
# - write_processing_report(...)      writes the pass report to
#                                     ProcessingReport_<stamp>.txt
#
# ==============================================

import os
from datetime import datetime
from typing import Dict, Iterable, Optional

from tabular_ingest.models import FileRecord, FileStatus, ProcessingResult
from tabular_ingest.persistence.status_store import StoreStatistics

RULE = "=" * 60
RECENT_FILES = 10


def format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _statistics_lines(stats: StoreStatistics) -> list[str]:
    lines = ["Statistics:"]
    lines.append(f"   Files tracked:     {stats.total_files}")
    for status in FileStatus:
        lines.append(f"   {status.value + ':':<19}{stats.count(status)}")
    lines.append(f"   Tables imported:   {stats.total_tables}")
    lines.append(f"   Rows imported:     {stats.total_rows:,}")
    lines.append(f"   Last processed:    {_fmt_time(stats.last_processed)}")
    return lines


def status_report(records: Dict[str, FileRecord] | Iterable[FileRecord], stats: StoreStatistics, now: Optional[datetime] = None) -> str:
    files = list(records.values()) if isinstance(records, dict) else list(records)
    now = now or datetime.now()

    lines = ["=== Import Status Report ===", f"Generated: {_fmt_time(now)}", RULE, ""]
    lines += _statistics_lines(stats)
    lines.append("")

    lines.append("Status distribution:")
    for status, count in sorted(stats.by_status.items(), key=lambda item: -item[1]):
        share = count / stats.total_files * 100 if stats.total_files else 0.0
        lines.append(f"   {status.value}: {count} ({share:.1f}%)")
    lines.append("")

    recent = sorted(
        (f for f in files if f.process_time is not None),
        key=lambda f: f.process_time,
        reverse=True,
    )[:RECENT_FILES]
    lines.append(f"Recently processed (last {RECENT_FILES}):")
    for record in recent:
        lines.append(f"   {record.file_name}")
        lines.append(f"     Status:    {record.status.value}")
        lines.append(f"     Processed: {_fmt_time(record.process_time)}")
        lines.append(f"     Size:      {format_size(record.file_size)}")
        lines.append(f"     Tables:    {record.table_count}")
        lines.append(f"     Rows:      {record.imported_rows:,}")
        if record.error_message:
            lines.append(f"     Error:     {record.error_message}")
    lines.append("")

    failed = [f for f in files if f.status is FileStatus.FAILED]
    if failed:
        lines.append("Failed files:")
        for record in sorted(failed, key=lambda f: f.file_name):
            lines.append(f"   {record.file_name} (retries: {record.retry_count})")
            lines.append(f"     {record.error_message or 'no message'}")
        lines.append("")

    return "\n".join(lines)


def processing_report(result: ProcessingResult, stats: Optional[StoreStatistics] = None) -> str:
    lines = ["=== Processing Report ===", RULE]
    lines.append(f"Started:   {_fmt_time(result.start_time)}")
    lines.append(f"Finished:  {_fmt_time(result.end_time)}")
    lines.append(f"Duration:  {result.duration.total_seconds():.1f}s")
    lines.append(f"Result:    {result.message}")
    if result.cancelled:
        lines.append("Cancelled: yes")
    lines.append("")
    lines.append(f"Total files:     {result.total}")
    lines.append(f"Succeeded:       {result.success}")
    lines.append(f"Partial success: {result.partial_success}")
    lines.append(f"Failed:          {result.failed}")
    lines.append(f"Skipped:         {result.skipped}")
    lines.append("")

    if result.file_results:
        lines.append("Files:")
        for file_result in result.file_results:
            lines.append(
                f"   {file_result.file_name}: {file_result.status.value} "
                f"({file_result.success_tables}/{file_result.total_tables} tables, "
                f"{file_result.rows_imported:,} rows, {file_result.duration.total_seconds():.1f}s)"
            )
            for table in file_result.tables:
                if not table.succeeded:
                    lines.append(f"     ✗ {table.table_name}: {table.error_message}")
            if file_result.status is FileStatus.SKIPPED and file_result.message:
                lines.append(f"     {file_result.message}")
        lines.append("")

    if stats is not None:
        lines += _statistics_lines(stats)
        lines.append("")

    return "\n".join(lines)


def write_processing_report(
    result: ProcessingResult,
    stats: Optional[StoreStatistics],
    folder: str,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, f"ProcessingReport_{now.strftime('%Y%m%d_%H%M%S')}.txt")
    with open(path, "w", encoding="utf-8") as f:
        f.write(processing_report(result, stats))
    return path
