"""CSV reports and plain-text run logs written under the output root."""

import csv
from pathlib import Path
from datetime import datetime
from typing import Iterable, List, Sequence

from spo_retention.console import logger, banner
from spo_retention.models import ReviewRow, RunSummary, SiteVersionStatus


def format_size(bytes_size: float) -> str:
    """Format bytes into human-readable size"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} PB"


def _timestamp() -> str:
    return datetime.now().strftime('%Y%m%d_%H%M%S')


def _write_csv(path: Path, header: Sequence[str], rows: Iterable[List[str]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', newline='', encoding='utf-8-sig') as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


def write_review_csv(rows: Sequence[ReviewRow], output_root: Path) -> Path:
    path = Path(output_root) / f"PreservationHoldReview_{_timestamp()}.csv"
    _write_csv(path, ReviewRow.CSV_HEADER, (row.as_csv_row() for row in rows))
    logger.info(f"\n📄 Review report: {path}")
    return path


def write_version_status_csv(rows: Sequence[SiteVersionStatus], output_root: Path) -> Path:
    path = Path(output_root) / f"VersionStatus_{_timestamp()}.csv"
    _write_csv(path, SiteVersionStatus.CSV_HEADER, (row.as_csv_row() for row in rows))
    logger.info(f"\n📄 Version status report: {path}")
    return path


def summary_lines(total: RunSummary, per_site: Sequence[RunSummary], uploading: bool) -> List[str]:
    lines = [
        f"Sites processed: {len(per_site)}",
        f"Sites without a Preservation Hold Library: {sum(1 for s in per_site if not s.store_found)}",
        "",
        "Download",
        f"  Items processed: {total.processed}",
        f"  Downloaded: {total.success}",
        f"  Skipped (folders): {total.skipped_container}",
        f"  Skipped (duplicates): {total.skipped_duplicate}",
        f"  Failed: {total.error}",
        f"  Data downloaded: {format_size(total.bytes_downloaded)}",
    ]
    if uploading:
        lines += [
            "",
            "Upload",
            f"  Items processed: {total.upload_processed}",
            f"  Uploaded: {total.upload_success}",
            f"  Skipped (existing blobs): {total.upload_skipped}",
            f"  Failed: {total.upload_error}",
            f"  Data uploaded: {format_size(total.bytes_uploaded)}",
        ]
    if total.failed_downloads:
        lines += ["", "Failed downloads:"] + [f"  - {name}" for name in total.failed_downloads]
    if total.failed_uploads:
        lines += ["", "Failed uploads:"] + [f"  - {name}" for name in total.failed_uploads]
    return lines


def print_run_summary(total: RunSummary, per_site: Sequence[RunSummary], uploading: bool):
    banner("📊 EXPORT SUMMARY", width=50)
    for line in summary_lines(total, per_site, uploading):
        logger.info(line)


def write_run_log(total: RunSummary, per_site: Sequence[RunSummary], uploading: bool,
                  output_root: Path, started_at: datetime) -> Path:
    path = Path(output_root) / f"PreservationHoldExport_{_timestamp()}.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    header = [
        "Preservation Hold Library export",
        f"Started: {started_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Finished: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
    ]
    site_lines = ["", "Per site:"] + [
        f"  {s.site_url}: "
        + ("not found" if not s.store_found else
           f"{s.processed} processed, {s.success} downloaded, {s.skipped} skipped, {s.error} failed")
        for s in per_site
    ]

    with open(path, 'w', encoding='utf-8') as f:
        f.write("\n".join(header + summary_lines(total, per_site, uploading) + site_lines) + "\n")

    logger.info(f"\n📄 Run log: {path}")
    return path
