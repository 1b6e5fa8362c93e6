"""
Preservation Hold Library export.

Per site: list the library, download every file into a per-site folder under
the output root applying the duplicate policy, restore the original file name
and timestamps, and optionally copy each file to an Azure Blob container with
its authorship metadata. Failures are counted per item and never stop the run.
"""

import os
import re
import logging
from pathlib import Path
from datetime import datetime
from typing import Callable, Optional, Tuple

from spo_retention.blob_client import BlobClient, BlobTarget, format_metadata_date, sanitize_email
from spo_retention.console import logger as console
from spo_retention.errors import ItemFailure, RemoteCallError, StoreNotFound
from spo_retention.models import (
    DuplicatePolicy, ExportItem, ItemOutcome, ReviewRow, RunSummary, SiteRecord,
)
from spo_retention.spo_client import SharePointClient

logger = logging.getLogger(__name__)

# Preservation copies are stored as <name>_<32 hex guid><timestamp>[.ext]
PRESERVED_NAME = re.compile(r'^(?P<base>.+)_(?P<guid>[0-9A-Fa-f]{32})(?P<stamp>[^.]+)(?P<ext>\.[^.]+)?$')


# ============================================================================
# File name helpers
# ============================================================================

def clean_file_name(name: str) -> str:
    """Strip the GUID + timestamp suffix added by the preservation copy."""
    match = PRESERVED_NAME.match(name)
    if not match:
        return name
    return f"{match.group('base')}{match.group('ext') or ''}"


def sanitize_filename(filename: str, max_length: int = 200) -> str:
    """Make a name safe for Windows and POSIX filesystems."""
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', filename or '')
    filename = filename.strip('. ')
    if len(filename) > max_length:
        stem, ext = os.path.splitext(filename)
        filename = stem[:max_length - len(ext)].rstrip('. ') + ext
    return filename or 'untitled'


def next_free_name(name: str, is_taken: Callable[[str], bool]) -> str:
    """First of name_1.ext, name_2.ext, ... for which is_taken() is False."""
    stem, ext = os.path.splitext(name)
    n = 1
    while is_taken(f"{stem}_{n}{ext}"):
        n += 1
    return f"{stem}_{n}{ext}"


def resolve_local_path(directory: Path, name: str, policy: DuplicatePolicy) -> Optional[Path]:
    """Where to write ``name`` under ``directory``; None means skip it."""
    target = directory / name
    if not target.exists():
        return target

    if policy == DuplicatePolicy.SKIP:
        return None
    if policy == DuplicatePolicy.OVERWRITE:
        target.unlink()
        return target
    if policy == DuplicatePolicy.RENAME:
        return directory / next_free_name(name, lambda candidate: (directory / candidate).exists())
    raise ValueError(f"Unknown duplicate policy: {policy}")


def site_folder_name(site: SiteRecord) -> str:
    return sanitize_filename(site.server_relative_path.strip('/').replace('/', '_') or 'root')


# ============================================================================
# Timestamps
# ============================================================================

def _set_windows_creation_time(path: Path, created: datetime):
    import ctypes
    from ctypes import wintypes

    kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)
    kernel32.CreateFileW.restype = wintypes.HANDLE
    FILE_WRITE_ATTRIBUTES = 0x0100
    OPEN_EXISTING = 3
    FILE_FLAG_BACKUP_SEMANTICS = 0x02000000

    # FILETIME counts 100ns intervals since 1601-01-01
    ticks = int((created.timestamp() + 11644473600) * 10_000_000)
    filetime = wintypes.FILETIME(ticks & 0xFFFFFFFF, ticks >> 32)

    handle = kernel32.CreateFileW(str(path), FILE_WRITE_ATTRIBUTES, 0, None,
                                  OPEN_EXISTING, FILE_FLAG_BACKUP_SEMANTICS, None)
    if handle == wintypes.HANDLE(-1).value:
        raise ctypes.WinError(ctypes.get_last_error())
    try:
        if not kernel32.SetFileTime(handle, ctypes.byref(filetime), None, None):
            raise ctypes.WinError(ctypes.get_last_error())
    finally:
        kernel32.CloseHandle(handle)


def apply_file_times(path: Path, created: Optional[datetime], modified: Optional[datetime]) -> bool:
    """Best-effort: stamp the file with the item's times. Returns False on failure."""
    try:
        if modified:
            stamp = modified.timestamp()
            os.utime(path, (stamp, stamp))
        if created and os.name == 'nt':
            _set_windows_creation_time(path, created)
        return True
    except (OSError, ValueError, OverflowError) as e:
        console.warning(f"Could not set timestamps on {path.name}: {e}")
        return False


# ============================================================================
# Pipeline
# ============================================================================

class ExportPipeline:
    """Runs the review or download/upload pass over one site at a time."""

    def __init__(self, client: SharePointClient, output_root: Path,
                 policy: DuplicatePolicy = DuplicatePolicy.RENAME,
                 upload_target: Optional[BlobTarget] = None,
                 blob_client: Optional[BlobClient] = None):
        self.client = client
        self.output_root = Path(output_root)
        self.policy = policy
        self.blob = blob_client or (BlobClient(upload_target) if upload_target else None)

    # ------------------------------------------------------------------
    # Review (status only)
    # ------------------------------------------------------------------

    def review_site(self, site: SiteRecord) -> ReviewRow:
        """Count files and total size without downloading anything."""
        row = ReviewRow(site_url=site.url, title=site.title, library_exists=False,
                        timestamp=datetime.now().strftime('%Y-%m-%d %H:%M:%S'))
        try:
            items = self.client.list_preservation_items(site.url)
        except StoreNotFound:
            row.status = 'Not Found'
            console.info(f"  ➖ {site.title}: no Preservation Hold Library")
            return row
        except RemoteCallError as e:
            row.status = 'Error'
            row.error = e.message
            console.error(f"{site.title}: {e.message}")
            return row

        files = [item for item in items if not item.is_folder]
        row.library_exists = True
        row.item_count = len(files)
        row.size_mb = sum(item.size_bytes for item in files) / (1024 * 1024)
        row.status = 'OK'
        console.info(f"  ✓ {site.title}: {row.item_count} item(s), {row.size_mb:.2f} MB")
        return row

    # ------------------------------------------------------------------
    # Download (+ optional upload)
    # ------------------------------------------------------------------

    def export_site(self, site: SiteRecord) -> RunSummary:
        summary = RunSummary(site_url=site.url)

        try:
            items = self.client.list_preservation_items(site.url)
        except StoreNotFound:
            summary.store_found = False
            console.warning(f"{site.title}: no Preservation Hold Library - nothing to export")
            return summary

        site_dir = self.output_root / site_folder_name(site)
        site_dir.mkdir(parents=True, exist_ok=True)
        console.info(f"\n📥 {site.title}: {len(items)} item(s) → {site_dir}")

        total = len(items)
        for idx, item in enumerate(items, 1):
            outcome = self.process_item(site, item, site_dir, summary)
            failed = outcome in (ItemOutcome.DOWNLOAD_FAILED, ItemOutcome.UPLOAD_FAILED)
            name = item.leaf_name if outcome == ItemOutcome.DOWNLOAD_FAILED else self._display_name(item)
            summary.record(outcome, name)
            percent = idx * 100 // total
            marker = '✗' if failed else '✓'
            console.info(f"  [{percent:3d}%] {marker} {item.leaf_name[:60]} ({outcome.value})")

        return summary

    @staticmethod
    def _display_name(item: ExportItem) -> str:
        return clean_file_name(item.leaf_name)

    def process_item(self, site: SiteRecord, item: ExportItem, site_dir: Path,
                     summary: RunSummary) -> ItemOutcome:
        """Take one item to its terminal state, updating byte totals."""
        if item.is_folder:
            return ItemOutcome.SKIPPED_CONTAINER

        try:
            target, written = self._download(site, item, site_dir)
        except ItemFailure as e:
            console.error(f"Download failed for {item.leaf_name}: {e.message}")
            return ItemOutcome.DOWNLOAD_FAILED
        if target is None:
            return ItemOutcome.SKIPPED_DUPLICATE

        summary.bytes_downloaded += written
        apply_file_times(target, item.created_at, item.modified_at)

        if not self.blob:
            return ItemOutcome.DOWNLOADED
        return self.upload_item(target, item, summary)

    def _download(self, site: SiteRecord, item: ExportItem,
                  site_dir: Path) -> Tuple[Optional[Path], int]:
        """Fetch one file into site_dir; (None, 0) when the policy skips it."""
        target = None
        try:
            name = sanitize_filename(clean_file_name(item.leaf_name))
            target = resolve_local_path(site_dir, name, self.policy)
            if target is None:
                return None, 0
            return target, self.client.download_file(site.url, item.server_relative_url, target)
        except RemoteCallError as e:
            self._discard_partial(target)
            raise ItemFailure(e.message, status=e.status) from e
        except OSError as e:
            self._discard_partial(target)
            raise ItemFailure(str(e)) from e

    @staticmethod
    def _discard_partial(target: Optional[Path]):
        if target is None or not target.exists():
            return
        try:
            target.unlink()
        except OSError as e:
            logger.debug(f"Could not remove partial file {target}: {e}")

    def upload_item(self, local_path: Path, item: ExportItem, summary: RunSummary) -> ItemOutcome:
        """Copy a downloaded file to the blob container; collisions follow the policy."""
        try:
            sent = self._upload(local_path, item)
        except ItemFailure as e:
            console.error(f"Upload failed for {local_path.name}: {e.message}")
            return ItemOutcome.UPLOAD_FAILED
        if sent is None:
            return ItemOutcome.UPLOAD_SKIPPED

        summary.bytes_uploaded += sent
        return ItemOutcome.UPLOAD_SUCCEEDED

    def _upload(self, local_path: Path, item: ExportItem) -> Optional[int]:
        """Bytes sent, or None when an existing blob is kept."""
        blob_name = local_path.name
        try:
            if self.blob.exists(blob_name):
                if self.policy == DuplicatePolicy.SKIP:
                    logger.debug(f"Blob {blob_name} exists, skipping upload")
                    return None
                if self.policy == DuplicatePolicy.OVERWRITE:
                    self.blob.delete(blob_name)
                elif self.policy == DuplicatePolicy.RENAME:
                    blob_name = next_free_name(blob_name, self.blob.exists)

            metadata = {
                'createddate': format_metadata_date(item.created_at),
                'modifieddate': format_metadata_date(item.modified_at),
                'author': sanitize_email(item.author_email),
                'editor': sanitize_email(item.editor_email),
            }
            return self.blob.upload(blob_name, local_path, metadata)
        except RemoteCallError as e:
            raise ItemFailure(e.message, status=e.status) from e
        except OSError as e:
            raise ItemFailure(str(e)) from e
