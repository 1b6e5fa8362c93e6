"""
Fixed-shape records passed between the selector, the clients and the
export pipeline.
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import urlparse


def normalize(text: str) -> str:
    """Lower-case and drop everything that is not a letter or digit."""
    return ''.join(ch for ch in (text or '').lower() if ch.isalnum())


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a SharePoint ISO-8601 timestamp ('2024-01-31T08:15:00Z')."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None


# ============================================================================
# Enumerations
# ============================================================================

class DuplicatePolicy(Enum):
    SKIP = 'Skip'
    OVERWRITE = 'Overwrite'
    RENAME = 'Rename'


class CleanupMode(Enum):
    DAYS = 'days'
    VERSIONS = 'versions'


class ItemOutcome(Enum):
    """Terminal state of one preservation store item."""
    SKIPPED_CONTAINER = 'SkippedContainer'
    SKIPPED_DUPLICATE = 'SkippedDuplicate'
    DOWNLOAD_FAILED = 'DownloadFailed'
    DOWNLOADED = 'Downloaded'
    UPLOAD_SKIPPED = 'UploadSkipped'
    UPLOAD_SUCCEEDED = 'UploadSucceeded'
    UPLOAD_FAILED = 'UploadFailed'


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class SiteRecord:
    """One tenant site collection, with match keys computed once."""
    url: str
    title: str
    normalized_title: str
    normalized_url: str
    relative_path: str
    path_segments: Tuple[str, ...]

    @classmethod
    def create(cls, url: str, title: str) -> 'SiteRecord':
        url = url.rstrip('/')
        path = urlparse(url).path
        segments = tuple(normalize(s) for s in path.split('/') if s)
        return cls(
            url=url,
            title=title or url,
            normalized_title=normalize(title),
            normalized_url=normalize(url),
            relative_path=normalize(path),
            path_segments=segments,
        )

    @property
    def last_segment(self) -> str:
        return self.path_segments[-1] if self.path_segments else ''

    @property
    def server_relative_path(self) -> str:
        return urlparse(self.url).path or '/'


@dataclass
class ExportItem:
    """One entry in a site's Preservation Hold Library."""
    leaf_name: str
    server_relative_url: str
    size_bytes: int = 0
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    author_email: str = ''
    editor_email: str = ''
    is_folder: bool = False

    @classmethod
    def from_list_item(cls, item: dict) -> 'ExportItem':
        """Build from a SharePoint REST list item (odata=nometadata)."""
        file_info = item.get('File') or {}
        try:
            size = int(file_info.get('Length') or item.get('File_x0020_Size') or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            leaf_name=item.get('FileLeafRef') or '',
            server_relative_url=item.get('FileRef') or '',
            size_bytes=size,
            created_at=parse_timestamp(item.get('Created')),
            modified_at=parse_timestamp(item.get('Modified')),
            author_email=(item.get('Author') or {}).get('EMail') or '',
            editor_email=(item.get('Editor') or {}).get('EMail') or '',
            is_folder=str(item.get('FSObjType', '0')) == '1',
        )


@dataclass
class RunSummary:
    """Counters for one export run over one site.

    Download leg invariant:
    processed == success + skipped_container + skipped_duplicate + error
    """
    site_url: str = ''
    store_found: bool = True
    processed: int = 0
    success: int = 0
    skipped_container: int = 0
    skipped_duplicate: int = 0
    error: int = 0
    bytes_downloaded: int = 0
    upload_processed: int = 0
    upload_success: int = 0
    upload_skipped: int = 0
    upload_error: int = 0
    bytes_uploaded: int = 0
    failed_downloads: List[str] = field(default_factory=list)
    failed_uploads: List[str] = field(default_factory=list)
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.skipped_container + self.skipped_duplicate

    def record(self, outcome: ItemOutcome, name: str = ''):
        """Fold one item's terminal state into the counters."""
        self.outcomes.append(outcome)
        self.processed += 1
        if outcome == ItemOutcome.SKIPPED_CONTAINER:
            self.skipped_container += 1
        elif outcome == ItemOutcome.SKIPPED_DUPLICATE:
            self.skipped_duplicate += 1
        elif outcome == ItemOutcome.DOWNLOAD_FAILED:
            self.error += 1
            self.failed_downloads.append(name)
        else:
            self.success += 1
            if outcome == ItemOutcome.UPLOAD_SKIPPED:
                self.upload_processed += 1
                self.upload_skipped += 1
            elif outcome == ItemOutcome.UPLOAD_SUCCEEDED:
                self.upload_processed += 1
                self.upload_success += 1
            elif outcome == ItemOutcome.UPLOAD_FAILED:
                self.upload_processed += 1
                self.upload_error += 1
                self.failed_uploads.append(name)

    def merge(self, other: 'RunSummary'):
        """Add another site's counters into this running total."""
        for name in ('processed', 'success', 'skipped_container', 'skipped_duplicate',
                     'error', 'bytes_downloaded', 'upload_processed', 'upload_success',
                     'upload_skipped', 'upload_error', 'bytes_uploaded'):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.failed_downloads.extend(other.failed_downloads)
        self.failed_uploads.extend(other.failed_uploads)
        self.outcomes.extend(other.outcomes)


@dataclass
class ReviewRow:
    """One row of the status-only review CSV."""
    site_url: str
    title: str
    library_exists: bool
    item_count: int = 0
    size_mb: float = 0.0
    timestamp: str = ''
    status: str = ''
    error: str = ''

    CSV_HEADER = ('SiteUrl', 'Title', 'LibraryExists', 'ItemCount', 'SizeMB',
                  'Timestamp', 'Status', 'ErrorMessage')

    def as_csv_row(self) -> List[str]:
        return [self.site_url, self.title, str(self.library_exists), str(self.item_count),
                f"{self.size_mb:.2f}", self.timestamp, self.status, self.error]


@dataclass
class SiteVersionStatus:
    """Snapshot of one site's version settings."""
    site_url: str
    title: str
    auto_trim_enabled: Optional[bool] = None
    major_version_limit: Optional[int] = None
    expire_after_days: Optional[int] = None
    status: str = ''
    error: str = ''

    CSV_HEADER = ('SiteUrl', 'Title', 'AutoTrimEnabled', 'MajorVersionLimit',
                  'ExpireVersionsAfterDays', 'Status', 'ErrorMessage')

    def as_csv_row(self) -> List[str]:
        def cell(value):
            return '' if value is None else str(value)
        return [self.site_url, self.title, cell(self.auto_trim_enabled),
                cell(self.major_version_limit), cell(self.expire_after_days),
                self.status, self.error]
