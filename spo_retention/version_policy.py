"""
Version retention actions: auto-trim (tenant or per site), status check and
batch version-deletion jobs by age or by count.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from spo_retention.console import logger
from spo_retention.errors import RemoteCallError
from spo_retention.models import CleanupMode, SiteRecord, SiteVersionStatus
from spo_retention.spo_client import SharePointClient

# SharePoint refuses age-based deletion below 30 days
MIN_CLEANUP_DAYS = 30
MIN_VERSION_COUNT = 1


@dataclass
class ActionResult:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def report(self, action: str):
        logger.info(f"\n{action}: {len(self.succeeded)} succeeded, {len(self.failed)} failed")
        for url, message in self.failed.items():
            logger.info(f"  ✗ {url}: {message}")


def validate_threshold(mode: CleanupMode, raw: str) -> int:
    """Parse the operator's threshold; raises ValueError with a readable reason."""
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValueError(f"'{raw}' is not a whole number")

    if mode == CleanupMode.DAYS and value < MIN_CLEANUP_DAYS:
        raise ValueError(f"Age must be at least {MIN_CLEANUP_DAYS} days")
    if mode == CleanupMode.VERSIONS and value < MIN_VERSION_COUNT:
        raise ValueError(f"Version limit must be at least {MIN_VERSION_COUNT}")
    return value


def _for_each_site(sites: Sequence[SiteRecord], action: str,
                   call: Callable[[SiteRecord], None]) -> ActionResult:
    result = ActionResult()
    for idx, site in enumerate(sites, 1):
        try:
            call(site)
        except RemoteCallError as e:
            result.failed[site.url] = e.message
            logger.error(f"[{idx}/{len(sites)}] {site.title}: {e.message}")
            continue
        result.succeeded.append(site.url)
        logger.info(f"  ✓ [{idx}/{len(sites)}] {site.title}")
    result.report(action)
    return result


def enable_tenant_auto_trim(client: SharePointClient) -> bool:
    """Turn on automatic version trimming for the whole tenant."""
    try:
        client.set_tenant_auto_trim(True)
        enabled = client.get_tenant_auto_trim()
    except RemoteCallError as e:
        logger.error(f"Could not enable tenant auto-trim: {e.message}")
        return False

    if enabled:
        logger.success("Automatic version trimming is enabled for the tenant")
    else:
        logger.warning("Tenant accepted the change but still reports auto-trim as disabled")
    return enabled


def enable_sites_auto_trim(client: SharePointClient, sites: Sequence[SiteRecord]) -> ActionResult:
    logger.info(f"\n⚙️  Enabling automatic version trimming on {len(sites)} site(s)...")
    return _for_each_site(sites, "Enable auto-trim",
                          lambda site: client.set_site_auto_trim(site.url, True))


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_site_version_status(client: SharePointClient, site: SiteRecord) -> SiteVersionStatus:
    status = SiteVersionStatus(site_url=site.url, title=site.title)
    try:
        policy = client.get_site_version_policy(site.url)
    except RemoteCallError as e:
        status.status = 'Error'
        status.error = e.message
        return status

    trim = policy.get('EnableAutoExpirationVersionTrim')
    status.auto_trim_enabled = None if trim is None else bool(trim)
    status.major_version_limit = _as_int(policy.get('MajorVersionLimit'))
    status.expire_after_days = _as_int(policy.get('ExpireVersionsAfterDays'))
    status.status = 'OK'
    return status


def check_version_status(client: SharePointClient, sites: Sequence[SiteRecord]) -> List[SiteVersionStatus]:
    logger.info(f"\n🔍 Checking version settings on {len(sites)} site(s)...\n")
    logger.info(f"  {'Site':<45} {'Auto-trim':<10} {'Max versions':<13} {'Expire days':<12}")
    logger.info("  " + "-" * 80)

    rows = []
    for site in sites:
        row = get_site_version_status(client, site)
        rows.append(row)
        if row.status == 'Error':
            logger.error(f"{site.title}: {row.error}")
            continue
        trim = {True: 'On', False: 'Off', None: '?'}[row.auto_trim_enabled]
        limit = row.major_version_limit if row.major_version_limit is not None else '-'
        days = row.expire_after_days if row.expire_after_days is not None else '-'
        logger.info(f"  {site.title[:45]:<45} {trim:<10} {limit!s:<13} {days!s:<12}")
    return rows


def queue_cleanup(client: SharePointClient, sites: Sequence[SiteRecord],
                  mode: CleanupMode, threshold: int) -> ActionResult:
    if mode == CleanupMode.DAYS:
        description = f"versions older than {threshold} days"
    else:
        description = f"all but the newest {threshold} major versions"
    logger.info(f"\n🧹 Queuing deletion of {description} on {len(sites)} site(s)...")
    logger.info("   Jobs run asynchronously on the service; progress is not tracked here.")
    return _for_each_site(sites, "Queue version cleanup",
                          lambda site: client.start_version_cleanup(site.url, mode, threshold))


def enable_and_cleanup(client: SharePointClient, sites: Sequence[SiteRecord],
                       mode: CleanupMode, threshold: int) -> ActionResult:
    """Enable auto-trim, then queue cleanup, site by site."""
    logger.info(f"\n⚙️  Enabling auto-trim and queuing cleanup on {len(sites)} site(s)...")

    def both(site: SiteRecord):
        client.set_site_auto_trim(site.url, True)
        client.start_version_cleanup(site.url, mode, threshold)

    return _for_each_site(sites, "Enable auto-trim + cleanup", both)
