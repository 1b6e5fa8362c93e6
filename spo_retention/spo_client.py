"""
SharePoint Online client: tenant administration, site version policy and
Preservation Hold Library access over the REST API, plus site enumeration
through Microsoft Graph.
"""

import time
import random
import logging
import requests
from pathlib import Path
from urllib.parse import quote
from typing import Dict, List, Any

from spo_retention.auth import Authenticator, GRAPH_RESOURCE
from spo_retention.console import logger as console
from spo_retention.errors import RemoteCallError, StoreNotFound
from spo_retention.models import CleanupMode, ExportItem, SiteRecord

# ============================================================================
# Constants
# ============================================================================
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
PRESERVATION_LIBRARY = "Preservation Hold Library"
PAGE_SIZE = 500
DEFAULT_MAX_RETRIES = 1
DEFAULT_TIMEOUT = 60
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

TENANT_ENDPOINT = "/_api/SPO.Tenant"
SITE_VERSION_POLICY = "/_api/site/VersionPolicyForNewLibrariesTemplate"
SITE_DELETE_BY_AGE = "/_api/site/StartDeleteFileVersions"
SITE_DELETE_BY_COUNT = "/_api/site/StartDeleteFileVersionsByCountLimits"

ITEM_FIELDS = (
    "Id,FileLeafRef,FileRef,FSObjType,Created,Modified,"
    "Author/EMail,Editor/EMail,File/Length"
)

logger = logging.getLogger(__name__)


def _odata_quote(value: str) -> str:
    """Quote a string literal for an OData function call."""
    return quote(value.replace("'", "''"))


class SharePointClient:
    """Thin wrapper over the SharePoint admin, site and Graph endpoints."""

    def __init__(self, auth: Authenticator, max_retries: int = DEFAULT_MAX_RETRIES,
                 include_personal_sites: bool = False):
        self.auth = auth
        self.max_retries = max(1, int(max_retries))
        self.include_personal_sites = include_personal_sites
        self.request_count = 0

    @property
    def admin_url(self) -> str:
        return self.auth.admin_resource

    def _resource_for(self, url: str) -> str:
        if url.startswith(GRAPH_BASE):
            return GRAPH_RESOURCE
        if url.startswith(self.auth.admin_resource):
            return self.auth.admin_resource
        return self.auth.sharepoint_resource

    # ========================================================================
    # Request plumbing
    # ========================================================================

    def make_request(self, url: str, method: str = 'GET', context: str = "",
                     **kwargs) -> requests.Response:
        """Send one request; raise RemoteCallError on a non-success status.

        Throttled (429) and 5xx replies are re-sent only while attempts remain
        under ``max_retries``, which defaults to a single attempt.
        """
        headers = self.auth.headers(self._resource_for(url))
        headers.update(kwargs.pop('headers', {}) or {})
        kwargs.setdefault('timeout', DEFAULT_TIMEOUT)

        for attempt in range(1, self.max_retries + 1):
            self.request_count += 1
            logger.debug(f"Request {self.request_count}: {method} {url[:120]} [{context}]")
            try:
                response = requests.request(method, url, headers=headers, **kwargs)
            except requests.RequestException as e:
                console.api_error(method, url, 0, context, str(e))
                raise RemoteCallError(f"{context}: {e}") from e

            if response.status_code < 400:
                return response

            if attempt < self.max_retries and (response.status_code == 429 or response.status_code >= 500):
                retry_after = response.headers.get('Retry-After')
                wait_time = int(retry_after) if retry_after and retry_after.isdigit() else \
                    min(60, (2 ** attempt) + random.uniform(0, 1))
                console.warning(f"HTTP {response.status_code}, retry {attempt}/{self.max_retries} "
                                f"in {wait_time:.0f}s [{context}]")
                time.sleep(wait_time)
                continue

            break

        detail = self._error_detail(response)
        console.api_error(method, url, response.status_code, context, detail)
        raise RemoteCallError(f"{context}: HTTP {response.status_code} {detail}".strip(),
                              status=response.status_code)

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or '')[:200]
        if not isinstance(body, dict):
            return str(body)[:200]
        error = body.get('error') or body.get('odata.error') or {}
        if isinstance(error, dict):
            message = error.get('message')
            if isinstance(message, dict):
                return message.get('value', '')
            return message or error.get('code', '')
        return str(error)[:200]

    def get_json(self, url: str, context: str = "") -> Dict[str, Any]:
        """GET a JSON object; a body that is not a JSON object raises RemoteCallError."""
        response = self.make_request(url, context=context)
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteCallError(f"{context}: JSON parse error: {e}", status=response.status_code) from e
        if not isinstance(data, dict):
            raise RemoteCallError(f"{context}: expected a JSON object, got {type(data).__name__}",
                                  status=response.status_code)
        return data

    def get_all_pages(self, initial_url: str, context: str = "") -> List[Dict[str, Any]]:
        """Follow nextLink pagination (Graph and SharePoint REST) and return all items."""
        all_items = []
        url = initial_url
        page_num = 0

        while url:
            page_num += 1
            data = self.get_json(url, context=f"{context} [page {page_num}]")

            items = data.get('value', [])
            all_items.extend(items)

            url = data.get('@odata.nextLink') or data.get('odata.nextLink')
            if url:
                logger.debug(f"Following nextLink: page {page_num} -> {page_num + 1} ({len(items)} items) [{context}]")

        return all_items

    # ========================================================================
    # Site enumeration
    # ========================================================================

    def list_sites(self) -> List[SiteRecord]:
        """All site collections in the tenant, in enumeration order."""
        raw_sites = self.get_all_pages(
            f"{GRAPH_BASE}/sites/getAllSites?$select=webUrl,displayName,name&$top=999",
            context='list sites',
        )
        sites = []
        seen = set()
        for raw in raw_sites:
            url = (raw.get('webUrl') or '').rstrip('/')
            if not url or url in seen:
                continue
            if not self.include_personal_sites and '-my.sharepoint.com' in url:
                continue
            seen.add(url)
            sites.append(SiteRecord.create(url, raw.get('displayName') or raw.get('name') or url))
        logger.debug(f"Enumerated {len(sites)} sites ({len(raw_sites)} returned)")
        return sites

    # ========================================================================
    # Version policy administration
    # ========================================================================

    def get_tenant_auto_trim(self) -> bool:
        data = self.get_json(
            f"{self.admin_url}{TENANT_ENDPOINT}?$select=EnableAutoExpirationVersionTrim",
            context='read tenant version settings',
        )
        return bool(data.get('EnableAutoExpirationVersionTrim'))

    def set_tenant_auto_trim(self, enabled: bool = True):
        self.make_request(
            f"{self.admin_url}{TENANT_ENDPOINT}",
            method='POST',
            context='set tenant auto-trim',
            headers={'X-HTTP-Method': 'MERGE', 'Content-Type': 'application/json'},
            json={'EnableAutoExpirationVersionTrim': enabled},
        )

    def get_site_version_policy(self, site_url: str) -> Dict[str, Any]:
        return self.get_json(
            f"{site_url}{SITE_VERSION_POLICY}",
            context=f'read version policy for {site_url}',
        )

    def set_site_auto_trim(self, site_url: str, enabled: bool = True):
        self.make_request(
            f"{site_url}{SITE_VERSION_POLICY}/SetAutoExpiration",
            method='POST',
            context=f'set auto-trim for {site_url}',
            headers={'Content-Type': 'application/json'},
            json={'enableAutoExpirationVersionTrim': enabled},
        )

    def start_version_cleanup(self, site_url: str, mode: CleanupMode, threshold: int):
        """Queue an asynchronous batch version-deletion job for the site."""
        if mode == CleanupMode.DAYS:
            endpoint, body = SITE_DELETE_BY_AGE, {'DeleteOlderThanDays': threshold}
        elif mode == CleanupMode.VERSIONS:
            endpoint, body = SITE_DELETE_BY_COUNT, {
                'MajorVersionLimit': threshold,
                'MajorWithMinorVersionsLimit': 0,
            }
        else:
            raise ValueError(f"Unknown cleanup mode: {mode}")

        self.make_request(
            f"{site_url}{endpoint}",
            method='POST',
            context=f'queue version cleanup ({mode.value}={threshold}) for {site_url}',
            headers={'Content-Type': 'application/json'},
            json=body,
        )

    # ========================================================================
    # Preservation Hold Library
    # ========================================================================

    def list_preservation_items(self, site_url: str) -> List[ExportItem]:
        """Items in the site's Preservation Hold Library; raises StoreNotFound."""
        url = (
            f"{site_url}/_api/web/lists/GetByTitle('{_odata_quote(PRESERVATION_LIBRARY)}')/items"
            f"?$select={ITEM_FIELDS}&$expand=Author,Editor,File&$top={PAGE_SIZE}"
        )
        try:
            raw_items = self.get_all_pages(url, context=f'list preservation items for {site_url}')
        except RemoteCallError as e:
            if e.status == 404:
                raise StoreNotFound(f"{PRESERVATION_LIBRARY} not found on {site_url}", status=404) from e
            raise
        return [ExportItem.from_list_item(raw) for raw in raw_items]

    def download_file(self, site_url: str, server_relative_url: str, destination: Path) -> int:
        """Stream a file to ``destination``; returns bytes written."""
        url = (
            f"{site_url}/_api/web/GetFileByServerRelativePath"
            f"(decodedurl='{_odata_quote(server_relative_url)}')/$value"
        )
        response = self.make_request(url, context=f'download {server_relative_url}', stream=True)

        written = 0
        try:
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        finally:
            response.close()
        return written
