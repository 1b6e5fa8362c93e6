"""
Azure Blob Storage client (REST + SAS token).

    PUT    <container>/<blob><sas>   x-ms-blob-type: BlockBlob, x-ms-meta-*
    HEAD   <container>/<blob><sas>   404 means the blob does not exist
    DELETE <container>/<blob><sas>
"""

import re
import logging
import requests
from pathlib import Path
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
from urllib.parse import quote

from spo_retention.console import logger as console
from spo_retention.errors import RemoteCallError

API_VERSION = "2019-12-12"
UPLOAD_TIMEOUT = 300
PROBE_TIMEOUT = 30

logger = logging.getLogger(__name__)


def sanitize_email(value: str) -> str:
    """Keep letters, digits, '@', '.' and '-' (metadata headers are ASCII only)."""
    return re.sub(r'[^A-Za-z0-9@.\-]', '', value or '')


def format_metadata_date(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%dT%H:%M:%SZ') if value else ''


@dataclass
class BlobTarget:
    """Destination container and the SAS token that grants write access."""
    container_url: str
    sas_token: str

    def __post_init__(self):
        self.container_url = self.container_url.rstrip('/')
        token = (self.sas_token or '').strip()
        if token and not token.startswith('?'):
            token = f"?{token}"
        self.sas_token = token


class BlobClient:
    def __init__(self, target: BlobTarget):
        self.target = target

    def blob_url(self, blob_name: str) -> str:
        return f"{self.target.container_url}/{quote(blob_name)}{self.target.sas_token}"

    def exists(self, blob_name: str) -> bool:
        url = self.blob_url(blob_name)
        try:
            response = requests.head(url, headers={'x-ms-version': API_VERSION}, timeout=PROBE_TIMEOUT)
        except requests.RequestException as e:
            raise RemoteCallError(f"Probe for blob {blob_name} failed: {e}") from e

        if response.status_code == 404:
            return False
        if response.status_code < 300:
            return True
        console.api_error('HEAD', url, response.status_code, f'probe {blob_name}')
        raise RemoteCallError(f"Probe for blob {blob_name} failed: HTTP {response.status_code}",
                              status=response.status_code)

    def delete(self, blob_name: str):
        url = self.blob_url(blob_name)
        try:
            response = requests.delete(url, headers={'x-ms-version': API_VERSION}, timeout=PROBE_TIMEOUT)
        except requests.RequestException as e:
            raise RemoteCallError(f"Delete of blob {blob_name} failed: {e}") from e

        # Already gone is as good as deleted
        if response.status_code >= 300 and response.status_code != 404:
            console.api_error('DELETE', url, response.status_code, f'delete {blob_name}', response.text[:200])
            raise RemoteCallError(f"Delete of blob {blob_name} failed: HTTP {response.status_code}",
                                  status=response.status_code)

    def upload(self, blob_name: str, source: Path, metadata: Dict[str, str] = None) -> int:
        """Upload ``source`` as a block blob; returns bytes sent."""
        url = self.blob_url(blob_name)
        size = source.stat().st_size
        headers = {
            'x-ms-blob-type': 'BlockBlob',
            'x-ms-version': API_VERSION,
            'Content-Length': str(size),
        }
        for key, value in (metadata or {}).items():
            if value:
                headers[f"x-ms-meta-{key}"] = value

        try:
            with open(source, 'rb') as f:
                response = requests.put(url, data=f, headers=headers, timeout=UPLOAD_TIMEOUT)
        except requests.RequestException as e:
            raise RemoteCallError(f"Upload of {blob_name} failed: {e}") from e

        if response.status_code not in (200, 201):
            console.api_error('PUT', url, response.status_code, f'upload {blob_name}', response.text[:200])
            raise RemoteCallError(f"Upload of {blob_name} failed: HTTP {response.status_code}",
                                  status=response.status_code)

        logger.debug(f"Uploaded {blob_name} ({size} bytes)")
        return size
