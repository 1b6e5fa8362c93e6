#!/usr/bin/env python3
"""
SharePoint Version Retention & Preservation Hold Tool - interactive menu.

Features:
- Automatic version trimming, tenant-wide or per site
- Version settings status check with CSV report
- Batch version cleanup by age or by version count
- Preservation Hold Library review (CSV) and download
- Optional copy of downloaded files to Azure Blob Storage with metadata
- Session transcript in <output>/logs
"""

import sys
import getpass
import argparse
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List, Optional

from spo_retention import VERSION
from spo_retention.auth import Authenticator
from spo_retention.blob_client import BlobTarget
from spo_retention.console import logger, ask, ask_yes_no, banner, start_session_log, InputFn
from spo_retention.errors import ConnectionFailure, RemoteCallError
from spo_retention.export_pipeline import ExportPipeline
from spo_retention.models import CleanupMode, DuplicatePolicy, RunSummary, SiteRecord
from spo_retention.reporting import (
    print_run_summary, write_review_csv, write_run_log, write_version_status_csv,
)
from spo_retention.settings import SAS_ENV_VAR, load_settings, secret_from_env
from spo_retention.site_selector import select_sites
from spo_retention.spo_client import SharePointClient
from spo_retention import version_policy

EXPORT_FOLDER = "PreservationHold"

MENU = """
1. Enable automatic version trimming (tenant-wide)
2. Enable automatic version trimming (selected sites)
3. Version settings status check
4. Clean up versions by age (days)
5. Clean up versions by count
6. Enable trimming + clean up versions (selected sites)
7. Review Preservation Hold Library
8. Download Preservation Hold Library
9. Exit"""


class RetentionTool:
    """Menu actions over one authenticated tenant connection."""

    def __init__(self, settings: Dict[str, Any], output_root: Path, input_fn: InputFn = None):
        self.settings = settings
        self.output_root = Path(output_root)
        self.input_fn = input_fn
        self.auth = Authenticator(
            tenant_name=settings['tenant_name'],
            client_id=settings.get('client_id'),
            tenant_id=settings.get('tenant_id'),
        )
        self.client = SharePointClient(
            self.auth,
            max_retries=settings.get('max_retries') or 1,
            include_personal_sites=bool(settings.get('include_personal_sites')),
        )
        self._sites: Optional[List[SiteRecord]] = None

        self.actions = {
            '1': self.enable_tenant,
            '2': self.enable_sites,
            '3': self.status_check,
            '4': lambda: self.cleanup(CleanupMode.DAYS),
            '5': lambda: self.cleanup(CleanupMode.VERSIONS),
            '6': self.enable_and_cleanup,
            '7': self.review_preservation,
            '8': self.download_preservation,
        }

    def _ask(self, prompt: str) -> str:
        return ask(prompt, self.input_fn)

    # ========================================================================
    # Menu
    # ========================================================================

    def run(self):
        while True:
            banner(f"SharePoint Version Retention Tool v{VERSION} - {self.auth.tenant_name}")
            logger.info(MENU)
            choice = self._ask("\nEnter choice (1-9): ")

            if choice == '9':
                logger.info("Goodbye.")
                return
            action = self.actions.get(choice)
            if action is None:
                logger.warning("Invalid choice")
                continue

            try:
                if not self.ensure_connected():
                    continue
                action()
            except ConnectionFailure as e:
                logger.error(f"Connection failed: {e.message}")
                logger.info("The action was aborted. Sign in again and re-run it.")
                self.auth = Authenticator(self.auth.tenant_name, self.auth.client_id, self.auth.tenant_id)
                self.client.auth = self.auth

    def ensure_connected(self) -> bool:
        if self.auth.is_authenticated:
            return True
        if not self.auth.login(self.input_fn):
            logger.error("Login failed")
            return False
        return True

    def choose_sites(self) -> Optional[List[SiteRecord]]:
        if self._sites is None:
            logger.info("\n🔍 Fetching site collections...")
            try:
                self._sites = self.client.list_sites()
            except RemoteCallError as e:
                logger.error(f"Could not list sites: {e.message}")
                return None
        return select_sites(self._sites, self.input_fn)

    def ask_cleanup_threshold(self, mode: CleanupMode) -> Optional[int]:
        prompt = ("Delete versions older than how many days? (blank to cancel): "
                  if mode == CleanupMode.DAYS else
                  "Keep how many major versions? (blank to cancel): ")
        while True:
            raw = self._ask(prompt)
            if not raw:
                return None
            try:
                return version_policy.validate_threshold(mode, raw)
            except ValueError as e:
                logger.warning(str(e))

    def ask_cleanup_mode(self) -> Optional[CleanupMode]:
        choice = self._ask("\nClean up by:\n1. Age (days)\n2. Version count\nEnter choice: ")
        return {'1': CleanupMode.DAYS, '2': CleanupMode.VERSIONS}.get(choice)

    def ask_duplicate_policy(self) -> DuplicatePolicy:
        policies = {'1': DuplicatePolicy.SKIP, '2': DuplicatePolicy.OVERWRITE, '3': DuplicatePolicy.RENAME}
        while True:
            choice = self._ask(
                "\nWhen a file already exists:\n1. Skip\n2. Overwrite\n3. Rename (name_1.ext)\n"
                "Enter choice [3]: "
            ) or '3'
            if choice in policies:
                return policies[choice]
            logger.warning("Please enter 1, 2 or 3")

    def ask_upload_target(self) -> Optional[BlobTarget]:
        if not ask_yes_no("\nAlso copy files to Azure Blob Storage? (y/n): ", self.input_fn):
            return None

        container_url = self.settings.get('blob_container_url')
        if container_url:
            logger.info(f"✓ Blob container from settings: {container_url}")
        else:
            container_url = self._ask("Container URL (https://<account>.blob.core.windows.net/<container>): ")
        if not container_url:
            logger.warning("No container URL - upload disabled")
            return None

        sas_token = secret_from_env(SAS_ENV_VAR)
        if sas_token:
            logger.info(f"✓ SAS token loaded from {SAS_ENV_VAR} env var")
        else:
            sas_token = getpass.getpass("SAS token (hidden, never stored): ")
        if not sas_token:
            logger.warning("No SAS token - upload disabled")
            return None
        return BlobTarget(container_url, sas_token)

    def _save_report(self, write, *args):
        try:
            write(*args)
        except OSError as e:
            logger.error(f"Could not write report under {self.output_root}: {e}")

    # ========================================================================
    # Actions
    # ========================================================================

    def enable_tenant(self):
        if ask_yes_no("Enable automatic version trimming for ALL sites in the tenant? (y/n): ", self.input_fn):
            version_policy.enable_tenant_auto_trim(self.client)

    def enable_sites(self):
        sites = self.choose_sites()
        if sites:
            version_policy.enable_sites_auto_trim(self.client, sites)

    def status_check(self):
        sites = self.choose_sites()
        if sites:
            rows = version_policy.check_version_status(self.client, sites)
            self._save_report(write_version_status_csv, rows, self.output_root)

    def cleanup(self, mode: CleanupMode):
        sites = self.choose_sites()
        if not sites:
            return
        threshold = self.ask_cleanup_threshold(mode)
        if threshold is not None:
            version_policy.queue_cleanup(self.client, sites, mode, threshold)

    def enable_and_cleanup(self):
        sites = self.choose_sites()
        if not sites:
            return
        mode = self.ask_cleanup_mode()
        if mode is None:
            logger.warning("Invalid choice")
            return
        threshold = self.ask_cleanup_threshold(mode)
        if threshold is not None:
            version_policy.enable_and_cleanup(self.client, sites, mode, threshold)

    def review_preservation(self):
        sites = self.choose_sites()
        if not sites:
            return
        pipeline = ExportPipeline(self.client, self.output_root / EXPORT_FOLDER)
        logger.info(f"\n🔍 Reviewing Preservation Hold Library on {len(sites)} site(s)...")
        rows = [pipeline.review_site(site) for site in sites]
        self._save_report(write_review_csv, rows, self.output_root)

    def download_preservation(self):
        sites = self.choose_sites()
        if not sites:
            return
        policy = self.ask_duplicate_policy()
        target = self.ask_upload_target()
        pipeline = ExportPipeline(self.client, self.output_root / EXPORT_FOLDER, policy, target)

        started_at = datetime.now()
        logger.info(f"\n🚀 Downloading with duplicate policy '{policy.value}'"
                    + (" and blob upload" if target else ""))

        per_site: List[RunSummary] = []
        total = RunSummary()
        for site in sites:
            try:
                summary = pipeline.export_site(site)
            except RemoteCallError as e:
                logger.error(f"{site.title}: {e.message}")
                continue
            except OSError as e:
                logger.error(f"{site.title}: cannot write to {pipeline.output_root}: {e}")
                continue
            per_site.append(summary)
            total.merge(summary)

        print_run_summary(total, per_site, uploading=target is not None)
        self._save_report(write_run_log, total, per_site, target is not None, self.output_root, started_at)


# ============================================================================
# Main Entry Point
# ============================================================================
def main(argv: List[str] = None):
    parser = argparse.ArgumentParser(description=f'SharePoint Version Retention Tool v{VERSION}')
    parser.add_argument('--settings', type=str,
                        help='Settings file path (default: search for settings.json)')
    parser.add_argument('--output', type=str,
                        help='Output directory for reports, downloads and logs')
    parser.add_argument('--tenant', type=str,
                        help="Tenant name, e.g. 'contoso' for contoso.sharepoint.com")
    args = parser.parse_args(argv)

    settings = load_settings(Path(args.settings) if args.settings else None)

    print("=" * 70)
    print(f"SharePoint Version Retention Tool v{VERSION}")
    print("Version trimming • Batch cleanup • Preservation Hold export")
    print("=" * 70)

    tenant = args.tenant or settings.get('tenant_name')
    if not tenant:
        tenant = ask("\nTenant name (the 'contoso' in contoso.sharepoint.com): ")
    if not tenant:
        logger.error("A tenant name is required")
        sys.exit(1)
    settings['tenant_name'] = tenant.strip().lower()

    output_path = args.output or settings.get('output_root')
    if not output_path:
        output_path = ask("\nOutput folder for reports and downloads [./SPO-Retention]: ") or 'SPO-Retention'
    output_root = Path(output_path)
    output_root.mkdir(parents=True, exist_ok=True)

    log_path = start_session_log(output_root)
    logger.info(f"📝 Session log: {log_path}")

    try:
        RetentionTool(settings, output_root).run()
    except KeyboardInterrupt:
        logger.info("\n\n⏸️  Interrupted by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
