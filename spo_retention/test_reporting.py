#!/usr/bin/env python3
"""Unit tests for summaries and reports."""

import tempfile
import unittest
from pathlib import Path
from datetime import datetime

from spo_retention.models import ItemOutcome, RunSummary
from spo_retention.reporting import format_size, summary_lines, write_run_log


class TestRunSummary(unittest.TestCase):

    def test_record_keeps_counters_consistent(self):
        summary = RunSummary()
        for outcome in ItemOutcome:
            summary.record(outcome, outcome.value)

        self.assertEqual(summary.processed, 7)
        self.assertEqual(summary.success, 4)
        self.assertEqual(summary.skipped, 2)
        self.assertEqual(summary.error, 1)
        self.assertEqual(summary.upload_processed, 3)
        self.assertEqual(summary.failed_downloads, ['DownloadFailed'])
        self.assertEqual(summary.failed_uploads, ['UploadFailed'])

    def test_merge(self):
        a, b = RunSummary(), RunSummary()
        a.record(ItemOutcome.DOWNLOADED)
        a.bytes_downloaded = 10
        b.record(ItemOutcome.DOWNLOAD_FAILED, 'x.txt')
        b.bytes_downloaded = 5

        total = RunSummary()
        total.merge(a)
        total.merge(b)

        self.assertEqual(total.processed, 2)
        self.assertEqual(total.bytes_downloaded, 15)
        self.assertEqual(total.failed_downloads, ['x.txt'])


class TestReporting(unittest.TestCase):

    def test_format_size(self):
        self.assertEqual(format_size(512), '512.00 B')
        self.assertEqual(format_size(1536), '1.50 KB')
        self.assertEqual(format_size(5 * 1024 ** 3), '5.00 GB')

    def test_upload_section_only_when_uploading(self):
        total = RunSummary()
        self.assertNotIn('Upload', summary_lines(total, [], uploading=False))
        self.assertIn('Upload', summary_lines(total, [], uploading=True))

    def test_run_log(self):
        site = RunSummary(site_url='https://contoso.sharepoint.com/sites/a')
        site.record(ItemOutcome.DOWNLOADED)
        missing = RunSummary(site_url='https://contoso.sharepoint.com/sites/b', store_found=False)

        with tempfile.TemporaryDirectory() as tmp:
            path = write_run_log(site, [site, missing], False, Path(tmp), datetime(2024, 1, 1))
            text = path.read_text(encoding='utf-8')

        self.assertIn('Sites without a Preservation Hold Library: 1', text)
        self.assertIn('sites/b: not found', text)
        self.assertIn('1 processed, 1 downloaded', text)


if __name__ == '__main__':
    unittest.main()
