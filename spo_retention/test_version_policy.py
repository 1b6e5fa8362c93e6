#!/usr/bin/env python3
"""Unit tests for the version retention actions."""

import unittest
from unittest.mock import Mock

from spo_retention.errors import ConnectionFailure, RemoteCallError
from spo_retention.models import CleanupMode, SiteRecord
from spo_retention.version_policy import (
    check_version_status, enable_and_cleanup, enable_sites_auto_trim,
    enable_tenant_auto_trim, get_site_version_status, queue_cleanup, validate_threshold,
)

SITES = [
    SiteRecord.create('https://contoso.sharepoint.com/sites/a', 'A'),
    SiteRecord.create('https://contoso.sharepoint.com/sites/b', 'B'),
    SiteRecord.create('https://contoso.sharepoint.com/sites/c', 'C'),
]


class TestValidateThreshold(unittest.TestCase):

    def test_days(self):
        self.assertEqual(validate_threshold(CleanupMode.DAYS, ' 30 '), 30)
        self.assertEqual(validate_threshold(CleanupMode.DAYS, '365'), 365)
        with self.assertRaises(ValueError):
            validate_threshold(CleanupMode.DAYS, '29')

    def test_versions(self):
        self.assertEqual(validate_threshold(CleanupMode.VERSIONS, '1'), 1)
        with self.assertRaises(ValueError):
            validate_threshold(CleanupMode.VERSIONS, '0')

    def test_not_a_number(self):
        for raw in ('', 'ten', '3.5'):
            with self.assertRaises(ValueError):
                validate_threshold(CleanupMode.VERSIONS, raw)


class TestSiteActions(unittest.TestCase):

    def test_failure_on_one_site_does_not_stop_others(self):
        client = Mock()

        def set_trim(url, enabled):
            if url.endswith('/b'):
                raise RemoteCallError('HTTP 403 Access denied', status=403)

        client.set_site_auto_trim.side_effect = set_trim
        result = enable_sites_auto_trim(client, SITES)

        self.assertEqual(result.succeeded, [SITES[0].url, SITES[2].url])
        self.assertEqual(result.failed, {SITES[1].url: 'HTTP 403 Access denied'})
        self.assertEqual(client.set_site_auto_trim.call_count, 3)

    def test_lost_connection_aborts(self):
        client = Mock()
        client.start_version_cleanup.side_effect = ConnectionFailure('token expired')

        with self.assertRaises(ConnectionFailure):
            queue_cleanup(client, SITES, CleanupMode.DAYS, 60)
        self.assertEqual(client.start_version_cleanup.call_count, 1)

    def test_queue_cleanup_passes_mode_and_threshold(self):
        client = Mock()
        result = queue_cleanup(client, SITES[:1], CleanupMode.VERSIONS, 10)

        client.start_version_cleanup.assert_called_once_with(SITES[0].url, CleanupMode.VERSIONS, 10)
        self.assertEqual(result.succeeded, [SITES[0].url])

    def test_enable_and_cleanup_skips_cleanup_when_enable_fails(self):
        client = Mock()
        client.set_site_auto_trim.side_effect = RemoteCallError('HTTP 500', status=500)

        result = enable_and_cleanup(client, SITES[:1], CleanupMode.DAYS, 30)

        client.start_version_cleanup.assert_not_called()
        self.assertIn(SITES[0].url, result.failed)


class TestTenantAutoTrim(unittest.TestCase):

    def test_enabled(self):
        client = Mock()
        client.get_tenant_auto_trim.return_value = True
        self.assertTrue(enable_tenant_auto_trim(client))
        client.set_tenant_auto_trim.assert_called_once_with(True)

    def test_rejected(self):
        client = Mock()
        client.set_tenant_auto_trim.side_effect = RemoteCallError('HTTP 401', status=401)
        self.assertFalse(enable_tenant_auto_trim(client))
        client.get_tenant_auto_trim.assert_not_called()


class TestVersionStatus(unittest.TestCase):

    def test_parses_policy(self):
        client = Mock()
        client.get_site_version_policy.return_value = {
            'EnableAutoExpirationVersionTrim': False,
            'MajorVersionLimit': '500',
            'ExpireVersionsAfterDays': 0,
        }
        status = get_site_version_status(client, SITES[0])

        self.assertEqual(status.status, 'OK')
        self.assertFalse(status.auto_trim_enabled)
        self.assertEqual(status.major_version_limit, 500)
        self.assertEqual(status.expire_after_days, 0)
        self.assertEqual(status.as_csv_row()[2:5], ['False', '500', '0'])

    def test_errors_are_rows_not_exceptions(self):
        client = Mock()
        client.get_site_version_policy.side_effect = [
            {'EnableAutoExpirationVersionTrim': True},
            RemoteCallError('HTTP 404', status=404),
        ]
        rows = check_version_status(client, SITES[:2])

        self.assertEqual([r.status for r in rows], ['OK', 'Error'])
        self.assertIsNone(rows[0].major_version_limit)
        self.assertEqual(rows[0].as_csv_row()[3], '')


if __name__ == '__main__':
    unittest.main()
