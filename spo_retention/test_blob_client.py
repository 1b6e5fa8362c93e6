#!/usr/bin/env python3
"""Unit tests for the Azure Blob Storage client."""

import tempfile
import unittest
from pathlib import Path
from datetime import datetime
from unittest.mock import Mock, patch

from spo_retention.blob_client import (
    API_VERSION, BlobClient, BlobTarget, format_metadata_date, sanitize_email,
)
from spo_retention.errors import RemoteCallError

CONTAINER = 'https://acct.blob.core.windows.net/preservation'


class TestHelpers(unittest.TestCase):

    def test_sanitize_email(self):
        self.assertEqual(sanitize_email('jane.doe@contoso.com'), 'jane.doe@contoso.com')
        self.assertEqual(sanitize_email("o'brien+x@contoso.co.uk"), 'obrienx@contoso.co.uk')
        self.assertEqual(sanitize_email('Jöhn Smith <js@contoso.com>'), 'JhnSmithjs@contoso.com')
        self.assertEqual(sanitize_email(None), '')

    def test_format_metadata_date(self):
        self.assertEqual(format_metadata_date(datetime(2024, 1, 2, 3, 4, 5)), '2024-01-02T03:04:05Z')
        self.assertEqual(format_metadata_date(None), '')

    def test_target_normalizes_url_and_token(self):
        target = BlobTarget(CONTAINER + '/', 'sv=2022&sig=abc')
        self.assertEqual(target.container_url, CONTAINER)
        self.assertEqual(target.sas_token, '?sv=2022&sig=abc')
        self.assertEqual(BlobTarget(CONTAINER, '?sig=x').sas_token, '?sig=x')

    def test_blob_url_quotes_name(self):
        client = BlobClient(BlobTarget(CONTAINER, 'sig=abc'))
        self.assertEqual(client.blob_url('Q1 report#2.docx'),
                         f'{CONTAINER}/Q1%20report%232.docx?sig=abc')


class TestBlobClient(unittest.TestCase):

    def setUp(self):
        self.client = BlobClient(BlobTarget(CONTAINER, 'sig=abc'))

    @patch('spo_retention.blob_client.requests.head')
    def test_exists(self, mock_head):
        mock_head.return_value = Mock(status_code=200)
        self.assertTrue(self.client.exists('a.txt'))
        self.assertEqual(mock_head.call_args[1]['headers']['x-ms-version'], API_VERSION)

        mock_head.return_value = Mock(status_code=404)
        self.assertFalse(self.client.exists('a.txt'))

    @patch('spo_retention.blob_client.requests.head')
    def test_exists_raises_on_auth_failure(self, mock_head):
        mock_head.return_value = Mock(status_code=403)
        with self.assertRaises(RemoteCallError) as ctx:
            self.client.exists('a.txt')
        self.assertEqual(ctx.exception.status, 403)

    @patch('spo_retention.blob_client.requests.delete')
    def test_delete_tolerates_missing_blob(self, mock_delete):
        mock_delete.return_value = Mock(status_code=404, text='')
        self.client.delete('a.txt')

        mock_delete.return_value = Mock(status_code=500, text='server error')
        with self.assertRaises(RemoteCallError):
            self.client.delete('a.txt')

    @patch('spo_retention.blob_client.requests.put')
    def test_upload_sends_block_blob_with_metadata(self, mock_put):
        mock_put.return_value = Mock(status_code=201, text='')
        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / 'a.txt'
            source.write_bytes(b'hello')

            size = self.client.upload('a.txt', source, {'author': 'jane@contoso.com', 'editor': ''})

        self.assertEqual(size, 5)
        url = mock_put.call_args[0][0]
        headers = mock_put.call_args[1]['headers']
        self.assertEqual(url, f'{CONTAINER}/a.txt?sig=abc')
        self.assertEqual(headers['x-ms-blob-type'], 'BlockBlob')
        self.assertEqual(headers['Content-Length'], '5')
        self.assertEqual(headers['x-ms-meta-author'], 'jane@contoso.com')
        self.assertNotIn('x-ms-meta-editor', headers)

    @patch('spo_retention.blob_client.requests.put')
    def test_upload_failure(self, mock_put):
        mock_put.return_value = Mock(status_code=403, text='AuthenticationFailed')
        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / 'a.txt'
            source.write_bytes(b'x')
            with self.assertRaises(RemoteCallError):
                self.client.upload('a.txt', source)


if __name__ == '__main__':
    unittest.main()
