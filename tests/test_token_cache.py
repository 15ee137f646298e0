# tests/test_token_cache.py

import json
import os
import shutil
import stat
import sys
import tempfile
import unittest
from datetime import datetime

from google.oauth2.credentials import Credentials

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from errors import TokenCacheError
from token_cache import TokenCache


def make_credentials(token='test-access-token', refresh_token='test-refresh-token'):
    return Credentials(
        token=token,
        refresh_token=refresh_token,
        token_uri='https://oauth2.googleapis.com/token',
        client_id='client-id.apps.googleusercontent.com',
        client_secret='client-secret',
        scopes=['https://mail.google.com/'],
        expiry=datetime(2030, 1, 1, 12, 0, 0),
    )


class TestTokenCache(unittest.TestCase):
    """Round trip, overwrite and failure behaviour of the token cache."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.token_file = os.path.join(self.tmp_dir, 'token.json')
        self.cache = TokenCache(self.token_file)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def test_save_and_load_round_trip(self):
        creds = make_credentials()
        self.cache.save(creds)

        self.assertTrue(self.cache.exists())
        loaded = self.cache.load()
        self.assertEqual(loaded.token, creds.token)
        self.assertEqual(loaded.refresh_token, creds.refresh_token)
        self.assertEqual(loaded.expiry, creds.expiry)
        self.assertEqual(loaded.client_id, creds.client_id)
        self.assertEqual(loaded.client_secret, creds.client_secret)

    def test_record_carries_token_type(self):
        self.cache.save(make_credentials())
        with open(self.token_file, encoding='utf-8') as f:
            record = json.load(f)
        self.assertEqual(record['token_type'], 'Bearer')
        self.assertEqual(record['token'], 'test-access-token')

    @unittest.skipIf(os.name != 'posix', "file modes are POSIX only")
    def test_file_is_owner_only(self):
        self.cache.save(make_credentials())
        mode = stat.S_IMODE(os.stat(self.token_file).st_mode)
        self.assertEqual(mode, 0o600)

    def test_overwrite_existing(self):
        self.cache.save(make_credentials(token='old-token'))
        self.cache.save(make_credentials(token='new-token'))

        self.assertEqual(self.cache.load().token, 'new-token')
        # No temporary files are left behind.
        self.assertEqual(os.listdir(self.tmp_dir), ['token.json'])

    def test_load_not_found(self):
        self.assertFalse(self.cache.exists())
        with self.assertRaises(TokenCacheError):
            self.cache.load()

    def test_load_invalid_json(self):
        with open(self.token_file, 'w', encoding='utf-8') as f:
            f.write('invalid json')
        with self.assertRaises(TokenCacheError):
            self.cache.load()

    def test_load_incomplete_record(self):
        with open(self.token_file, 'w', encoding='utf-8') as f:
            json.dump({'token': 'only-an-access-token'}, f)
        with self.assertRaises(TokenCacheError):
            self.cache.load()

    def test_save_creates_parent_directory(self):
        cache = TokenCache(os.path.join(self.tmp_dir, 'nested', 'token.json'))
        cache.save(make_credentials())
        self.assertEqual(cache.load().token, 'test-access-token')


if __name__ == '__main__':
    unittest.main()
