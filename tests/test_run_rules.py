# tests/test_run_rules.py

import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import run_rules
from errors import AuthorizationError, PdfDecryptError
from rule_engine import RunStats


class TestMain(unittest.TestCase):
    """Exit codes of the command-line entry point."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.rules_file = os.path.join(self.tmp_dir, 'rules.json')
        with open(self.rules_file, 'w', encoding='utf-8') as f:
            json.dump({"label_actions": [{"label": "INBOX", "actions": [{"subject_filter": "Test",
                                                                          "mark_as_read": True}]}]}, f)
        self.environ = {
            'CREDENTIALS_JSON': os.path.join(self.tmp_dir, 'credentials.json'),
            'LABEL_ACTIONS_CONFIG': self.rules_file,
            'CLIENT_TOKEN_FILE': os.path.join(self.tmp_dir, 'token.json'),
        }

        # basicConfig is a no-op once the root logger has handlers.
        basic_config = patch('run_rules.logging.basicConfig')
        basic_config.start()
        self.addCleanup(basic_config.stop)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    @patch('run_rules.RuleEngine')
    @patch('run_rules.GmailClient')
    @patch('run_rules.CredentialProvider')
    def test_successful_run(self, mock_provider_cls, mock_client_cls, mock_engine_cls):
        mock_engine_cls.return_value.run.return_value = RunStats()

        self.assertEqual(run_rules.main([], environ=self.environ), 0)

        provider_args = mock_provider_cls.call_args.args
        self.assertEqual(provider_args[0], self.environ['CREDENTIALS_JSON'])
        self.assertEqual(provider_args[1].path, self.environ['CLIENT_TOKEN_FILE'])
        mock_client_cls.assert_called_once_with(mock_provider_cls.return_value.get_credentials.return_value,
                                                user_id='me')
        label_actions = mock_engine_cls.call_args.args[1]
        self.assertEqual(label_actions[0].label, 'INBOX')
        self.assertTrue(label_actions[0].actions[0].mark_as_read)

    def test_missing_env_variable(self):
        del self.environ['CREDENTIALS_JSON']
        with self.assertLogs('run_rules', level='ERROR'):
            self.assertEqual(run_rules.main([], environ=self.environ), 1)

    @patch('run_rules.CredentialProvider')
    def test_unreadable_rules_file(self, mock_provider_cls):
        self.environ['LABEL_ACTIONS_CONFIG'] = os.path.join(self.tmp_dir, 'missing.json')
        self.assertEqual(run_rules.main([], environ=self.environ), 1)
        mock_provider_cls.assert_not_called()

    @patch('run_rules.CredentialProvider')
    def test_authorization_failure(self, mock_provider_cls):
        mock_provider_cls.return_value.get_credentials.side_effect = AuthorizationError('timeout')
        with self.assertLogs('run_rules', level='ERROR') as cm:
            self.assertEqual(run_rules.main([], environ=self.environ), 1)
        self.assertIn('timeout', cm.output[-1])

    @patch('run_rules.RuleEngine')
    @patch('run_rules.GmailClient')
    @patch('run_rules.CredentialProvider')
    def test_fatal_error_during_run(self, mock_provider_cls, mock_client_cls, mock_engine_cls):
        mock_engine_cls.return_value.run.side_effect = PdfDecryptError('wrong password')
        self.assertEqual(run_rules.main([], environ=self.environ), 1)

    @patch('run_rules.run', return_value=RunStats())
    def test_verbose_flag(self, mock_run):
        self.assertEqual(run_rules.main(['--verbose'], environ=self.environ), 0)
        run_rules.logging.basicConfig.assert_called_once()
        self.assertEqual(run_rules.logging.basicConfig.call_args.kwargs['level'], run_rules.logging.DEBUG)

    def test_parse_args_defaults(self):
        self.assertFalse(run_rules.parse_args([]).verbose)
        self.assertTrue(run_rules.parse_args(['-v']).verbose)


if __name__ == '__main__':
    unittest.main()
