# tests/test_gmail_client.py

import os
import socket
import sys
import unittest
from unittest.mock import MagicMock, patch

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from gmail_client import GmailClient


def http_error(status=500):
    return HttpError(MagicMock(status=status, reason='Backend Error'), b'{"error": "backend"}')


class TestGmailClient(unittest.TestCase):
    """
    Unit tests for the GmailClient class.
    The Gmail API service is a MagicMock, so no network access happens.
    """

    @patch('gmail_client.build')
    def setUp(self, mock_build):
        self.mock_service = MagicMock()
        mock_build.return_value = self.mock_service
        self.mock_creds = MagicMock()
        self.messages = self.mock_service.users.return_value.messages.return_value

        self.client = GmailClient(self.mock_creds, user_id='me')
        self.mock_build = mock_build

    def test_service_built_from_credentials(self):
        self.assertIs(self.client.service, self.mock_service)
        self.mock_build.assert_called_once_with('gmail', 'v1', credentials=self.mock_creds,
                                                cache_discovery=False)

    def test_list_messages_first_page(self):
        self.messages.list.return_value.execute.return_value = {
            'messages': [{'id': 'msg1', 'threadId': 'thread1'}],
            'nextPageToken': 'A',
        }
        response = self.client.list_messages('label:INBOX subject:Test')

        self.assertEqual(response['nextPageToken'], 'A')
        self.messages.list.assert_called_once_with(userId='me', q='label:INBOX subject:Test')

    def test_list_messages_with_page_token(self):
        self.messages.list.return_value.execute.return_value = {}
        self.client.list_messages('label:INBOX', 'A')
        self.messages.list.assert_called_once_with(userId='me', q='label:INBOX', pageToken='A')

    def test_list_messages_error(self):
        self.messages.list.return_value.execute.side_effect = http_error()
        with self.assertLogs('gmail_client', level='ERROR'):
            self.assertIsNone(self.client.list_messages('label:INBOX'))

    def test_get_message(self):
        self.messages.get.return_value.execute.return_value = {'id': 'msg1', 'payload': {}}
        self.assertEqual(self.client.get_message('msg1')['id'], 'msg1')
        self.messages.get.assert_called_once_with(userId='me', id='msg1', format='full')

    def test_get_message_error(self):
        self.messages.get.return_value.execute.side_effect = http_error(404)
        self.assertIsNone(self.client.get_message('missing'))

    def test_get_attachment_data(self):
        attachments = self.messages.attachments.return_value
        attachments.get.return_value.execute.return_value = {'size': 5, 'data': 'aGVsbG8='}

        self.assertEqual(self.client.get_attachment_data('msg1', 'att1'), 'aGVsbG8=')
        attachments.get.assert_called_once_with(userId='me', messageId='msg1', id='att1')

    def test_get_attachment_data_error(self):
        self.messages.attachments.return_value.get.return_value.execute.side_effect = http_error()
        self.assertIsNone(self.client.get_attachment_data('msg1', 'att1'))

    def test_mark_as_read_success(self):
        self.assertTrue(self.client.mark_as_read('msg1'))
        self.messages.modify.assert_called_once_with(
            userId='me', id='msg1', body={'removeLabelIds': ['UNREAD']}
        )

    def test_mark_as_read_failure(self):
        self.messages.modify.return_value.execute.side_effect = http_error(403)
        self.assertFalse(self.client.mark_as_read('msg1'))

    def test_delete_message_success(self):
        self.assertTrue(self.client.delete_message('msg1'))
        self.messages.delete.assert_called_once_with(userId='me', id='msg1')

    def test_delete_message_failure(self):
        self.messages.delete.return_value.execute.side_effect = http_error(403)
        with self.assertLogs('gmail_client', level='ERROR') as cm:
            self.assertFalse(self.client.delete_message('msg1'))
        self.assertIn('msg1', cm.output[-1])

    def test_transport_errors_are_reported_as_failures(self):
        self.messages.list.return_value.execute.side_effect = socket.timeout('timed out')
        self.messages.get.return_value.execute.side_effect = ConnectionResetError('reset')
        self.messages.attachments.return_value.get.return_value.execute.side_effect = OSError('unreachable')
        self.messages.modify.return_value.execute.side_effect = RefreshError('token revoked')
        self.messages.delete.return_value.execute.side_effect = ConnectionResetError('reset')

        with self.assertLogs('gmail_client', level='ERROR') as cm:
            self.assertIsNone(self.client.list_messages('label:INBOX'))
            self.assertIsNone(self.client.get_message('msg1'))
            self.assertIsNone(self.client.get_attachment_data('msg1', 'att1'))
            self.assertFalse(self.client.mark_as_read('msg1'))
            self.assertFalse(self.client.delete_message('msg1'))
        self.assertEqual(len(cm.records), 5)
        self.assertIn('timed out', cm.output[0])
        self.assertIn('token revoked', cm.output[3])

    def test_prebuilt_service_skips_build(self):
        service = MagicMock()
        with patch('gmail_client.build') as mock_build:
            client = GmailClient(None, user_id='owner@example.com', service=service)
        mock_build.assert_not_called()
        client.mark_as_read('msg9')
        service.users.return_value.messages.return_value.modify.assert_called_once_with(
            userId='owner@example.com', id='msg9', body={'removeLabelIds': ['UNREAD']}
        )


if __name__ == '__main__':
    unittest.main()
