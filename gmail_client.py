# gmail_client.py

import logging

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import DEFAULT_USER_ID

logger = logging.getLogger(__name__)


class GmailClient:
    """
    Thin wrapper over the Gmail API calls the rule engine needs.

    Every method catches API and transport errors, logs them, and reports
    failure through its return value (None or False), leaving the decision of
    what to skip to the caller.
    """

    def __init__(self, credentials, user_id=DEFAULT_USER_ID, service=None):
        """
        Initializes the GmailClient and builds the service object.

        Args:
            credentials (google.oauth2.credentials.Credentials): Authorized credentials.
            user_id (str): Gmail userId of the mailbox, "me" for the authenticated user.
            service (optional): Prebuilt Gmail service resource; built from the credentials if omitted.
        """
        self.user_id = user_id
        self.service = service if service is not None else self._build_service(credentials)

    @staticmethod
    def _build_service(credentials):
        service = build('gmail', 'v1', credentials=credentials, cache_discovery=False)
        logger.info("Gmail API authentication successful.")
        return service

    def list_messages(self, query, page_token=''):
        """
        Fetches one page of message references matching a Gmail search query.

        Args:
            query (str): Gmail search query string (e.g., 'label:Invoices subject:Receipt').
            page_token (str): Token of the page to fetch; empty for the first page.

        Returns:
            dict: The list response, with 'messages' (list of {'id', 'threadId'})
                  and 'nextPageToken' when more pages exist. None on error.
        """
        kwargs = {'userId': self.user_id, 'q': query}
        if page_token:
            kwargs['pageToken'] = page_token
        try:
            return self.service.users().messages().list(**kwargs).execute()
        except HttpError as error:
            logger.error("An HTTP error occurred while listing messages for query '%s': %s", query, error)
            return None
        except Exception as e:
            logger.error("An unexpected error occurred while listing messages for query '%s': %s", query, e)
            return None

    def get_message(self, message_id):
        """
        Retrieves the full resource of a message (headers, payload and parts).

        Args:
            message_id (str): The ID of the message.

        Returns:
            dict: The message resource, or None if it cannot be retrieved.
        """
        try:
            return self.service.users().messages().get(
                userId=self.user_id, id=message_id, format='full').execute()
        except HttpError as error:
            logger.error("An HTTP error occurred while retrieving message %s: %s", message_id, error)
            return None
        except Exception as e:
            logger.error("An unexpected error occurred while retrieving message %s: %s", message_id, e)
            return None

    def get_attachment_data(self, message_id, attachment_id):
        """
        Retrieves the base64url encoded body of an attachment.

        Args:
            message_id (str): The ID of the message the attachment belongs to.
            attachment_id (str): The attachment ID from the message part body.

        Returns:
            str: The encoded attachment data, or None on error.
        """
        try:
            attachment = self.service.users().messages().attachments().get(
                userId=self.user_id, messageId=message_id, id=attachment_id).execute()
        except HttpError as error:
            logger.error("An HTTP error occurred while retrieving attachment of message %s: %s",
                         message_id, error)
            return None
        except Exception as e:
            logger.error("An unexpected error occurred while retrieving attachment of message %s: %s",
                         message_id, e)
            return None
        return attachment.get('data')

    def mark_as_read(self, message_id):
        """
        Marks an email message as read.

        Args:
            message_id (str): The ID of the email message to mark as read.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            self.service.users().messages().modify(
                userId=self.user_id,
                id=message_id,
                body={'removeLabelIds': ['UNREAD']}
            ).execute()
        except HttpError as error:
            logger.error("Failed to mark email %s as read: %s", message_id, error)
            return False
        except Exception as e:
            logger.error("An unexpected error occurred while marking email %s as read: %s", message_id, e)
            return False
        logger.info("Email %s marked as read.", message_id)
        return True

    def delete_message(self, message_id):
        """
        Permanently deletes an email message (it does not go to Trash).

        Args:
            message_id (str): The ID of the email message to delete.

        Returns:
            bool: True if successful, False otherwise.
        """
        logger.info("Deleting email with ID: %s", message_id)
        try:
            self.service.users().messages().delete(userId=self.user_id, id=message_id).execute()
        except HttpError as error:
            logger.error("Failed to delete email %s: %s", message_id, error)
            return False
        except Exception as e:
            logger.error("An unexpected error occurred while deleting email %s: %s", message_id, e)
            return False
        return True
