# rule_engine.py

import json
import logging

from attachment_sink import ensure_save_directory, save_attachment
from config import DEFAULT_SUBJECT, UNKNOWN_DATE
from email_utils import (
    decode_base64url,
    format_filename,
    header_map,
    inline_body_text,
    iter_attachment_parts,
    parse_email_date,
)
from errors import ConfigError, PdfRenderError
from pdf_tools import decrypt_pdf, render_email_pdf

logger = logging.getLogger(__name__)


class Action:
    """
    One configured rule for a label: which messages to pick and what to do with them.

    Messages are picked by the label plus `subject_filter`. The side effects
    always run in the same order: download attachments (and decrypt PDFs),
    save the body as PDF, mark as read, delete.
    """

    # JSON key -> (attribute, type)
    FIELDS = {
        'subject_filter': ('subject_filter', str),
        'download_attachment': ('download', bool),
        'mark_as_read': ('mark_as_read', bool),
        'delete_email': ('delete', bool),
        'save_to': ('save_to', str),
        'pdf_password': ('pdf_password', str),
        'filename_pattern': ('filename_pattern', str),
        'save_as_pdf': ('save_as_pdf', bool),
    }

    def __init__(self, subject_filter='', download=False, mark_as_read=False, delete=False,
                 save_to='', pdf_password='', filename_pattern='', save_as_pdf=False):
        """
        Args:
            subject_filter (str): Subject search term combined with the label.
            download (bool): Save attachments to `save_to`.
            mark_as_read (bool): Remove the UNREAD label.
            delete (bool): Permanently delete the message.
            save_to (str): Directory receiving attachments and exported PDFs.
            pdf_password (str): Password used to decrypt downloaded PDFs, if any.
            filename_pattern (str): Attachment filename pattern with {original} and {date}.
            save_as_pdf (bool): Render the inline body as a PDF in `save_to`.
        """
        self.subject_filter = subject_filter
        self.download = download
        self.mark_as_read = mark_as_read
        self.delete = delete
        self.save_to = save_to
        self.pdf_password = pdf_password
        self.filename_pattern = filename_pattern
        self.save_as_pdf = save_as_pdf

    @classmethod
    def from_dict(cls, data):
        """
        Creates an Action from its JSON object. Missing booleans are false,
        missing strings are empty.

        Raises:
            ConfigError: If the object or one of its values has the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Action must be a JSON object, got: {data!r}")

        kwargs = {}
        for key, (attribute, expected) in cls.FIELDS.items():
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, expected):
                raise ConfigError(f"Action field '{key}' must be {expected.__name__}, got: {value!r}")
            kwargs[attribute] = value
        return cls(**kwargs)

    def __repr__(self):
        return (f"Action(subject_filter={self.subject_filter!r}, download={self.download}, "
                f"mark_as_read={self.mark_as_read}, delete={self.delete}, save_to={self.save_to!r}, "
                f"filename_pattern={self.filename_pattern!r}, save_as_pdf={self.save_as_pdf})")


class LabelAction:
    """A Gmail label and the actions to run, in order, on messages carrying it."""

    def __init__(self, label, actions):
        self.label = label
        self.actions = tuple(actions)

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigError(f"Label action must be a JSON object, got: {data!r}")
        label = data.get('label')
        if not isinstance(label, str) or not label:
            raise ConfigError(f"Label action is missing a label: {data!r}")
        actions = data.get('actions') or []
        if not isinstance(actions, list):
            raise ConfigError(f"Actions of label '{label}' must be a list")
        return cls(label, [Action.from_dict(action) for action in actions])

    def __repr__(self):
        return f"LabelAction(label={self.label!r}, actions={list(self.actions)!r})"


def load_label_actions(rules_file):
    """
    Loads the label actions from the JSON rule file.

    Args:
        rules_file (str): Path to the file.

    Returns:
        tuple: LabelAction objects in file order.
    Raises:
        ConfigError: If the file is missing, empty, not valid JSON, or not shaped as
                     {"label_actions": [...]}.
    """
    try:
        with open(rules_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Rules file '{rules_file}' not found.")
    except OSError as e:
        raise ConfigError(f"Unable to read rules file '{rules_file}': {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error decoding JSON from rules file '{rules_file}': {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Rules file '{rules_file}' must contain a JSON object")
    entries = data.get('label_actions') or []
    if not isinstance(entries, list):
        raise ConfigError(f"'label_actions' in '{rules_file}' must be a list")

    label_actions = tuple(LabelAction.from_dict(entry) for entry in entries)
    logger.info("Loaded %d label action(s) from '%s'.", len(label_actions), rules_file)
    return label_actions


def build_query(label, subject_filter):
    """
    Builds the Gmail search query selecting an action's messages.

    Multi-word subject filters are grouped, e.g. 'label:Bills subject:(Monthly statement)'.
    """
    query = f"label:{label}"
    if subject_filter:
        if any(ch.isspace() for ch in subject_filter):
            query += f" subject:({subject_filter})"
        else:
            query += f" subject:{subject_filter}"
    return query


class RunStats:
    """Counters reported at the end of a run."""

    def __init__(self):
        self.messages_processed = 0
        self.attachments_saved = 0
        self.pdfs_saved = 0
        self.marked_read = 0
        self.deleted = 0
        self.errors = 0

    def __repr__(self):
        return (f"RunStats(messages_processed={self.messages_processed}, "
                f"attachments_saved={self.attachments_saved}, pdfs_saved={self.pdfs_saved}, "
                f"marked_read={self.marked_read}, deleted={self.deleted}, errors={self.errors})")


class RuleEngine:
    """
    Applies label actions to the mailbox.

    Work is strictly sequential: label, action, page, message, pipeline step.
    Listing, message, attachment, rendering and mutation failures are logged
    and skipped at their own level. Configuration problems (SaveDirectoryError)
    and decrypt failures (PdfDecryptError) propagate and end the run.
    """

    def __init__(self, gmail_client, label_actions):
        """
        Args:
            gmail_client (GmailClient): Client used for every mailbox call.
            label_actions (iterable): LabelAction objects to apply, in order.
        """
        self.gmail_client = gmail_client
        self.label_actions = tuple(label_actions)
        self.stats = RunStats()

    def run(self):
        """
        Applies every label action once.

        Returns:
            RunStats: What the run did.
        """
        if not self.label_actions:
            logger.warning("No label actions configured. Nothing to do.")
        for label_action in self.label_actions:
            self.process_label(label_action)
        return self.stats

    def process_label(self, label_action):
        logger.info("Processing label: %s", label_action.label)
        for action in label_action.actions:
            self.process_action(label_action.label, action)

    def process_action(self, label, action):
        """Pages through every message matching the action and runs its pipeline on each."""
        query = build_query(label, action.subject_filter)
        page_token = ''
        while True:
            response = self.gmail_client.list_messages(query, page_token)
            if response is None:
                logger.error("Unable to list messages for label %s (query '%s'); skipping action",
                             label, query)
                self.stats.errors += 1
                break

            messages = response.get('messages', [])
            logger.info("Processing %d message(s)...", len(messages))
            for message_ref in messages:
                self.process_message(message_ref['id'], action)

            page_token = response.get('nextPageToken') or ''
            if not page_token:
                break

    def process_message(self, message_id, action):
        logger.debug("Processing msg %s...", message_id)
        message = self.gmail_client.get_message(message_id)
        if message is None:
            logger.error("Unable to retrieve message %s; skipping", message_id)
            self.stats.errors += 1
            return

        payload = message.get('payload') or {}
        headers = header_map(payload)
        date_header = headers.get('Date')
        email_date = parse_email_date(date_header) if date_header is not None else UNKNOWN_DATE
        subject = headers.get('Subject', DEFAULT_SUBJECT)

        if action.download:
            self._download_attachments(message_id, payload, action, email_date)
        if action.save_as_pdf:
            self._save_as_pdf(message_id, payload, action, email_date, subject)
        if action.mark_as_read:
            if self.gmail_client.mark_as_read(message_id):
                self.stats.marked_read += 1
            else:
                self.stats.errors += 1
        if action.delete:
            if self.gmail_client.delete_message(message_id):
                self.stats.deleted += 1
            else:
                self.stats.errors += 1

        self.stats.messages_processed += 1

    def _download_attachments(self, message_id, payload, action, email_date):
        parts = list(iter_attachment_parts(payload))
        if not parts:
            return
        ensure_save_directory(action.save_to)

        for part in parts:
            original = part['filename']
            data = self.gmail_client.get_attachment_data(message_id, part['body']['attachmentId'])
            if data is None:
                logger.error("Unable to retrieve attachment %s of message %s", original, message_id)
                self.stats.errors += 1
                continue

            try:
                content = decode_base64url(data)
            except ValueError as e:
                logger.error("Failed to decode attachment %s of message %s: %s", original, message_id, e)
                self.stats.errors += 1
                continue

            filename = original
            if action.filename_pattern:
                filename = format_filename(action.filename_pattern, original, email_date)

            try:
                file_path = save_attachment(action.save_to, filename, content)
            except (OSError, ValueError) as e:
                logger.error("Failed to save attachment %s of message %s to %s: %s",
                             filename, message_id, action.save_to, e)
                self.stats.errors += 1
                continue
            self.stats.attachments_saved += 1

            # A failed decrypt ends the run.
            if action.pdf_password and file_path.lower().endswith('.pdf'):
                decrypt_pdf(file_path, action.pdf_password)

    def _save_as_pdf(self, message_id, payload, action, email_date, subject):
        body = inline_body_text(payload)
        if body is None:
            logger.debug("Message %s has no inline body; no PDF saved", message_id)
            return
        ensure_save_directory(action.save_to)

        filename = f"email_{email_date}_{message_id}.pdf"
        try:
            document = render_email_pdf(message_id, email_date, subject, body)
            file_path = save_attachment(action.save_to, filename, document)
        except (PdfRenderError, OSError) as e:
            logger.error("Failed to save email %s as PDF in %s: %s", message_id, action.save_to, e)
            self.stats.errors += 1
            return
        self.stats.pdfs_saved += 1
        logger.info("Saved email as PDF: %s", file_path)
