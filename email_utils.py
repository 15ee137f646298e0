# email_utils.py

import base64
import logging
import re
from datetime import datetime

from bs4 import BeautifulSoup

from config import CANONICAL_DATE_FORMAT, UNKNOWN_DATE

logger = logging.getLogger(__name__)

# Accepted Date header layouts, tried in order. %d takes one- or two-digit days,
# so "Mon, 2 Jan 2006 ..." is covered by the same layouts as "Mon, 02 Jan 2006 ...".
DATE_LAYOUTS = (
    '%a, %d %b %Y %H:%M:%S %z',  # Mon, 02 Jan 2006 15:04:05 -0700
    '%a, %d %b %Y %H:%M:%S %Z',  # Mon, 02 Jan 2006 15:04:05 MST
    '%d %b %Y %H:%M:%S %z',      # 2 Jan 2006 15:04:05 -0700
    '%d %b %Y %H:%M:%S %Z',      # 2 Jan 2006 15:04:05 MST
)

# Trailing RFC 5322 comment, e.g. "+0000 (UTC)".
_TRAILING_COMMENT = re.compile(r'\s*\([^()]*\)\s*$')
_ZONE_NAME = re.compile(r'^[A-Za-z]{1,5}$')


def format_filename(pattern, original_filename, email_date):
    """
    Fills the placeholders of a filename pattern.

    Every `{original}` becomes the attachment's own filename and every
    `{date}` the canonical message date. Anything else is kept verbatim.

    Args:
        pattern (str): Pattern such as "{date}_{original}".
        original_filename (str): Filename of the attachment.
        email_date (str): Canonical date of the message.

    Returns:
        str: The formatted filename.
    """
    formatted = pattern.replace('{original}', original_filename)
    return formatted.replace('{date}', email_date)


def _parse_layout(value, layout):
    # strptime's %Z only knows UTC, GMT and the local zone names, so a named
    # zone is split off and checked here; the wall-clock time is what counts.
    if layout.endswith(' %Z'):
        head, _, zone = value.rpartition(' ')
        if not head or not _ZONE_NAME.match(zone):
            raise ValueError(f"no zone name in {value!r}")
        return datetime.strptime(head, layout[:-3])
    return datetime.strptime(value, layout)


def parse_email_date(date_str):
    """
    Normalizes a Date header into the canonical YYYY-MM-DD_HH-MM-SS form.

    The time is kept as written in the header, without conversion to another
    zone, so the same header always yields the same string.

    Args:
        date_str (str): Raw Date header value.

    Returns:
        str: The canonical date, or "unknown" if no accepted layout matches.
    """
    value = _TRAILING_COMMENT.sub('', (date_str or '').strip())
    for layout in DATE_LAYOUTS:
        try:
            parsed = _parse_layout(value, layout)
        except ValueError:
            continue
        return CANONICAL_DATE_FORMAT.format(parsed)

    logger.error("Failed to parse email date: %r", date_str)
    return UNKNOWN_DATE


def header_map(payload):
    """
    Builds a name -> value lookup of the payload headers.

    When a header appears more than once, the first occurrence wins.
    """
    headers = {}
    for header in payload.get('headers', []):
        headers.setdefault(header.get('name'), header.get('value', ''))
    return headers


def decode_base64url(data):
    """
    Decodes Gmail's base64url encoded bodies, tolerating missing padding.

    Raises:
        binascii.Error: If the data is not valid base64url.
    """
    return base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))


def iter_attachment_parts(payload):
    """
    Yields every part that carries a downloadable attachment.

    A part qualifies when it has both a filename and an attachment ID. Nested
    multipart parts are searched depth-first, in message order.
    """
    for part in payload.get('parts') or []:
        body = part.get('body') or {}
        if part.get('filename') and body.get('attachmentId'):
            yield part
        if part.get('parts'):
            yield from iter_attachment_parts(part)


def inline_body_text(payload):
    """
    Returns the message's top-level inline body as text.

    Only a body stored directly on the payload counts; multipart messages
    whose content lives in parts have none. HTML bodies are converted to
    plain text. A body that cannot be decoded is returned as an empty string.

    Returns:
        str: The body text, or None if the payload has no inline body.
    """
    body = payload.get('body') or {}
    data = body.get('data')
    if not data:
        return None

    try:
        text = decode_base64url(data).decode('utf-8', errors='replace')
    except ValueError as e:
        logger.warning("Failed to decode inline body: %s", e)
        return ''

    if payload.get('mimeType') == 'text/html':
        soup = BeautifulSoup(text, 'html.parser')
        return soup.get_text()
    return text
