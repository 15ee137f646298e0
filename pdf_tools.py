# pdf_tools.py

import io
import logging
import os
import tempfile

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from fpdf.errors import FPDFException
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from errors import PdfDecryptError, PdfRenderError

logger = logging.getLogger(__name__)

PDF_FONT = 'Helvetica'
PDF_FONT_SIZE = 12
PDF_LINE_HEIGHT = 10


def _latin1(text):
    # The core PDF fonts only cover Latin-1.
    return text.encode('latin-1', errors='replace').decode('latin-1')


def render_email_pdf(message_id, email_date, subject, body):
    """
    Renders an email as a single PDF document.

    The document starts with the message ID, date and subject, followed by
    the body text wrapped to the page width.

    Args:
        message_id (str): Gmail message ID.
        email_date (str): Canonical message date.
        subject (str): Message subject.
        body (str): Plain-text body.

    Returns:
        bytes: The PDF document.
    Raises:
        PdfRenderError: If the document cannot be laid out.
    """
    pdf = FPDF(orientation='P', unit='mm', format='A4')
    pdf.set_font(PDF_FONT, size=PDF_FONT_SIZE)
    pdf.add_page()

    try:
        for line in (f"Email ID: {message_id}", f"Date: {email_date}", f"Subject: {subject}"):
            pdf.multi_cell(0, PDF_LINE_HEIGHT, _latin1(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        pdf.ln(PDF_LINE_HEIGHT)
        pdf.multi_cell(0, PDF_LINE_HEIGHT, _latin1(body), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        return bytes(pdf.output())
    except FPDFException as e:
        raise PdfRenderError(f"Failed to render email {message_id} as PDF: {e}") from e


def decrypt_pdf(path, password):
    """
    Removes the password protection of a PDF file in place.

    A file that is not encrypted is left as it is.

    Args:
        path (str): PDF file to decrypt.
        password (str): User password of the document.

    Raises:
        PdfDecryptError: If the file cannot be read, the password is wrong,
                         or the decrypted document cannot be written back.
    """
    try:
        with open(path, 'rb') as f:
            reader = PdfReader(io.BytesIO(f.read()))
    except (OSError, PyPdfError) as e:
        raise PdfDecryptError(f"Failed to read PDF file {path}: {e}") from e

    if not reader.is_encrypted:
        logger.info("PDF is not encrypted, leaving as is: %s", path)
        return

    try:
        if not reader.decrypt(password):
            raise PdfDecryptError(f"Failed to decrypt PDF file {path}: wrong password")
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
    except (PyPdfError, NotImplementedError, ValueError) as e:
        raise PdfDecryptError(f"Failed to decrypt PDF file {path}: {e}") from e

    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.decrypt-', suffix='.pdf')
        with os.fdopen(fd, 'wb') as out:
            writer.write(out)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise PdfDecryptError(f"Failed to write decrypted PDF file {path}: {e}") from e
    logger.info("Successfully decrypted PDF: %s", path)
