# attachment_sink.py

import logging
import os

from errors import SaveDirectoryError

logger = logging.getLogger(__name__)


def ensure_save_directory(directory):
    """
    Checks that an action's `save_to` directory can receive files.

    Raises:
        SaveDirectoryError: If the directory is empty or does not exist.
    """
    if not directory:
        raise SaveDirectoryError("SaveTo directory is empty for an action that saves files")
    if not os.path.isdir(directory):
        raise SaveDirectoryError(f"SaveTo directory does not exist: {directory}")


def save_attachment(directory, filename, data):
    """
    Writes bytes to a file inside `directory`, replacing any existing file.

    Only the last path component of `filename` is used, so a crafted
    attachment name cannot escape the directory.

    Args:
        directory (str): Existing target directory.
        filename (str): Name of the file to create.
        data (bytes): File content.

    Returns:
        str: Path of the written file.
    Raises:
        OSError: If the file cannot be written.
        ValueError: If no usable filename remains.
    """
    safe_name = os.path.basename(filename.replace('\\', '/'))
    if safe_name in ('', '.', '..'):
        raise ValueError(f"Unusable attachment filename: {filename!r}")
    if safe_name != filename:
        logger.warning("Attachment filename %r reduced to %r", filename, safe_name)

    file_path = os.path.join(directory, safe_name)
    with open(file_path, 'wb') as out:
        out.write(data)
        out.flush()
        os.fsync(out.fileno())
    logger.info("Saved attachment: %s", file_path)
    return file_path
