# token_cache.py

import json
import logging
import os
import tempfile

from google.oauth2.credentials import Credentials

from config import SCOPES
from errors import TokenCacheError

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Reads and writes the cached OAuth token record.

    The record is the JSON produced by `Credentials.to_json()` plus a
    `token_type` field. It is always replaced as a whole: a new record is
    written to a temporary file next to the cache and moved over it, so a
    reader never sees a half-written file.
    """

    TOKEN_TYPE = 'Bearer'

    def __init__(self, path, scopes=SCOPES):
        """
        Args:
            path (str): Location of the token record.
            scopes (list): Scopes the cached credentials are expected to carry.
        """
        self.path = path
        self.scopes = scopes

    def exists(self):
        return os.path.isfile(self.path)

    def load(self):
        """
        Loads credentials from the cache file.

        Returns:
            google.oauth2.credentials.Credentials: The cached credentials.
        Raises:
            TokenCacheError: If the file is missing, unreadable or malformed.
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                info = json.load(f)
        except FileNotFoundError:
            raise TokenCacheError(f"No cached token at '{self.path}'")
        except (OSError, json.JSONDecodeError) as e:
            raise TokenCacheError(f"Unable to read cached token '{self.path}': {e}") from e

        if not isinstance(info, dict):
            raise TokenCacheError(f"Cached token '{self.path}' is not a JSON object")

        try:
            return Credentials.from_authorized_user_info(info, self.scopes)
        except ValueError as e:
            raise TokenCacheError(f"Cached token '{self.path}' is incomplete: {e}") from e

    def save(self, credentials):
        """
        Writes credentials to the cache file with owner-only permissions,
        replacing any previous record.

        Args:
            credentials (google.oauth2.credentials.Credentials): Credentials to store.
        Raises:
            TokenCacheError: If the record cannot be written.
        """
        record = json.loads(credentials.to_json())
        record.setdefault('token_type', self.TOKEN_TYPE)

        print(f"Saving credential file to: {self.path}")
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            # mkstemp creates the file readable and writable by the owner only.
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.token-', suffix='.tmp')
        except OSError as e:
            raise TokenCacheError(f"Unable to cache oauth token: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.debug("Temporary token file %s already gone", tmp_path)
            raise TokenCacheError(f"Unable to cache oauth token: {e}") from e
        logger.debug("Token cache %s updated", self.path)
