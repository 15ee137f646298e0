# config.py

import logging
import os

from dotenv import load_dotenv

from errors import ConfigError

# --- Google API Configuration ---
# Scopes define the permissions the application needs from the user's Gmail account.
# 'https://mail.google.com/' is the only scope that allows permanent deletion
# (users.messages.delete); it also covers reading, attachments and label changes.
SCOPES = ['https://mail.google.com/']

# Gmail userId used when GMAIL_USER_ID is not set. "me" refers to the authenticated user.
DEFAULT_USER_ID = 'me'

# Token file generated after the first successful authorization.
# This stores the user's access and refresh tokens for subsequent runs.
DEFAULT_TOKEN_FILE = 'token.json'

# --- Authorization Callback Configuration ---
# The local listener that receives the OAuth redirect. The redirect URI built from
# these values must be allowed for the OAuth client (desktop clients allow any
# loopback port).
CALLBACK_HOST = '127.0.0.1'
CALLBACK_PORT = 9901
CALLBACK_PATH = '/callback'

# How long to wait for the browser to come back with a code.
AUTHORIZATION_TIMEOUT_SECONDS = 5 * 60

# Grace period given to the callback listener to stop once a result is in.
LISTENER_SHUTDOWN_GRACE_SECONDS = 5

# --- Rule Engine Configuration ---
# Subject used when a message has no Subject header.
DEFAULT_SUBJECT = 'No Subject'

# Sentinel returned when a Date header matches none of the accepted layouts.
UNKNOWN_DATE = 'unknown'

# Canonical, sortable layout of normalized dates: YYYY-MM-DD_HH-MM-SS.
# The year is padded explicitly; strftime('%Y') does not pad years below 1000.
CANONICAL_DATE_FORMAT = '{0.year:04d}-{0:%m-%d_%H-%M-%S}'

# --- Environment Variables ---
ENV_CREDENTIALS_FILE = 'CREDENTIALS_JSON'
ENV_RULES_FILE = 'LABEL_ACTIONS_CONFIG'
ENV_USER_ID = 'GMAIL_USER_ID'
ENV_TOKEN_FILE = 'CLIENT_TOKEN_FILE'
ENV_LOG_LEVEL = 'LOG_LEVEL'

DEFAULT_LOG_LEVEL = 'INFO'


class Settings:
    """
    Process-wide settings resolved once at startup.

    Everything the credential provider and the rule engine need from the
    environment is carried here, so the rest of the code never reads
    environment variables directly.
    """

    def __init__(self, credentials_file, rules_file, user_id=DEFAULT_USER_ID,
                 token_file=DEFAULT_TOKEN_FILE, log_level=DEFAULT_LOG_LEVEL):
        """
        Args:
            credentials_file (str): Path to the OAuth client secret JSON file.
            rules_file (str): Path to the label actions JSON file.
            user_id (str): Gmail userId of the mailbox to process.
            token_file (str): Path of the cached token record.
            log_level (str): Name of the logging level, e.g. "INFO".
        """
        self.credentials_file = credentials_file
        self.rules_file = rules_file
        self.user_id = user_id
        self.token_file = token_file
        self.log_level = log_level

    def __repr__(self):
        return (f"Settings(credentials_file={self.credentials_file!r}, rules_file={self.rules_file!r}, "
                f"user_id={self.user_id!r}, token_file={self.token_file!r}, log_level={self.log_level!r})")


def _require(environ, name):
    value = environ.get(name, '').strip()
    if not value:
        raise ConfigError(f"Env variable {name} not set")
    return value


def load_settings(environ=None, dotenv_path=None):
    """
    Builds Settings from environment variables.

    A `.env` file is loaded first when reading the real process environment;
    variables that are already set take precedence over it.

    Args:
        environ (dict, optional): Mapping to read instead of os.environ.
        dotenv_path (str, optional): Explicit .env file to load.

    Returns:
        Settings: The resolved settings.
    Raises:
        ConfigError: If a required variable is missing or a value is invalid.
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path)
        environ = os.environ

    log_level = (environ.get(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Invalid {ENV_LOG_LEVEL} value: {log_level}")

    return Settings(
        credentials_file=_require(environ, ENV_CREDENTIALS_FILE),
        rules_file=_require(environ, ENV_RULES_FILE),
        user_id=(environ.get(ENV_USER_ID) or DEFAULT_USER_ID).strip(),
        token_file=(environ.get(ENV_TOKEN_FILE) or DEFAULT_TOKEN_FILE).strip(),
        log_level=log_level,
    )
