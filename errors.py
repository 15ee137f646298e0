# errors.py


class GmailRulesError(Exception):
    """Base class for errors that end a run."""


class ConfigError(GmailRulesError):
    """Missing environment variable, unreadable rule file or client secret file."""


class SaveDirectoryError(ConfigError):
    """An action needs `save_to` but it is empty or not an existing directory."""


class AuthorizationError(GmailRulesError):
    """The authorization code could not be obtained or exchanged for a token."""


class TokenCacheError(GmailRulesError):
    """The cached token record is missing or cannot be read."""


class PdfDecryptError(GmailRulesError):
    """A downloaded PDF could not be decrypted with the configured password."""


class PdfRenderError(Exception):
    """An email body could not be rendered as PDF. Logged, the run goes on."""
