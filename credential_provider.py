# credential_provider.py

import logging
import os

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow

from auth_broker import AuthBroker
from config import SCOPES
from errors import AuthorizationError, ConfigError, TokenCacheError

logger = logging.getLogger(__name__)


class CredentialProvider:
    """
    Hands out Gmail API credentials.

    The token cache is tried first. When it holds nothing usable, the
    operator is sent through the browser authorization flow, the resulting
    code is exchanged for tokens, and the tokens are cached for the next run.
    This class is the only writer of the token cache.
    """

    def __init__(self, credentials_file, token_cache, scopes=SCOPES, broker_factory=AuthBroker):
        """
        Args:
            credentials_file (str): Path to the OAuth client secret JSON file.
            token_cache (TokenCache): Where tokens are read from and written to.
            scopes (list): OAuth scopes to request.
            broker_factory (callable): Returns a fresh AuthBroker for each authorization attempt.
        """
        self.credentials_file = credentials_file
        self.token_cache = token_cache
        self.scopes = scopes
        self.broker_factory = broker_factory

    def get_credentials(self):
        """
        Returns credentials for the Gmail API.

        Raises:
            ConfigError: If the client secret file is missing or invalid.
            AuthorizationError: If the browser flow or the code exchange fails.
            TokenCacheError: If new tokens cannot be written to the cache.
        """
        print("Authenticating with Gmail API...")
        flow = self._build_flow()

        creds = self._cached_credentials()
        if creds is not None:
            return creds

        creds = self._authorize(flow)
        self.token_cache.save(creds)
        return creds

    def _build_flow(self):
        if not os.path.exists(self.credentials_file):
            raise ConfigError(
                f"'{self.credentials_file}' not found. "
                "Please download your OAuth client JSON from Google Cloud Console."
            )
        try:
            return InstalledAppFlow.from_client_secrets_file(self.credentials_file, scopes=self.scopes)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Unable to parse client secret file '{self.credentials_file}': {e}") from e

    def _cached_credentials(self):
        try:
            creds = self.token_cache.load()
        except TokenCacheError as e:
            logger.info("No usable cached token (%s); starting authorization", e)
            return None

        # Expiry is google-auth's decision; a refreshed token is written back to the cache.
        if creds.expired and creds.refresh_token:
            logger.info("Cached access token expired; refreshing")
            try:
                creds.refresh(Request())
            except RefreshError as e:
                logger.warning("Unable to refresh cached token: %s", e)
                return None
            self.token_cache.save(creds)
        return creds

    def _authorize(self, flow):
        broker = self.broker_factory()
        flow.redirect_uri = broker.redirect_uri
        authorization_url, state = flow.authorization_url(access_type='offline', prompt='consent')
        broker.expected_state = state

        code = broker.obtain_authorization_code(authorization_url)

        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise AuthorizationError(f"Unable to retrieve token from web: {e}") from e
        logger.info("Authorization code exchanged for tokens")
        return flow.credentials
