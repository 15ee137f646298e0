# run_rules.py

import argparse
import logging
import sys

from config import SCOPES, load_settings
from credential_provider import CredentialProvider
from errors import GmailRulesError
from gmail_client import GmailClient
from rule_engine import RuleEngine, load_label_actions
from token_cache import TokenCache

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Apply the configured label actions to a Gmail mailbox.")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="log debug output (overrides LOG_LEVEL)")
    return parser.parse_args(argv)


def configure_logging(level):
    logging.basicConfig(level=level, format=LOG_FORMAT)


def run(settings):
    """
    Loads the label actions, authenticates, and applies the actions once.

    Args:
        settings (config.Settings): Settings resolved at startup.

    Returns:
        rule_engine.RunStats: What the run did.
    Raises:
        GmailRulesError: On any condition that ends the run.
    """
    label_actions = load_label_actions(settings.rules_file)

    provider = CredentialProvider(settings.credentials_file, TokenCache(settings.token_file, SCOPES))
    credentials = provider.get_credentials()
    gmail_client = GmailClient(credentials, user_id=settings.user_id)

    return RuleEngine(gmail_client, label_actions).run()


def main(argv=None, environ=None):
    """
    Command-line entry point.

    Returns:
        int: 0 once every label action ran (even if single messages were skipped),
             1 if the run was stopped by a fatal error.
    """
    args = parse_args(argv)
    try:
        settings = load_settings(environ)
    except GmailRulesError as e:
        configure_logging(logging.INFO)
        logger.error("%s", e)
        return 1

    configure_logging(logging.DEBUG if args.verbose else settings.log_level)
    logger.debug("Starting with %r", settings)

    try:
        stats = run(settings)
    except GmailRulesError as e:
        logger.error("Fatal: %s", e)
        return 1

    logger.info("Email processing complete: %r", stats)
    return 0


if __name__ == "__main__":
    sys.exit(main())
