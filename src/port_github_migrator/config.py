"""
This module loads all configuration settings for the migrator from environment
variables (a local .env file is honoured). It also configures the loggers.
"""
import os
import logging
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# --- Port Configuration ---
PORT_CLIENT_ID = os.getenv("PORT_CLIENT_ID")
PORT_CLIENT_SECRET = os.getenv("PORT_CLIENT_SECRET")
# The base URL for the Port API, without the /v1 prefix
PORT_API_URL = os.getenv("PORT_API_URL", "https://api.getport.io")

# --- Installation Configuration ---
# The installation id of the legacy GitHub App integration
OLD_INSTALLATION_ID = os.getenv("OLD_INSTALLATION_ID")
# The installation id of the GitHub Ocean integration taking ownership
NEW_INSTALLATION_ID = os.getenv("NEW_INSTALLATION_ID")

# --- HTTP Configuration ---
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "30"))
# Read calls only. Bulk patches are never retried.
MAX_READ_ATTEMPTS = int(os.getenv("MAX_READ_ATTEMPTS", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "1"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = "migrator.log"
AUDIT_LOG_FILE = "migration_audit.log"

# CLI option reported to the operator for each required setting
OPTION_NAMES = {
    "PORT_CLIENT_ID": "--client-id",
    "PORT_CLIENT_SECRET": "--client-secret",
    "OLD_INSTALLATION_ID": "--old-installation-id",
    "NEW_INSTALLATION_ID": "--new-installation-id",
}


class Settings:
    """
    Runtime settings for one command invocation. Values given explicitly
    (usually from command line flags) win over the environment.
    """

    # pylint: disable=too-many-arguments,too-few-public-methods
    def __init__(
        self,
        port_api_url=None,
        client_id=None,
        client_secret=None,
        old_installation_id=None,
        new_installation_id=None,
    ):
        self.PORT_API_URL = (port_api_url or PORT_API_URL).rstrip("/")
        self.PORT_CLIENT_ID = client_id or PORT_CLIENT_ID
        self.PORT_CLIENT_SECRET = client_secret or PORT_CLIENT_SECRET
        self.OLD_INSTALLATION_ID = old_installation_id or OLD_INSTALLATION_ID
        self.NEW_INSTALLATION_ID = new_installation_id or NEW_INSTALLATION_ID
        self.REQUEST_TIMEOUT = REQUEST_TIMEOUT
        self.MAX_READ_ATTEMPTS = MAX_READ_ATTEMPTS
        self.RETRY_BACKOFF_SECONDS = RETRY_BACKOFF_SECONDS

    def require(self, *names):
        """Raises ConfigurationError listing every missing setting in `names`."""
        missing = [OPTION_NAMES.get(name, name) for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required options: {', '.join(missing)}"
            )


def setup_logging(log_file=LOG_FILE, audit_log_file=AUDIT_LOG_FILE, log_level=LOG_LEVEL):
    """Configures the main logger and the batch audit logger."""
    # Main logger
    log_format = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # Audit logger, one line per patched batch
    audit_logger = logging.getLogger('audit_logger')
    audit_logger.setLevel(logging.INFO)
    # Keep audit records out of the main log
    audit_logger.propagate = False

    if not audit_logger.handlers:
        audit_handler = logging.FileHandler(audit_log_file)
        audit_handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))
        audit_logger.addHandler(audit_handler)

    return logging.getLogger(__name__), audit_logger
