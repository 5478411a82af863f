"""
Error types raised by the migrator.

Everything except ConfirmationDeclined derives from MigratorError, which the
command line entry point turns into a non-zero exit code.
"""


class MigratorError(Exception):
    """Base class for all migrator failures."""


class ConfigurationError(MigratorError):
    """Required credentials or installation ids are missing."""


class AuthenticationError(MigratorError):
    """The Port access token could not be obtained."""


class FetchError(MigratorError):
    """A read call against the Port API failed."""


class PatchError(MigratorError):
    """A bulk datasource patch was rejected."""


class ConfirmationDeclined(Exception):
    """The operator did not confirm the migration. Not a failure."""
