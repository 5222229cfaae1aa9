"""Failures that end a run before (or instead of) any remote call.

Remote API failures are not wrapped: they stay spotipy SpotifyException so
retry.py can classify them by HTTP status.
"""


class MigratorError(Exception):
    """Base class for errors raised by this app."""


class NotAuthenticated(MigratorError):
    """The account a run needs has no usable access token."""


class InvalidState(MigratorError):
    """The OAuth state string came back malformed or with an unknown role."""


class MissingMigrationData(MigratorError):
    """A migration was requested without a collected snapshot to replay."""


class EmptyLibrary(MigratorError):
    """Nothing was collected to put into a consolidated playlist."""
