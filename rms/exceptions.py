"""Exceptions."""


class InvalidArgument(ValueError):
    """Malformed input: bad e-mail, short password, wrong type."""


class InvalidState(RuntimeError):
    """Operation attempted at the wrong stage of a user's lifecycle."""


class AlreadyDirty(InvalidState):
    """User has unsaved changes and cannot be reloaded."""


class NotFound(LookupError):
    """No such user."""


class Conflict(RuntimeError):
    """Username already taken, or an attempt to re-identify a user."""


class StorageError(IOError):
    """Failed to read or write persistent state."""


class Unauthorized(RuntimeError):
    """Credentials were not accepted."""


class InvalidToken(Unauthorized):
    """Token is malformed or has been tampered with."""


class ExpiredToken(InvalidToken):
    """Token is past its expiry."""
