"""Error taxonomy shared by the CLI, the watch server and the client."""

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable error category carried in `error` frames."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    CONNECTIVITY = "connectivity"
    INTERNAL = "internal"


class ForklineError(Exception):
    """Base class for every error Forkline reports to a user."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(ForklineError, ValueError):
    """Malformed version key or missing argument. Raised before any file I/O."""

    kind = ErrorKind.VALIDATION


class ConflictError(ForklineError):
    """Target/version already exists, or the mutation would break an invariant."""

    kind = ErrorKind.CONFLICT


class NotFoundError(ForklineError, LookupError):
    """Missing version file, index file or target."""

    kind = ErrorKind.NOT_FOUND


class NotConnectedError(ForklineError):
    """A command was issued while the client session had no open socket."""

    kind = ErrorKind.CONNECTIVITY
