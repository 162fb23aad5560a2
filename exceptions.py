"""Exception taxonomy for Anthill Pro workflow migrations."""

from typing import Optional


class MigrationError(Exception):
    """Base class for migration errors; also usable on its own for a generic error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        """
        Initialize migration error.

        Args:
            message: Human readable description
            cause: Optional underlying exception; its message is appended
        """
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class ConnectError(MigrationError):
    """Authentication or connectivity failure against the Anthill server."""
    pass


class DataAccessError(MigrationError):
    """Query or transaction failure against the Anthill server."""
    pass


class UnsupportedKindError(MigrationError):
    """Raised when a loader cannot resolve a step's native kind identifier."""

    def __init__(self, kind: str, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message or f"Unsupported step kind: {kind}", cause)
        self.kind = kind


class SkipSignal(MigrationError):
    """Control signal: omit the current unit and carry on with the migration."""
    pass


class GenericMigrationError(MigrationError):
    """Catch-all wrapper for failures outside the migration taxonomy."""

    @classmethod
    def from_exception(cls, exc: BaseException) -> 'GenericMigrationError':
        """Wrap an arbitrary exception, falling back to its type name when it has no message."""
        if str(exc):
            error = cls(f"General error: {exc}")
        else:
            error = cls(f"General error: {type(exc).__name__}")
        error.__cause__ = exc
        return error


class GraphLayoutError(MigrationError):
    """The workflow's job dependency graph is malformed."""
    pass


class NotReadyError(MigrationError):
    """run() was invoked on a migration that is not in the READY state."""
    pass


class NotConfiguredError(NotReadyError):
    """run() was invoked before a workflow id was assigned."""

    def __init__(self):
        super().__init__(
            "Migration is not configured: set a workflow id before calling run()"
        )


class AlreadyUsedError(NotReadyError):
    """run() was invoked on a migration that already ran or was closed."""

    def __init__(self):
        super().__init__(
            "Migration was already used and cannot be re-run; create a new Migration"
        )


__all__ = [
    'MigrationError',
    'ConnectError',
    'DataAccessError',
    'UnsupportedKindError',
    'SkipSignal',
    'GenericMigrationError',
    'GraphLayoutError',
    'NotReadyError',
    'NotConfiguredError',
    'AlreadyUsedError'
]
