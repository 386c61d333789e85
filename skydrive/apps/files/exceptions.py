"""Exceptions for files app.

Every error carries a ``status_hint`` so the HTTP layer can map it to a
response status without inspecting messages.
"""

from typing import ClassVar


class FileStorageError(Exception):
    """Base class for all errors raised by the storage core."""

    status_hint: ClassVar[str] = 'internal'


class InvalidPathError(FileStorageError):
    """Raised when a caller-supplied path is malformed or unsafe."""

    status_hint = 'bad_request'

    def __init__(self, path: str, reason: str) -> None:
        """Initialize InvalidPathError.

        Args:
            path: Offending path as supplied by the caller.
            reason: Short explanation of the rejection.
        """
        self.path = path
        self.reason = reason
        super().__init__(f'Invalid path {path!r}: {reason}')


class AccessDeniedError(FileStorageError):
    """Raised when a key falls outside the caller's root prefix."""

    status_hint = 'forbidden'

    def __init__(self, path: str) -> None:
        """Initialize AccessDeniedError.

        Args:
            path: Path or key the caller does not own.
        """
        self.path = path
        super().__init__(f'Access denied: {path!r}')


class ResourceNotFoundError(FileStorageError):
    """Raised when a file or directory does not exist."""

    status_hint = 'not_found'

    def __init__(self, path: str) -> None:
        """Initialize ResourceNotFoundError.

        Args:
            path: Path or key that was not found.
        """
        self.path = path
        super().__init__(f'Resource not found: {path!r}')


class ResourceAlreadyExistsError(FileStorageError):
    """Raised when an upload target already exists."""

    status_hint = 'conflict'

    def __init__(self, path: str) -> None:
        """Initialize ResourceAlreadyExistsError.

        Args:
            path: Path that is already taken.
        """
        self.path = path
        super().__init__(f'Resource already exists: {path!r}')


class StoreError(FileStorageError):
    """Raised for unexpected object store failures.

    The original botocore exception is available as ``__cause__``.
    """

    def __init__(self, operation: str, key: str) -> None:
        """Initialize StoreError.

        Args:
            operation: Primitive that failed (put, stat, list, ...).
            key: Object key or prefix the primitive was called with.
        """
        self.operation = operation
        self.key = key
        super().__init__(f'Object store {operation} failed for {key!r}')
