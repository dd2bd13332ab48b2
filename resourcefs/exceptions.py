"""
Exceptions for the resource filesystem.
"""


class ResourceFSError(Exception):
    """Base exception for resource filesystem operations."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class EntryNotFoundError(ResourceFSError):
    """Raised when a path does not resolve to an entry."""


class EntryNotADirectoryError(ResourceFSError):
    """Raised when a directory operation targets a file."""


class EntryIsADirectoryError(ResourceFSError):
    """Raised when a file operation targets a directory."""


class EntryExistsError(ResourceFSError):
    """Raised when a create or rename would replace an existing entry."""


class NoPermissionsError(ResourceFSError):
    """Raised for operations that are not allowed on the target."""


class UnavailableError(ResourceFSError):
    """Raised when there is no connection or the resource store rejects a call."""

    def __init__(
        self, message: str, path: str | None = None, status_code: int | None = None
    ):
        super().__init__(message, path)
        self.status_code = status_code


class ConfigError(ResourceFSError):
    """Raised when the configuration file is missing fields or malformed."""
