#!/usr/bin/env python3
"""Exceptions raised by the WDSC sync engine."""

from typing import Optional


class WDSCError(Exception):
    """Base class for sync engine errors."""
    pass


class ConfigurationNotFound(WDSCError):
    """Raised when an operation references an unknown sync configuration."""

    def __init__(self, config_id: str):
        self.config_id = config_id
        super().__init__(f"Sync configuration not found: {config_id}")


class SyncDisabled(WDSCError):
    """Raised when a full sync is requested for a paused configuration."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Sync is disabled: {name}")


class SyncFailed(WDSCError):
    """Raised when a full sync aborts on a file.

    Attributes:
        position: 1-based index of the failing file
        total: Number of files in the walk
        path: Local path of the failing file
    """

    def __init__(self, position: int, total: int, path: str, cause: Exception):
        self.position = position
        self.total = total
        self.path = path
        self.cause = cause
        super().__init__(f"Failed at file {position}/{total}: {path}\n{cause}")


class RemoteOperationFailed(WDSCError):
    """Raised when a remote WebDAV operation fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class DirectoryEnsureFailed(RemoteOperationFailed):
    """Raised when a remote parent directory could not be created."""

    def __init__(self, path: str, status: Optional[int] = None, reason: str = ''):
        self.path = path
        super().__init__(
            f"Failed to create directory {path}: Invalid response: {status} {reason or 'Unknown error'}",
            status,
        )


class AuthenticationFailed(WDSCError):
    """Raised when credentials are rejected by the WebDAV server."""

    def __init__(self, endpoint: str, status: Optional[int] = None, reason: str = ''):
        self.endpoint = endpoint
        self.status = status
        super().__init__(f"Authentication failed for {endpoint}: {reason} (Status: {status})")
