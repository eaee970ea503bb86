"""Core functionality for the single-user MCP server."""

from .exceptions import (
    AuthorizationRequestError,
    ConfigurationError,
    CredentialError,
    KeyFileError,
    SingleUserMCPError,
    SnapshotWriteError,
    StorageError,
)
from .logging import configure_logging, logger

__all__ = [
    "AuthorizationRequestError",
    "ConfigurationError",
    "CredentialError",
    "KeyFileError",
    "SingleUserMCPError",
    "SnapshotWriteError",
    "StorageError",
    "configure_logging",
    "logger",
]
