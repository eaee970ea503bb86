"""
Single-User MCP Server - an MCP server guarded by a single pre-shared API key.

This package provides a persistent OAuth entity store (clients, users,
authorization codes, access and refresh tokens) mirrored to one JSON
snapshot, and the credential gate that backs the single-user login.
"""

__version__ = "0.1.0"

from single_user_mcp.auth.credentials import CredentialGate, single_user_identity
from single_user_mcp.config.settings import Settings, get_settings, reset_settings
from single_user_mcp.core.exceptions import (
    AuthorizationRequestError,
    CredentialError,
    KeyFileError,
    SingleUserMCPError,
    SnapshotWriteError,
    StorageError,
)
from single_user_mcp.storage import FileStorage

__all__ = [
    "AuthorizationRequestError",
    "CredentialError",
    "CredentialGate",
    "FileStorage",
    "KeyFileError",
    "Settings",
    "SingleUserMCPError",
    "SnapshotWriteError",
    "StorageError",
    "__version__",
    "get_settings",
    "reset_settings",
    "single_user_identity",
]
