"""Custom exceptions for the single-user MCP server."""


# ========================================
# Base Exceptions
# ========================================


class SingleUserMCPError(Exception):
    """Base exception for all single-user MCP errors."""


# ========================================
# Storage Exceptions
# ========================================


class StorageError(SingleUserMCPError):
    """Base exception for entity store errors."""


class SnapshotWriteError(StorageError):
    """Writing or replacing the snapshot file failed."""


# ========================================
# Credential Exceptions
# ========================================


class CredentialError(SingleUserMCPError):
    """Base exception for credential gate errors."""


class KeyFileError(CredentialError):
    """The API key file could not be created or written."""


# ========================================
# Authorization Flow Exceptions
# ========================================


class AuthorizationRequestError(SingleUserMCPError):
    """The pending authorization request is unknown or no longer valid."""


# ========================================
# Validation Exceptions
# ========================================


class ConfigurationError(SingleUserMCPError):
    """Configuration validation failed."""
