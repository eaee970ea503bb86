"""Persistent OAuth entity storage.

This module provides the JSON snapshot store used as the sole persistence
backend of the authorization server.
"""

from single_user_mcp.storage.file_storage import SNAPSHOT_FILENAME, FileStorage, Table
from single_user_mcp.storage.models import (
    AccessToken,
    AuthorizationCode,
    OAuthClient,
    OAuthUser,
    RefreshToken,
    StoreStats,
)

__all__ = [
    "SNAPSHOT_FILENAME",
    "AccessToken",
    "AuthorizationCode",
    "FileStorage",
    "OAuthClient",
    "OAuthUser",
    "RefreshToken",
    "StoreStats",
    "Table",
]
