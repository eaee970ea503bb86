"""Single-user OAuth authentication with persistent storage.

This module provides the credential gate and the FastMCP OAuth provider
that uses the JSON snapshot store as its persistence backend.
"""

from single_user_mcp.auth.credentials import (
    CredentialGate,
    ensure_api_key,
    generate_api_key,
    single_user_identity,
)
from single_user_mcp.auth.provider import SingleUserOAuthProvider

__all__ = [
    "CredentialGate",
    "SingleUserOAuthProvider",
    "ensure_api_key",
    "generate_api_key",
    "single_user_identity",
]
