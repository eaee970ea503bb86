"""
Shared pytest fixtures and configuration for all tests.

Every fixture works inside ``tmp_path`` so no test touches ./data.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from single_user_mcp.auth.credentials import CredentialGate
from single_user_mcp.config import reset_settings
from single_user_mcp.storage import FileStorage
from single_user_mcp.storage.models import (
    AccessToken,
    AuthorizationCode,
    OAuthClient,
    OAuthUser,
    RefreshToken,
    utcnow,
)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Make sure no cached Settings leak between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def data_dir(tmp_path):
    """Data directory that does not exist yet."""
    return tmp_path / "data"


@pytest_asyncio.fixture
async def storage(data_dir):
    """Initialized, empty FileStorage."""
    store = await FileStorage(data_dir).initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def gate(data_dir):
    """Credential gate with a freshly generated key."""
    return await CredentialGate.initialize(data_dir / "api_key.txt")


@pytest.fixture
def make_client():
    def _make(client_id: str = "client-1", **overrides) -> OAuthClient:
        fields = {
            "id": client_id,
            "secret": "s3cret",
            "name": "Test Client",
            "redirect_uris": ["https://claude.ai/api/mcp/auth_callback"],
            "scopes": ["read", "write"],
        }
        fields.update(overrides)
        return OAuthClient(**fields)

    return _make


@pytest.fixture
def make_user():
    def _make(user_id: str = "single-user", **overrides) -> OAuthUser:
        fields = {
            "id": user_id,
            "username": user_id,
            "name": "Single User",
            "email": f"{user_id}@example.com",
            "scopes": ["read", "write"],
        }
        fields.update(overrides)
        return OAuthUser(**fields)

    return _make


@pytest.fixture
def make_code():
    def _make(code: str = "code-1", expires_in: float = 600, **overrides) -> AuthorizationCode:
        fields = {
            "code": code,
            "client_id": "client-1",
            "user_id": "single-user",
            "redirect_uri": "https://claude.ai/api/mcp/auth_callback",
            "scope": "read write",
            "resource": "http://localhost:3000/mcp",
            "code_challenge": "challenge",
            "code_challenge_method": "S256",
            "expires_at": utcnow() + timedelta(seconds=expires_in),
        }
        fields.update(overrides)
        return AuthorizationCode(**fields)

    return _make


@pytest.fixture
def make_access_token():
    def _make(token: str = "access-1", expires_in: float = 3600, **overrides) -> AccessToken:
        fields = {
            "token": token,
            "client_id": "client-1",
            "user_id": "single-user",
            "scope": "read write",
            "expires_at": utcnow() + timedelta(seconds=expires_in),
        }
        fields.update(overrides)
        return AccessToken(**fields)

    return _make


@pytest.fixture
def make_refresh_token():
    def _make(
        token: str = "refresh-1",
        access_token_id: str = "access-1",
        expires_in: float = 86400,
        **overrides,
    ) -> RefreshToken:
        fields = {
            "token": token,
            "access_token_id": access_token_id,
            "client_id": "client-1",
            "user_id": "single-user",
            "scope": "read write",
            "expires_at": utcnow() + timedelta(seconds=expires_in),
        }
        fields.update(overrides)
        return RefreshToken(**fields)

    return _make
