"""Single-user OAuth Provider implementation.

This module provides the OAuth 2.1 authorization server used by the MCP
server. Protocol handling (metadata, PKCE checks, grant dispatch) is done by
FastMCP; this provider supplies persistence through ``FileStorage`` and the
login decision through ``CredentialGate``.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta

from fastmcp.server.auth import OAuthProvider
from fastmcp.server.auth.auth import AccessToken
from mcp.server.auth.provider import (
    AuthorizationCode,
    AuthorizationParams,
    RefreshToken,
    construct_redirect_uri,
)
from mcp.server.auth.settings import ClientRegistrationOptions, RevocationOptions
from mcp.shared.auth import OAuthClientInformationFull, OAuthToken
from pydantic import AnyUrl

from single_user_mcp.auth.credentials import CredentialGate
from single_user_mcp.core.exceptions import AuthorizationRequestError
from single_user_mcp.storage import FileStorage
from single_user_mcp.storage.models import (
    AccessToken as StoredAccessToken,
)
from single_user_mcp.storage.models import (
    AuthorizationCode as StoredAuthCode,
)
from single_user_mcp.storage.models import (
    OAuthClient,
    OAuthUser,
    utcnow,
)
from single_user_mcp.storage.models import (
    RefreshToken as StoredRefreshToken,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TOKEN_LIFETIME = 60 * 60 * 4
DEFAULT_REFRESH_TOKEN_LIFETIME = 60 * 60 * 24 * 7
DEFAULT_AUTHORIZATION_CODE_LIFETIME = 600


@dataclass
class PendingAuthorization:
    """Authorization request waiting for the user to enter the API key."""

    client_id: str
    client_name: str | None
    params: AuthorizationParams
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now or time.time()) > self.expires_at


class SingleUserOAuthProvider(OAuthProvider):
    """OAuth Provider backed by the JSON snapshot store.

    Authorization requests are parked in memory and redirected to the login
    page. Once the API key is accepted an authorization code is issued for
    the single user. Access and refresh tokens are opaque random strings.
    """

    def __init__(
        self,
        *,
        storage: FileStorage,
        gate: CredentialGate,
        base_url: str,
        issuer_url: str | None = None,
        service_documentation_url: str | None = None,
        client_registration_options: ClientRegistrationOptions | None = None,
        revocation_options: RevocationOptions | None = None,
        required_scopes: list[str] | None = None,
        access_token_lifetime: int = DEFAULT_ACCESS_TOKEN_LIFETIME,
        refresh_token_lifetime: int = DEFAULT_REFRESH_TOKEN_LIFETIME,
        authorization_code_lifetime: int = DEFAULT_AUTHORIZATION_CODE_LIFETIME,
    ) -> None:
        """Initialize OAuth provider.

        Args:
            storage: Initialized entity store used for all persistence
            gate: Initialized credential gate deciding logins
            base_url: Public base URL for OAuth endpoints
            issuer_url: OAuth issuer URL (defaults to base_url)
            service_documentation_url: URL to service documentation
            client_registration_options: DCR configuration
            revocation_options: Token revocation configuration
            required_scopes: Scopes required for all requests
            access_token_lifetime: Access token lifetime in seconds
            refresh_token_lifetime: Refresh token lifetime in seconds
            authorization_code_lifetime: Authorization code lifetime in seconds
        """
        super().__init__(
            base_url=base_url,
            issuer_url=issuer_url,
            service_documentation_url=service_documentation_url,
            client_registration_options=client_registration_options,
            revocation_options=revocation_options,
            required_scopes=required_scopes,
        )
        self.storage = storage
        self.gate = gate
        self.login_url = f"{str(base_url).rstrip('/')}/login"
        self.access_token_lifetime = access_token_lifetime
        self.refresh_token_lifetime = refresh_token_lifetime
        self.authorization_code_lifetime = authorization_code_lifetime
        self._pending: dict[str, PendingAuthorization] = {}

        logger.info(
            "Initialized SingleUserOAuthProvider with storage at %s",
            storage.path,
        )

    # ========== Client Management ==========

    async def get_client(self, client_id: str) -> OAuthClientInformationFull | None:
        """Retrieve client from persistent storage."""
        stored = await self.storage.get_client(client_id)
        if not stored:
            return None
        info = {
            "client_id": stored.id,
            "client_secret": stored.secret,
            "client_name": stored.name,
            "redirect_uris": stored.redirect_uris,
            "grant_types": stored.grant_types,
            "scope": " ".join(stored.scopes) or None,
        }
        info.update(stored.metadata)
        return OAuthClientInformationFull.model_validate(info)

    async def register_client(self, client_info: OAuthClientInformationFull) -> None:
        """Store client registration in persistent storage."""
        if not client_info.client_id:
            msg = "client_id is required"
            raise ValueError(msg)

        public = client_info.token_endpoint_auth_method == "none" or not client_info.client_secret
        stored = OAuthClient(
            id=client_info.client_id,
            secret=client_info.client_secret,
            name=client_info.client_name,
            type="public" if public else "confidential",
            redirect_uris=[str(uri) for uri in (client_info.redirect_uris or [])],
            scopes=(client_info.scope or "").split(),
            grant_types=list(client_info.grant_types),
            metadata=client_info.model_dump(mode="json", exclude_none=True),
        )
        await self.storage.create_client(stored)
        logger.info("Registered client: %s", client_info.client_id)

    # ========== Authorization Flow ==========

    async def authorize(
        self,
        client: OAuthClientInformationFull,
        params: AuthorizationParams,
    ) -> str:
        """Park the request and send the user to the login page."""
        self._prune_pending()
        request_id = secrets.token_urlsafe(24)
        self._pending[request_id] = PendingAuthorization(
            client_id=client.client_id or "",
            client_name=client.client_name,
            params=params,
            expires_at=time.time() + self.authorization_code_lifetime,
        )
        return construct_redirect_uri(self.login_url, request_id=request_id)

    def get_pending_authorization(self, request_id: str) -> PendingAuthorization | None:
        pending = self._pending.get(request_id)
        if pending is None or pending.is_expired():
            return None
        return pending

    async def complete_authorization(self, request_id: str, password: str | None) -> str | None:
        """Check the API key for a parked request.

        Returns:
            The client redirect URL carrying the authorization code, or None
            when the key is wrong (the request stays pending for a retry)

        Raises:
            AuthorizationRequestError: If the request is unknown or expired
        """
        pending = self.get_pending_authorization(request_id)
        if pending is None:
            self._pending.pop(request_id, None)
            msg = "Unknown or expired authorization request"
            raise AuthorizationRequestError(msg)

        user = self.gate.authenticate(password)
        if user is None:
            logger.warning("Rejected login attempt for client: %s", pending.client_id)
            return None

        del self._pending[request_id]
        await self._ensure_user(user)

        params = pending.params
        code = f"authcode_{secrets.token_urlsafe(32)}"
        stored = StoredAuthCode(
            code=code,
            client_id=pending.client_id,
            user_id=user.id,
            redirect_uri=str(params.redirect_uri),
            redirect_uri_provided_explicitly=params.redirect_uri_provided_explicitly,
            scope=" ".join(params.scopes or []),
            resource=params.resource,
            code_challenge=params.code_challenge,
            code_challenge_method="S256",
            expires_at=utcnow() + timedelta(seconds=self.authorization_code_lifetime),
        )
        await self.storage.create_authorization_code(stored)
        logger.info("Issued authorization code for client: %s", pending.client_id)

        return construct_redirect_uri(str(params.redirect_uri), code=code, state=params.state)

    async def load_authorization_code(
        self,
        client: OAuthClientInformationFull,
        authorization_code: str,
    ) -> AuthorizationCode | None:
        """Load authorization code from storage."""
        stored = await self.storage.get_authorization_code(authorization_code)
        if not stored:
            return None

        # Check expiration
        if stored.expires_at < utcnow():
            await self.storage.delete_authorization_code(authorization_code)
            return None

        # Verify client
        if stored.client_id != client.client_id:
            return None

        return AuthorizationCode(
            code=stored.code,
            client_id=stored.client_id,
            redirect_uri=AnyUrl(stored.redirect_uri),
            redirect_uri_provided_explicitly=stored.redirect_uri_provided_explicitly,
            scopes=stored.scope.split(),
            expires_at=stored.expires_at.timestamp(),
            code_challenge=stored.code_challenge or "",
            resource=stored.resource,
        )

    # ========== Token Exchange ==========

    async def exchange_authorization_code(
        self,
        client: OAuthClientInformationFull,
        authorization_code: AuthorizationCode,
    ) -> OAuthToken:
        """Exchange auth code for tokens."""
        stored = await self.storage.get_authorization_code(authorization_code.code)
        # Delete used code (one-time use)
        await self.storage.delete_authorization_code(authorization_code.code)

        user_id = stored.user_id if stored else self.gate.identity.id
        return await self._issue_tokens(
            client_id=client.client_id or "",
            user_id=user_id,
            scopes=authorization_code.scopes,
            resource=authorization_code.resource,
        )

    # ========== Refresh Token ==========

    async def load_refresh_token(
        self,
        client: OAuthClientInformationFull,
        refresh_token: str,
    ) -> RefreshToken | None:
        """Load refresh token from storage."""
        stored = await self.storage.get_refresh_token(refresh_token)
        if not stored:
            return None

        # Verify client
        if stored.client_id != client.client_id:
            return None

        if stored.expires_at < utcnow():
            await self.storage.delete_refresh_token(refresh_token)
            return None

        return RefreshToken(
            token=stored.token,
            client_id=stored.client_id,
            scopes=stored.scope.split(),
            expires_at=int(stored.expires_at.timestamp()),
        )

    async def exchange_refresh_token(
        self,
        client: OAuthClientInformationFull,
        refresh_token: RefreshToken,
        scopes: list[str],
    ) -> OAuthToken:
        """Exchange refresh token for a new token pair (rotation)."""
        if not set(scopes).issubset(set(refresh_token.scopes)):
            msg = "Requested scopes exceed original scopes"
            raise ValueError(msg)

        stored = await self.storage.get_refresh_token(refresh_token.token)
        user_id = stored.user_id if stored else self.gate.identity.id
        resource = None
        if stored:
            previous = await self.storage.get_access_token(stored.access_token_id)
            resource = previous.resource if previous else None
            await self.storage.delete_access_token(stored.access_token_id)

        # Revoke old refresh token
        await self.storage.delete_refresh_token(refresh_token.token)

        logger.info("Refreshing tokens for client: %s", client.client_id)
        return await self._issue_tokens(
            client_id=client.client_id or "",
            user_id=user_id,
            scopes=scopes or refresh_token.scopes,
            resource=resource,
        )

    # ========== Token Validation ==========

    async def load_access_token(self, token: str) -> AccessToken | None:
        """Load and validate access token."""
        stored = await self.storage.get_access_token(token)
        if not stored:
            return None

        # Check expiration
        if stored.expires_at < utcnow():
            await self.storage.delete_access_token(token)
            return None

        return AccessToken(
            token=stored.token,
            client_id=stored.client_id,
            scopes=stored.scope.split(),
            expires_at=int(stored.expires_at.timestamp()),
            resource=stored.resource,
            claims={"sub": stored.user_id},
        )

    # ========== Revocation ==========

    async def revoke_token(self, token: AccessToken | RefreshToken) -> None:
        """Revoke a token; revoking an access token also drops its refresh tokens."""
        if isinstance(token, RefreshToken):
            await self.storage.delete_refresh_token(token.token)
            logger.info("Revoked refresh token for client: %s", token.client_id)
        else:
            await self.storage.delete_access_token(token.token)
            await self.storage.delete_refresh_tokens_by_access_token(token.token)
            logger.info("Revoked access token for client: %s", token.client_id)

    # ========== Maintenance ==========

    async def sweep_expired(self) -> dict[str, int]:
        """Drop expired codes, tokens and stale login requests."""
        return {
            "authorization_codes": await self.storage.cleanup_expired_codes(),
            "access_tokens": await self.storage.cleanup_expired_tokens(),
            "refresh_tokens": await self.storage.cleanup_expired_refresh_tokens(),
            "pending_authorizations": self._prune_pending(),
        }

    # ========== Helpers ==========

    async def _issue_tokens(
        self,
        *,
        client_id: str,
        user_id: str,
        scopes: list[str],
        resource: str | None,
    ) -> OAuthToken:
        access_token = f"access_{secrets.token_urlsafe(32)}"
        refresh_token = f"refresh_{secrets.token_urlsafe(32)}"
        now = utcnow()
        scope = " ".join(scopes)

        await self.storage.create_access_token(
            StoredAccessToken(
                token=access_token,
                client_id=client_id,
                user_id=user_id,
                scope=scope,
                resource=resource,
                expires_at=now + timedelta(seconds=self.access_token_lifetime),
            )
        )
        await self.storage.create_refresh_token(
            StoredRefreshToken(
                token=refresh_token,
                access_token_id=access_token,
                client_id=client_id,
                user_id=user_id,
                scope=scope,
                expires_at=now + timedelta(seconds=self.refresh_token_lifetime),
            )
        )
        logger.info("Issued tokens for client: %s", client_id)

        return OAuthToken(
            access_token=access_token,
            token_type="Bearer",
            expires_in=self.access_token_lifetime,
            refresh_token=refresh_token,
            scope=scope or None,
        )

    async def _ensure_user(self, user: OAuthUser) -> None:
        if await self.storage.get_user(user.id) is None:
            await self.storage.create_user(user)
            logger.info("Created user record: %s", user.username)

    def _prune_pending(self) -> int:
        now = time.time()
        stale = [key for key, pending in self._pending.items() if pending.is_expired(now)]
        for key in stale:
            del self._pending[key]
        return len(stale)
