"""
Login route registration for FastMCP server.

FastMCP serves the standard OAuth endpoints (metadata, /register,
/authorize, /token, /revoke) from the provider itself. This module adds
the login page that /authorize redirects to, using closure adapters to
inject the provider into the handlers from auth.routes.
"""

import logging
from typing import TYPE_CHECKING

from single_user_mcp.auth.routes import LOGIN_PATH, login_get, login_post

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from single_user_mcp.auth.provider import SingleUserOAuthProvider

logger = logging.getLogger(__name__)


def setup_login_routes(mcp: "FastMCP", provider: "SingleUserOAuthProvider") -> None:
    """
    Register the login page with FastMCP server.

    Registers:
    - /login (GET - API key form)
    - /login (POST - API key check and redirect)

    Args:
        mcp: FastMCP server instance
        provider: SingleUserOAuthProvider holding pending authorizations

    Example:
        >>> mcp = FastMCP("My Server", auth=provider)
        >>> setup_login_routes(mcp, provider)
    """

    @mcp.custom_route(LOGIN_PATH, methods=["GET"])
    async def _login_get(request):
        """Login endpoint (GET) - shows API key form."""
        return await login_get(request, provider)

    @mcp.custom_route(LOGIN_PATH, methods=["POST"])
    async def _login_post(request):
        """Login endpoint (POST) - processes API key form."""
        return await login_post(request, provider)

    logger.info("✓ Login endpoints registered (2 routes)")
