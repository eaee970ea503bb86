"""
Main entry point for the single-user MCP server.

Startup order: settings, entity store, credential gate, OAuth provider,
FastMCP server with login routes and tools, then the expired-entry sweep
running next to the server until shutdown.
"""

import asyncio
import contextlib
import sys
import traceback

from fastmcp import FastMCP
from mcp.server.auth.settings import ClientRegistrationOptions, RevocationOptions

from single_user_mcp.auth import CredentialGate, SingleUserOAuthProvider
from single_user_mcp.auth.setup import setup_login_routes
from single_user_mcp.config import Settings, get_settings
from single_user_mcp.core import ConfigurationError, configure_logging, logger
from single_user_mcp.storage import FileStorage
from single_user_mcp.tools import register_status_tools

SERVER_NAME = "Single-User MCP Server"

# Accepted TRANSPORT values mapped to FastMCP transport literals
TRANSPORTS = {
    "http": "streamable-http",
    "streamable-http": "streamable-http",
    "sse": "sse",
    "stdio": "stdio",
}


def resolve_transport(name: str) -> str:
    """Map a configured transport name to the FastMCP transport literal."""
    transport = TRANSPORTS.get(name.strip().lower())
    if transport is None:
        msg = f"Unknown transport {name!r}; expected one of {', '.join(TRANSPORTS)}"
        raise ConfigurationError(msg)
    return transport


async def create_mcp_server(settings: Settings) -> tuple[FastMCP, SingleUserOAuthProvider]:
    """Build the FastMCP server and its OAuth provider from settings."""
    storage = await FileStorage(settings.data_dir).initialize()
    gate = await CredentialGate.initialize(settings.api_key_file)

    scopes = settings.get_supported_scopes_list()
    provider = SingleUserOAuthProvider(
        storage=storage,
        gate=gate,
        base_url=settings.server_url or "",
        issuer_url=settings.server_url,
        client_registration_options=ClientRegistrationOptions(
            enabled=settings.allow_dynamic_client_registration,
            valid_scopes=scopes,
            default_scopes=scopes,
        ),
        revocation_options=RevocationOptions(enabled=True),
        access_token_lifetime=settings.access_token_lifetime,
        refresh_token_lifetime=settings.refresh_token_lifetime,
        authorization_code_lifetime=settings.authorization_code_lifetime,
    )
    logger.info("✓ OAuth Provider enabled")
    logger.info(f"  - Issuer: {settings.server_url}")
    logger.info(f"  - Valid scopes: {', '.join(scopes)}")
    logger.info(f"  - DCR enabled: {settings.allow_dynamic_client_registration}")
    logger.info(f"  - API key file: {gate.key_file}")

    mcp = FastMCP(SERVER_NAME, auth=provider)
    setup_login_routes(mcp, provider)
    register_status_tools(mcp, storage)
    return mcp, provider


async def run_periodic_sweep(provider: SingleUserOAuthProvider, interval: float) -> None:
    """Sweep expired codes and tokens every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await provider.sweep_expired()
        except Exception as e:
            logger.error(f"Expired-entry sweep failed: {e}")
            continue
        if any(removed.values()):
            logger.info(f"Expired-entry sweep removed {removed}")


async def main() -> None:
    """
    Main async function to run the MCP server.
    """
    settings = get_settings()
    configure_logging(settings.debug)
    fastmcp_transport = resolve_transport(settings.transport)

    mcp, provider = await create_mcp_server(settings)

    sweep_task: asyncio.Task | None = None
    if settings.cleanup_interval > 0:
        sweep_task = asyncio.create_task(
            run_periodic_sweep(provider, settings.cleanup_interval)
        )

    try:
        logger.info(f"Transport mode: {fastmcp_transport}")

        if fastmcp_transport in ("streamable-http", "sse"):
            logger.info(
                "Setting up %s server on %s:%s...",
                fastmcp_transport,
                settings.host,
                settings.port,
            )
            await mcp.run_async(
                transport=fastmcp_transport,  # type: ignore[arg-type]
                host=settings.host,
                port=settings.port,
            )
        else:
            logger.info("Setting up stdio server...")
            await mcp.run_async(transport="stdio")

    except Exception as e:
        logger.error(f"Error in main function: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise
    finally:
        logger.info("Shutting down - flushing OAuth store...")
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        await provider.storage.close()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error(f"Error in main: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
