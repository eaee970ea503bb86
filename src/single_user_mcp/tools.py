"""
MCP tools exposed by the single-user server.

- oauth_store_stats: record counts of the OAuth entity store
"""

import json
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from single_user_mcp.storage import FileStorage

logger = logging.getLogger(__name__)


def register_status_tools(mcp: "FastMCP", storage: "FileStorage") -> None:
    """
    Register status MCP tools.

    Args:
        mcp: FastMCP instance to register tools with
        storage: Entity store to report on
    """

    @mcp.tool()
    async def oauth_store_stats() -> str:
        """
        Report how many clients, users, authorization codes, access tokens and
        refresh tokens are currently stored.

        Returns:
            JSON string with the per-table record counts
        """
        stats = storage.get_stats()
        logger.debug("Store stats requested: %s", stats)
        return json.dumps(stats.model_dump(), indent=2)
