"""Unit tests for the status MCP tool."""

import json
from unittest.mock import Mock

import pytest

from single_user_mcp.tools import register_status_tools


class TestStatusTools:
    @pytest.mark.asyncio
    async def test_store_stats_tool_reports_counts(self, storage, make_client):
        mcp = Mock()
        tools = {}

        def capture_tool():
            def decorator(func):
                tools[func.__name__] = func
                return func

            return decorator

        mcp.tool = capture_tool
        await storage.create_client(make_client())

        register_status_tools(mcp, storage)
        result = json.loads(await tools["oauth_store_stats"]())

        assert result["clients"] == 1
        assert result["refresh_tokens"] == 0
