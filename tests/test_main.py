"""Tests for server bootstrap and the periodic sweep."""

import asyncio
import contextlib
from unittest.mock import AsyncMock, Mock

import pytest

from single_user_mcp.auth.provider import SingleUserOAuthProvider
from single_user_mcp.config import Settings
from single_user_mcp.core import ConfigurationError
from single_user_mcp.main import create_mcp_server, resolve_transport, run_periodic_sweep
from single_user_mcp.storage import SNAPSHOT_FILENAME


class TestCreateServer:
    @pytest.mark.asyncio
    async def test_bootstrap_creates_data_files(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
        monkeypatch.delenv("API_KEY_FILE", raising=False)
        monkeypatch.setenv("SERVER_URL", "http://localhost:3999")
        settings = Settings(_env_file=None)

        mcp, provider = await create_mcp_server(settings)

        assert isinstance(provider, SingleUserOAuthProvider)
        assert provider.login_url == "http://localhost:3999/login"
        assert (tmp_path / "data" / SNAPSHOT_FILENAME).exists()
        assert (tmp_path / "data" / "api_key.txt").read_text().strip()
        await provider.storage.close()

    @pytest.mark.asyncio
    async def test_restart_keeps_key(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
        monkeypatch.delenv("API_KEY_FILE", raising=False)
        settings = Settings(_env_file=None)

        _, first = await create_mcp_server(settings)
        key = settings.api_key_file.read_text().strip()
        _, second = await create_mcp_server(settings)

        assert second.gate.authenticate(key) is not None
        assert first.gate.masked_key() == second.gate.masked_key()


class TestPeriodicSweep:
    @pytest.mark.asyncio
    async def test_sweep_runs_until_cancelled(self):
        provider = Mock()
        provider.sweep_expired = AsyncMock(return_value={"access_tokens": 1})

        task = asyncio.create_task(run_periodic_sweep(provider, 0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert provider.sweep_expired.await_count >= 2

    @pytest.mark.asyncio
    async def test_sweep_failure_does_not_stop_loop(self):
        calls = []

        async def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise OSError("boom")
            return {"access_tokens": 0}

        provider = Mock()
        provider.sweep_expired = AsyncMock(side_effect=flaky_sweep)

        task = asyncio.create_task(run_periodic_sweep(provider, 0.01))
        await asyncio.sleep(0.06)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert provider.sweep_expired.await_count >= 2


class TestResolveTransport:
    def test_known_names_map_to_fastmcp_transports(self):
        assert resolve_transport("http") == "streamable-http"
        assert resolve_transport(" SSE ") == "sse"
        assert resolve_transport("stdio") == "stdio"

    def test_unknown_transport_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError, match="websocket"):
            resolve_transport("websocket")
