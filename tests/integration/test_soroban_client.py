"""Integration tests for the Soroban client — RPC fallback and error handling."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lending_core.chains.soroban.client import SorobanClient
from lending_core.config import ChainConfig
from lending_core.errors import DependencyUnavailable

SESSION = "lending_core.chains.soroban.client.aiohttp.ClientSession"
CONNECTOR = "lending_core.chains.soroban.client.aiohttp.TCPConnector"


@pytest.fixture()
def client(sample_chain_config: ChainConfig) -> SorobanClient:
    return SorobanClient(sample_chain_config)


def _response(data: dict) -> AsyncMock:
    response = AsyncMock()
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(response_data: dict | None = None, error: Exception | None = None):
    """Create a mock aiohttp session that returns given data or raises error."""
    mock_session = AsyncMock()
    if error:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(return_value=_response(response_data or {}))
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestRpcCall:
    @pytest.mark.asyncio
    async def test_successful_call(self, client: SorobanClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": {"status": "healthy"}})

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            result = await client.get_health()

        assert result == "healthy"
        payload = mock_session.post.call_args.kwargs["json"]
        assert payload["method"] == "getHealth"
        assert "params" not in payload

    @pytest.mark.asyncio
    async def test_rpc_error_exhausts_endpoints(self, client: SorobanClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "error": {"code": -32600, "message": "bad"}}
        )

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            with pytest.raises(DependencyUnavailable, match="all 2 endpoints failed"):
                await client.rpc_call("getHealth")

        assert mock_session.post.call_count == 2

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, client: SorobanClient) -> None:
        """When first endpoint fails, should try the next one."""
        success = _response({"jsonrpc": "2.0", "result": {"sequence": 4242}})
        mock_session = _mock_session()
        mock_session.post = MagicMock(side_effect=[ConnectionError("first down"), success])

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            result = await client.get_latest_ledger()

        assert result == 4242
        assert client.current_rpc_index == 1
        assert mock_session.post.call_args.args[0] == "https://rpc2.example.com"

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: SorobanClient) -> None:
        mock_session = _mock_session(error=ConnectionError("down"))

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            with pytest.raises(DependencyUnavailable) as exc_info:
                await client.rpc_call("getHealth")

        assert exc_info.value.dependency == "soroban-rpc"

    @pytest.mark.asyncio
    async def test_no_endpoints_configured(self) -> None:
        client = SorobanClient(ChainConfig())

        with pytest.raises(DependencyUnavailable, match="no chain.rpc_endpoints"):
            await client.rpc_call("getHealth")

    @pytest.mark.asyncio
    async def test_request_ids_increment(self, client: SorobanClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": {}})

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            await client.rpc_call("getHealth")
            await client.rpc_call("getHealth")

        ids = [c.kwargs["json"]["id"] for c in mock_session.post.call_args_list]
        assert ids == [1, 2]


class TestTransactions:
    @pytest.mark.asyncio
    async def test_get_transaction_params(self, client: SorobanClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "result": {"status": "SUCCESS", "ledger": 99}}
        )

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            result = await client.get_transaction("abc123")

        assert result["status"] == "SUCCESS"
        payload = mock_session.post.call_args.kwargs["json"]
        assert payload["method"] == "getTransaction"
        assert payload["params"] == {"hash": "abc123"}

    @pytest.mark.asyncio
    async def test_send_transaction(self, client: SorobanClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "result": {"hash": "abc123", "status": "PENDING"}}
        )

        with patch(SESSION, return_value=mock_session), patch(CONNECTOR):
            result = await client.send_transaction("AAAA==")

        assert result == {"hash": "abc123", "status": "PENDING"}
        assert mock_session.post.call_args.kwargs["json"]["params"] == {"transaction": "AAAA=="}
