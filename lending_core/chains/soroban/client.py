"""Soroban JSON-RPC client with endpoint fallback."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import DependencyUnavailable

logger = logging.getLogger(__name__)


class SorobanClient:
    """Soroban RPC client that rotates through the configured endpoints."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0
        self._request_id = 0

    async def rpc_call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise DependencyUnavailable("soroban-rpc", "no chain.rpc_endpoints configured")

        self._request_id += 1
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": self._request_id, "method": method}
        if params is not None:
            payload["params"] = params

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RuntimeError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result", {})
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise DependencyUnavailable(
            "soroban-rpc", f"all {len(self.endpoints)} endpoints failed: {last_error}"
        )

    async def get_health(self) -> str:
        result = await self.rpc_call("getHealth")
        return result.get("status", "unknown")

    async def get_latest_ledger(self) -> int:
        result = await self.rpc_call("getLatestLedger")
        return int(result.get("sequence", 0))

    async def send_transaction(self, signed_xdr: str) -> dict[str, Any]:
        """Submit a signed transaction envelope.

        Returns the RPC response containing ``hash`` and ``status``
        (``PENDING``, ``DUPLICATE``, ``TRY_AGAIN_LATER`` or ``ERROR``).
        """
        result = await self.rpc_call("sendTransaction", {"transaction": signed_xdr})
        logger.info("Submitted transaction %s (%s)", result.get("hash"), result.get("status"))
        return result

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        """Look up a transaction; ``status`` is SUCCESS, FAILED or NOT_FOUND."""
        return await self.rpc_call("getTransaction", {"hash": tx_hash})
