"""Activate pending positions once their on-chain transaction lands."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from ..chains.soroban.client import SorobanClient
from ..chains.soroban.confirmation import wait_for_transaction
from ..config import ConfirmationConfig
from ..models import Position
from .position_ledger import PositionLedger

logger = logging.getLogger(__name__)


class ConfirmationService:
    def __init__(
        self,
        ledger: PositionLedger,
        client: SorobanClient,
        config: ConfirmationConfig,
        waiter: Callable[..., Awaitable[dict[str, Any]]] = wait_for_transaction,
    ) -> None:
        self._ledger = ledger
        self._client = client
        self._config = config
        self._waiter = waiter

    async def confirm_when_landed(self, position_id: str, tx_hash: str) -> Position:
        """Wait for ``tx_hash`` to succeed, then confirm the position.

        The position is checked first so an unknown id fails before any
        polling. TransactionFailed and TransactionTimeout propagate and
        leave the position ``pending``.
        """
        await self._ledger.get(position_id)
        logger.info("Waiting for %s to confirm %s", tx_hash, position_id)
        result = await self._waiter(self._client, tx_hash, self._config)
        logger.debug("Transaction %s landed in ledger %s", tx_hash, result.get("ledger"))
        return await self._ledger.confirm(position_id, tx_hash=tx_hash)
