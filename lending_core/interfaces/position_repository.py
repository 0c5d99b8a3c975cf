"""Position repository protocol — persistence for the ledger."""
from __future__ import annotations

from typing import Protocol

from ..models import Position, PositionStatus


class PositionRepository(Protocol):
    """Storage for positions with optimistic concurrency.

    ``update`` must raise ``ConcurrentModification`` when the stored version
    differs from ``expected_version``, and store the record with its
    version incremented.
    """

    async def get(self, position_id: str) -> Position | None: ...

    async def insert(self, position: Position) -> Position: ...

    async def update(self, position: Position, expected_version: int) -> Position: ...

    async def list(
        self, borrower: str | None = None, status: PositionStatus | None = None
    ) -> list[Position]: ...
