"""Liquidation intent store protocol."""
from __future__ import annotations

from typing import Protocol

from ..models import IntentStatus, LiquidationIntent


class IntentStore(Protocol):
    async def next_intent_id(self) -> str: ...

    async def create(self, intent: LiquidationIntent) -> LiquidationIntent: ...

    async def get(self, intent_id: str) -> LiquidationIntent | None: ...

    async def update(self, intent: LiquidationIntent) -> LiquidationIntent: ...

    async def pending_for(self, position_id: str) -> LiquidationIntent | None: ...

    async def list(self, status: IntentStatus | None = None) -> list[LiquidationIntent]: ...
