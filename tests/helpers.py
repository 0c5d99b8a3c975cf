"""Test helpers shared across the unit and integration suites."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

from lending_core.errors import ConcurrentModification
from lending_core.models import IntentStatus, LiquidationIntent, Position, PositionStatus
from lending_core.services import PriceService
from lending_core.stores import MemoryIntentStore, MemoryPositionRepository

BORROWER = "G" + "A" * 55
OTHER_BORROWER = "G" + "B" * 55


class FixedClock:
    """Deterministic clock; tests move time forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


async def approve_price(
    prices: PriceService, clock: FixedClock, asset: str, price: str
) -> None:
    """Record and approve a quote one second after the previous one."""
    clock.advance(seconds=1)
    quote = await prices.submit(asset, price, "test")
    await prices.approve(quote.quote_id, "admin")


def make_position(clock: FixedClock, **overrides: object) -> Position:
    """An active 1 BTC position with 1000 principal and 50 interest."""
    values: dict[str, object] = dict(
        position_id="pos_test_000000000001",
        borrower=BORROWER,
        collateral_asset="BTC",
        collateral_amount=Decimal("1"),
        vault_id="vault_BTC_1",
        borrowed_asset="USDC",
        principal=Decimal("1000"),
        accrued_interest=Decimal("50"),
        interest_rate=Decimal("7.0"),
        status=PositionStatus.ACTIVE,
        opened_at=clock(),
        last_interest_accrual=clock(),
        updated_at=clock(),
    )
    values.update(overrides)
    return Position(**values)  # type: ignore[arg-type]


class YieldingPositionRepository(MemoryPositionRepository):
    """Hands control back to the event loop on every call.

    Counts lost conditional writes in ``conflicts``.
    """

    def __init__(self) -> None:
        super().__init__()
        self.conflicts = 0

    async def get(self, position_id: str) -> Position | None:
        await asyncio.sleep(0)
        return await super().get(position_id)

    async def insert(self, position: Position) -> Position:
        await asyncio.sleep(0)
        return await super().insert(position)

    async def update(self, position: Position, expected_version: int) -> Position:
        await asyncio.sleep(0)
        try:
            return await super().update(position, expected_version)
        except ConcurrentModification:
            self.conflicts += 1
            raise

    async def list(
        self, borrower: str | None = None, status: PositionStatus | None = None
    ) -> list[Position]:
        await asyncio.sleep(0)
        return await super().list(borrower=borrower, status=status)


class YieldingIntentStore(MemoryIntentStore):
    """Hands control back to the event loop on every call."""

    async def next_intent_id(self) -> str:
        await asyncio.sleep(0)
        return await super().next_intent_id()

    async def create(self, intent: LiquidationIntent) -> LiquidationIntent:
        await asyncio.sleep(0)
        return await super().create(intent)

    async def get(self, intent_id: str) -> LiquidationIntent | None:
        await asyncio.sleep(0)
        return await super().get(intent_id)

    async def update(self, intent: LiquidationIntent) -> LiquidationIntent:
        await asyncio.sleep(0)
        return await super().update(intent)

    async def pending_for(self, position_id: str) -> LiquidationIntent | None:
        await asyncio.sleep(0)
        return await super().pending_for(position_id)

    async def list(self, status: IntentStatus | None = None) -> list[LiquidationIntent]:
        await asyncio.sleep(0)
        return await super().list(status=status)
