"""Price oracle protocols — approved quotes for risk gating, live feeds for ingestion."""
from __future__ import annotations

from typing import Protocol

from ..models import PriceQuote


class PriceOracle(Protocol):
    """Read side used by the ledger and the liquidation evaluator."""

    async def get_approved_price(self, asset: str) -> PriceQuote | None: ...


class PriceQuoteStore(PriceOracle, Protocol):
    """Full quote lifecycle: record unapproved quotes, approve them."""

    async def record_quote(self, quote: PriceQuote) -> PriceQuote: ...

    async def get_quote(self, quote_id: str) -> PriceQuote | None: ...

    async def approve_quote(self, quote: PriceQuote) -> PriceQuote: ...

    async def list_quotes(
        self, asset: str | None = None, approved: bool | None = None
    ) -> list[PriceQuote]: ...


class PriceFeed(Protocol):
    """Live market price source (e.g. Pyth Hermes)."""

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]: ...
