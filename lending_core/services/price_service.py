"""Price quote ingestion and approval."""
from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import datetime
from typing import Any, Callable

from ..errors import NotFound, ValidationError
from ..interfaces.audit_trail import AuditTrail
from ..interfaces.price_oracle import PriceFeed, PriceQuoteStore
from ..models import PriceQuote, to_decimal, utcnow
from .audit import record_audit
from .position_ledger import normalize_symbol

logger = logging.getLogger(__name__)


class PriceService:
    """Record live quotes as unapproved and approve them for risk use.

    Quotes from the live feed never gate mutations directly; an operator
    approval is required first.
    """

    def __init__(
        self,
        store: PriceQuoteStore,
        feed: PriceFeed | None,
        audit: AuditTrail,
        source: str = "pyth",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._feed = feed
        self._audit = audit
        self._source = source
        self._clock = clock

    async def submit(self, asset: str, price: Any, source: str) -> PriceQuote:
        """Store one unapproved quote."""
        if not source:
            raise ValidationError("source is required")
        now = self._clock()
        quote = PriceQuote(
            quote_id=uuid.uuid4().hex,
            asset=normalize_symbol(asset),
            price=to_decimal(price, "price"),
            source=source,
            timestamp=now,
        )
        await self._store.record_quote(quote)
        await record_audit(
            self._audit, "price_ingested", "price_feed", quote.quote_id, now,
            {"asset": quote.asset, "price": quote.price, "source": source},
        )
        return quote

    async def ingest(self, symbols: list[str] | None = None) -> list[PriceQuote]:
        """Pull current prices from the live feed into the quote store."""
        if self._feed is None:
            raise ValidationError("No live price feed configured")

        prices = await self._feed.fetch_prices(symbols)
        if not prices:
            logger.warning("Live price feed returned no prices")
            return []

        quotes: list[PriceQuote] = []
        for asset, price in sorted(prices.items()):
            if price <= 0:
                logger.warning("Ignoring non-positive price for %s: %s", asset, price)
                continue
            quotes.append(await self.submit(asset, price, self._source))

        logger.info("Ingested %d unapproved quotes", len(quotes))
        return quotes

    async def approve(self, quote_id: str, approved_by: str) -> PriceQuote:
        quote = await self._store.get_quote(quote_id)
        if quote is None:
            raise NotFound("price quote", quote_id)
        if quote.approved:
            logger.info("Quote %s already approved", quote_id)
            return quote

        now = self._clock()
        approved = await self._store.approve_quote(
            dataclasses.replace(quote, approved=True, approved_by=approved_by, approved_at=now)
        )
        logger.info("Approved %s price %s (%s)", quote.asset, quote.price, quote_id)
        await record_audit(
            self._audit, "price_approved", "price_feed", quote_id, now,
            {"asset": quote.asset, "price": quote.price},
            user_address=approved_by,
        )
        return approved

    async def latest(self, asset: str) -> PriceQuote:
        asset = normalize_symbol(asset)
        quote = await self._store.get_approved_price(asset)
        if quote is None:
            raise NotFound("approved price", asset)
        return quote

    async def list_quotes(
        self, asset: str | None = None, approved: bool | None = None
    ) -> list[PriceQuote]:
        return await self._store.list_quotes(
            asset=normalize_symbol(asset) if asset else None, approved=approved
        )
