"""In-memory stores — thread-safe implementations of every store protocol.

Used by tests and the ``memory`` storage backend. Records are immutable, so
handing them out without copying is safe.
"""
from __future__ import annotations

import dataclasses
import itertools
import logging
import threading

from ..errors import ConcurrentModification, ValidationError
from ..models import (
    AuditEvent,
    IntentStatus,
    LiquidationIntent,
    Policy,
    Position,
    PositionStatus,
    PriceQuote,
)

logger = logging.getLogger(__name__)


class MemoryPositionRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._positions: dict[str, Position] = {}
        # Insertion order breaks ties between positions opened at the same instant
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()

    async def get(self, position_id: str) -> Position | None:
        with self._lock:
            return self._positions.get(position_id)

    async def insert(self, position: Position) -> Position:
        with self._lock:
            if position.position_id in self._positions:
                raise ValidationError(
                    f"Position {position.position_id} already exists",
                    position_id=position.position_id,
                )
            self._positions[position.position_id] = position
            self._sequence[position.position_id] = next(self._counter)
        logger.debug("Inserted position %s", position.position_id)
        return position

    async def update(self, position: Position, expected_version: int) -> Position:
        with self._lock:
            current = self._positions.get(position.position_id)
            if current is None or current.version != expected_version:
                raise ConcurrentModification(position.position_id, expected_version)
            stored = dataclasses.replace(position, version=expected_version + 1)
            self._positions[position.position_id] = stored
        return stored

    async def list(
        self, borrower: str | None = None, status: PositionStatus | None = None
    ) -> list[Position]:
        with self._lock:
            matches = [
                p
                for p in self._positions.values()
                if (borrower is None or p.borrower == borrower)
                and (status is None or p.status == status)
            ]
            matches.sort(
                key=lambda p: (p.opened_at, self._sequence[p.position_id]),
                reverse=True,
            )
        return matches


class MemoryPriceStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._quotes: dict[str, PriceQuote] = {}

    async def record_quote(self, quote: PriceQuote) -> PriceQuote:
        with self._lock:
            self._quotes[quote.quote_id] = quote
        return quote

    async def get_quote(self, quote_id: str) -> PriceQuote | None:
        with self._lock:
            return self._quotes.get(quote_id)

    async def approve_quote(self, quote: PriceQuote) -> PriceQuote:
        with self._lock:
            self._quotes[quote.quote_id] = quote
        return quote

    async def list_quotes(
        self, asset: str | None = None, approved: bool | None = None
    ) -> list[PriceQuote]:
        with self._lock:
            quotes = [
                q
                for q in self._quotes.values()
                if (asset is None or q.asset == asset)
                and (approved is None or q.approved == approved)
            ]
        return sorted(quotes, key=lambda q: q.timestamp, reverse=True)

    async def get_approved_price(self, asset: str) -> PriceQuote | None:
        approved = await self.list_quotes(asset=asset, approved=True)
        return approved[0] if approved else None


class MemoryPolicyStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._policies: dict[str, Policy] = {}

    async def get_policy(self, asset: str) -> Policy | None:
        with self._lock:
            return self._policies.get(asset)

    async def put_policy(self, policy: Policy) -> Policy:
        with self._lock:
            self._policies[policy.asset] = policy
        return policy

    async def list_policies(self) -> list[Policy]:
        with self._lock:
            return sorted(self._policies.values(), key=lambda p: p.asset)


class MemoryIntentStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._intents: dict[str, LiquidationIntent] = {}
        self._next_id = itertools.count(1)

    async def next_intent_id(self) -> str:
        with self._lock:
            return f"LIQ-{next(self._next_id)}"

    async def create(self, intent: LiquidationIntent) -> LiquidationIntent:
        with self._lock:
            if self._pending_for(intent.position_id) is not None:
                raise ValidationError(
                    f"Position {intent.position_id} already has a pending intent",
                    position_id=intent.position_id,
                )
            self._intents[intent.intent_id] = intent
        return intent

    async def get(self, intent_id: str) -> LiquidationIntent | None:
        with self._lock:
            return self._intents.get(intent_id)

    async def update(self, intent: LiquidationIntent) -> LiquidationIntent:
        with self._lock:
            self._intents[intent.intent_id] = intent
        return intent

    async def pending_for(self, position_id: str) -> LiquidationIntent | None:
        with self._lock:
            return self._pending_for(position_id)

    def _pending_for(self, position_id: str) -> LiquidationIntent | None:
        for intent in self._intents.values():
            if intent.position_id == position_id and intent.status == IntentStatus.PENDING:
                return intent
        return None

    async def list(self, status: IntentStatus | None = None) -> list[LiquidationIntent]:
        with self._lock:
            intents = [
                i for i in self._intents.values() if status is None or i.status == status
            ]
        return sorted(intents, key=lambda i: i.created_at, reverse=True)


class MemoryAuditTrail:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[AuditEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def of_type(self, event_type: str) -> list[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]
