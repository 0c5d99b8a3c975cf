"""Position lifecycle — open, confirm, draw, repay, accrue, liquidate."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
import uuid
import weakref
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable

from ..config import LedgerConfig
from ..errors import (
    ConcurrentModification,
    InsufficientDebt,
    InvalidTransition,
    NotFound,
    PolicyViolation,
    ValidationError,
)
from ..interfaces.audit_trail import AuditTrail
from ..interfaces.policy_store import PolicyStore
from ..interfaces.position_repository import PositionRepository
from ..interfaces.price_oracle import PriceOracle
from ..models import Policy, Position, PositionStatus, to_decimal, utcnow
from ..risk import calculator
from .audit import record_audit

logger = logging.getLogger(__name__)

Change = Callable[[Position], Awaitable[Position]]


def normalize_symbol(symbol: str, name: str = "asset") -> str:
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise ValidationError(f"{name} is required", field=name)
    return cleaned


def _positive(value: Any, name: str) -> Decimal:
    amount = to_decimal(value, name)
    if amount <= 0:
        raise ValidationError(f"{name} must be greater than zero", field=name, value=amount)
    return amount


class PositionLedger:
    """Owns every position and enforces the lifecycle state machine.

    ``pending -> active -> closed | liquidated``; nothing leaves a terminal
    state. Each mutation runs under a per-position lock and is persisted
    with a single version-checked write, so it is either fully applied or
    not at all. Audit entries follow the write on a best-effort basis.
    """

    MAX_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        positions: PositionRepository,
        prices: PriceOracle,
        policies: PolicyStore,
        audit: AuditTrail,
        config: LedgerConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._positions = positions
        self._prices = prices
        self._policies = policies
        self._audit = audit
        self._config = config
        self._clock = clock
        self._borrower_re = re.compile(config.borrower_pattern)
        # Entries vanish once no coroutine holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def position_lock(self, position_id: str) -> asyncio.Lock:
        """Lock serializing read-modify-write sequences on one position."""
        lock = self._locks.get(position_id)
        if lock is None:
            lock = self._locks[position_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, position_id: str) -> Position:
        position = await self._positions.get(position_id)
        if position is None:
            raise NotFound("position", position_id)
        return position

    async def query(
        self, borrower: str | None = None, status: PositionStatus | str | None = None
    ) -> list[Position]:
        """Matching positions, most recently opened first."""
        if status is not None and not isinstance(status, PositionStatus):
            try:
                status = PositionStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown position status: {status}", status=status)
        return await self._positions.list(borrower=borrower, status=status)

    # ------------------------------------------------------------------
    # Policy helpers
    # ------------------------------------------------------------------

    def _max_ltv(self, policy: Policy | None) -> Decimal:
        return policy.max_ltv_percent if policy else self._config.default_max_ltv

    @staticmethod
    def _check_circuit_breaker(policy: Policy | None, asset: str) -> None:
        if policy is not None and policy.circuit_breaker:
            raise PolicyViolation(
                f"Circuit breaker active for {asset}: new draws are halted",
                metric="circuit_breaker",
            )

    def _check_ltv(self, ltv: Decimal, policy: Policy | None) -> None:
        limit = self._max_ltv(policy)
        if ltv > limit:
            raise PolicyViolation(
                f"LTV {ltv:.2f}% exceeds maximum {limit}%",
                metric="ltv",
                value=ltv,
                limit=limit,
            )

    async def _opening_price(self, asset: str) -> tuple[Decimal, str]:
        quote = await self._prices.get_approved_price(asset)
        if quote is not None:
            return quote.price, quote.source

        default = self._config.default_prices.get(asset)
        if self._config.missing_price == "default" and default is not None:
            logger.warning(
                "No approved price for %s, opening against default price %s",
                asset, default,
            )
            return default, "default"
        raise NotFound("approved price", asset)

    async def _current_price(self, asset: str) -> Decimal:
        quote = await self._prices.get_approved_price(asset)
        if quote is None:
            raise NotFound("approved price", asset)
        return quote.price

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _mutate(
        self, position_id: str, action: str, change: Change, lock_held: bool = False
    ) -> Position:
        """Apply ``change`` under the position lock with a conditional write.

        Returns the stored position; when ``change`` hands back the record it
        was given, nothing is written. Pass ``lock_held`` when the caller
        already owns ``position_lock(position_id)``.
        """
        if lock_held:
            return await self._write_with_retry(position_id, action, change)
        async with self.position_lock(position_id):
            return await self._write_with_retry(position_id, action, change)

    async def _write_with_retry(
        self, position_id: str, action: str, change: Change
    ) -> Position:
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            current = await self.get(position_id)
            updated = await change(current)
            if updated is current:
                return current
            try:
                return await self._positions.update(
                    updated, expected_version=current.version
                )
            except ConcurrentModification:
                if attempt == self.MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning(
                    "Write conflict on %s during %s (attempt %d/%d)",
                    position_id, action, attempt, self.MAX_WRITE_ATTEMPTS,
                )
        raise ConcurrentModification(position_id, -1)

    async def open(
        self,
        borrower: str,
        collateral_asset: str,
        collateral_amount: Any,
        borrow_asset: str,
        borrow_amount: Any,
        vault_id: str | None = None,
    ) -> Position:
        """Open a ``pending`` position after the LTV and policy checks."""
        collateral_amount = _positive(collateral_amount, "collateral_amount")
        borrow_amount = _positive(borrow_amount, "borrow_amount")
        if not borrower or not self._borrower_re.match(borrower):
            raise ValidationError("Invalid borrower address", borrower=borrower)
        collateral_asset = normalize_symbol(collateral_asset, "collateral_asset")
        borrow_asset = normalize_symbol(borrow_asset, "borrow_asset")

        price, price_source = await self._opening_price(collateral_asset)
        policy = await self._policies.get_policy(collateral_asset)
        self._check_circuit_breaker(policy, collateral_asset)

        collateral_value = collateral_amount * price
        ltv = calculator.loan_to_value(borrow_amount, collateral_value)
        self._check_ltv(ltv, policy)

        now = self._clock()
        position = Position(
            position_id=f"pos_{borrower[:8]}_{uuid.uuid4().hex[:12]}",
            borrower=borrower,
            collateral_asset=collateral_asset,
            collateral_amount=collateral_amount,
            vault_id=vault_id or f"vault_{collateral_asset}_{int(now.timestamp() * 1000)}",
            borrowed_asset=borrow_asset,
            principal=borrow_amount,
            accrued_interest=Decimal(0),
            interest_rate=policy.interest_rate if policy else self._config.default_interest_rate,
            status=PositionStatus.PENDING,
            opened_at=now,
            last_interest_accrual=now,
            updated_at=now,
        )
        await self._positions.insert(position)
        logger.info(
            "Opened %s: %s %s against %s %s (LTV %.2f%%)",
            position.position_id, borrow_amount, borrow_asset,
            collateral_amount, collateral_asset, ltv,
        )

        await record_audit(
            self._audit, "loan_created", "position", position.position_id, now,
            {
                "collateral_asset": collateral_asset,
                "collateral_amount": collateral_amount,
                "borrow_amount": borrow_amount,
                "ltv": ltv,
                "price": price,
                "price_source": price_source,
                "status": position.status,
            },
            user_address=borrower,
        )
        return position

    async def confirm(self, position_id: str, tx_hash: str | None = None) -> Position:
        """Activate a pending position once the ledger transaction landed."""

        async def change(p: Position) -> Position:
            if p.status != PositionStatus.PENDING:
                raise InvalidTransition(p.position_id, p.status.value, "confirm")
            return p.transition(PositionStatus.ACTIVE, self._clock(), tx_hash=tx_hash)

        position = await self._mutate(position_id, "confirm", change)
        logger.info("Confirmed %s (tx %s)", position_id, tx_hash)
        await record_audit(
            self._audit, "transaction_confirmed", "position", position_id,
            position.updated_at or self._clock(),
            {"tx_hash": tx_hash, "status": position.status},
        )
        return position

    async def draw(self, position_id: str, amount: Any) -> Position:
        """Increase the principal of an active position within the max LTV."""
        amount = _positive(amount, "amount")
        new_ltv = Decimal(0)

        async def change(p: Position) -> Position:
            nonlocal new_ltv
            if p.status != PositionStatus.ACTIVE:
                raise InvalidTransition(p.position_id, p.status.value, "draw")
            price = await self._current_price(p.collateral_asset)
            policy = await self._policies.get_policy(p.collateral_asset)
            self._check_circuit_breaker(policy, p.collateral_asset)

            new_principal = p.principal + amount
            new_ltv = calculator.loan_to_value(new_principal, p.collateral_amount * price)
            self._check_ltv(new_ltv, policy)
            return dataclasses.replace(p, principal=new_principal, updated_at=self._clock())

        position = await self._mutate(position_id, "draw", change)
        logger.info("Draw of %s on %s, LTV now %.2f%%", amount, position_id, new_ltv)
        await record_audit(
            self._audit, "draw", "position", position_id,
            position.updated_at or self._clock(),
            {"amount": amount, "new_principal": position.principal, "new_ltv": new_ltv},
            user_address=position.borrower,
        )
        return position

    async def repay(
        self, position_id: str, amount: Any, repayer: str | None = None
    ) -> Position:
        """Pay down debt: accrued interest first, then principal.

        The position closes when its principal reaches zero.
        """
        amount = _positive(amount, "amount")

        async def change(p: Position) -> Position:
            if p.status != PositionStatus.ACTIVE:
                raise InvalidTransition(p.position_id, p.status.value, "repay")
            if amount > p.total_debt:
                raise InsufficientDebt(p.position_id, amount, p.total_debt)

            interest_paid = min(amount, p.accrued_interest)
            new_interest = p.accrued_interest - interest_paid
            new_principal = max(Decimal(0), p.principal - (amount - interest_paid))
            now = self._clock()
            if new_principal <= 0:
                return p.transition(
                    PositionStatus.CLOSED, now,
                    principal=Decimal(0), accrued_interest=new_interest,
                )
            return dataclasses.replace(
                p, principal=new_principal, accrued_interest=new_interest, updated_at=now
            )

        position = await self._mutate(position_id, "repay", change)
        logger.info(
            "Repaid %s on %s: principal %s, interest %s, status %s",
            amount, position_id, position.principal,
            position.accrued_interest, position.status.value,
        )
        await record_audit(
            self._audit, "loan_repayment", "position", position_id,
            position.updated_at or self._clock(),
            {
                "amount": amount,
                "new_principal": position.principal,
                "new_interest": position.accrued_interest,
                "status": position.status,
            },
            user_address=repayer or position.borrower,
        )
        return position

    async def accrue_interest(self, position_id: str) -> Position:
        """Add simple interest for the whole days since the last accrual."""
        added = Decimal(0)

        async def change(p: Position) -> Position:
            nonlocal added
            if p.status != PositionStatus.ACTIVE:
                raise InvalidTransition(p.position_id, p.status.value, "accrue interest")
            now = self._clock()
            days = (now - p.last_interest_accrual).days
            if days < 1:
                return p
            added = calculator.accrued_interest(p.principal, p.interest_rate, days)
            return dataclasses.replace(
                p,
                accrued_interest=p.accrued_interest + added,
                last_interest_accrual=p.last_interest_accrual + timedelta(days=days),
                updated_at=now,
            )

        position = await self._mutate(position_id, "accrue", change)
        if added:
            logger.info("Accrued %s interest on %s", added, position_id)
            await record_audit(
                self._audit, "interest_accrued", "position", position_id,
                position.updated_at or self._clock(),
                {"interest": added, "accrued_interest": position.accrued_interest},
            )
        return position

    async def mark_liquidated(
        self, position_id: str, intent_id: str, lock_held: bool = False
    ) -> Position:
        """Terminal transition once a liquidation intent executed downstream."""

        async def change(p: Position) -> Position:
            if p.status != PositionStatus.ACTIVE:
                raise InvalidTransition(p.position_id, p.status.value, "liquidate")
            return p.transition(PositionStatus.LIQUIDATED, self._clock())

        position = await self._mutate(
            position_id, "liquidate", change, lock_held=lock_held
        )
        logger.warning("Position %s liquidated via %s", position_id, intent_id)
        await record_audit(
            self._audit, "position_liquidated", "position", position_id,
            position.updated_at or self._clock(),
            {"intent_id": intent_id, "status": position.status},
        )
        return position
