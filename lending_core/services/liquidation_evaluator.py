"""Liquidation sweep — classify active positions and propose liquidations."""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from typing import Any, Callable, Iterable

from ..config import LiquidationConfig
from ..errors import InvalidTransition, NotFound, PolicyViolation
from ..interfaces.audit_trail import AuditTrail
from ..interfaces.intent_store import IntentStore
from ..interfaces.policy_store import PolicyStore
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    CENT,
    IntentStatus,
    LiquidationIntent,
    Policy,
    Position,
    PositionStatus,
    RiskTier,
    to_decimal,
    utcnow,
)
from ..risk import calculator
from .audit import record_audit
from .position_ledger import PositionLedger

logger = logging.getLogger(__name__)

COLLATERAL_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True)
class RiskAssessment:
    position_id: str
    borrower: str
    collateral_asset: str
    tier: RiskTier
    health_factor: Decimal
    ltv: Decimal
    price: Decimal
    collateral_value: Decimal
    debt: Decimal
    liquidation_price: Decimal
    intent_id: str | None = None


@dataclass(frozen=True)
class EvaluationReport:
    assessments: tuple[RiskAssessment, ...] = ()
    created_intents: tuple[LiquidationIntent, ...] = ()
    # Positions left unclassified because no approved price was available
    skipped: tuple[str, ...] = ()

    def by_tier(self, tier: RiskTier) -> list[RiskAssessment]:
        return [a for a in self.assessments if a.tier == tier]


class LiquidationEvaluator:
    """Tiered health-factor classification over the ledger's active set.

    critical (< 1.0) proposes a liquidation intent; warning (< 1.2) and
    watch (< 1.5) are informational; everything else is healthy. The
    evaluator never liquidates a position itself: an intent must be
    executed downstream (``execute_intent``) before the ledger marks the
    position ``liquidated``.
    """

    def __init__(
        self,
        ledger: PositionLedger,
        prices: PriceOracle,
        policies: PolicyStore,
        intents: IntentStore,
        audit: AuditTrail,
        config: LiquidationConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._prices = prices
        self._policies = policies
        self._intents = intents
        self._audit = audit
        self._config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _threshold(self, policy: Policy | None) -> Decimal:
        if policy is not None:
            return policy.liquidation_threshold
        return self._config.default_liquidation_threshold / 100

    def _tiers(self, policy: Policy | None):
        if policy is not None and policy.risk_tiers is not None:
            return policy.risk_tiers
        return self._config.tiers

    def _classify(
        self, position: Position, price: Decimal, policy: Policy | None
    ) -> RiskAssessment:
        snap = calculator.snapshot(
            position.collateral_amount, price, position.total_debt, self._threshold(policy)
        )
        return RiskAssessment(
            position_id=position.position_id,
            borrower=position.borrower,
            collateral_asset=position.collateral_asset,
            tier=calculator.classify_health(snap.health_factor, self._tiers(policy)),
            health_factor=snap.health_factor,
            ltv=snap.ltv,
            price=price,
            collateral_value=snap.collateral_value,
            debt=snap.debt,
            liquidation_price=snap.liquidation_price,
        )

    async def assess(self, position_id: str) -> RiskAssessment | None:
        """Read-only assessment of one position (None without a price)."""
        position = await self._ledger.get(position_id)
        quote = await self._prices.get_approved_price(position.collateral_asset)
        if quote is None:
            return None
        policy = await self._policies.get_policy(position.collateral_asset)
        return self._classify(position, quote.price, policy)

    async def evaluate(self, position_ids: Iterable[str] | None = None) -> EvaluationReport:
        """Sweep active positions (or the given subset) once."""
        if position_ids is None:
            active = await self._ledger.query(status=PositionStatus.ACTIVE)
            candidates = [p.position_id for p in active]
        else:
            candidates = list(position_ids)

        assessments: list[RiskAssessment] = []
        created: list[LiquidationIntent] = []
        skipped: list[str] = []

        for position_id in candidates:
            # Same lock as the ledger's mutations: a repay cannot interleave
            # between the status check and intent creation.
            async with self._ledger.position_lock(position_id):
                try:
                    position = await self._ledger.get(position_id)
                except NotFound:
                    logger.warning("Skipping unknown position %s", position_id)
                    continue
                if position.status != PositionStatus.ACTIVE:
                    logger.debug(
                        "Skipping %s: status is %s", position_id, position.status.value
                    )
                    continue

                quote = await self._prices.get_approved_price(position.collateral_asset)
                if quote is None:
                    logger.warning(
                        "No approved price for %s, not evaluating %s",
                        position.collateral_asset, position_id,
                    )
                    skipped.append(position_id)
                    continue

                policy = await self._policies.get_policy(position.collateral_asset)
                assessment = self._classify(position, quote.price, policy)
                now = self._clock()
                await self._expire_overdue(position_id, now)

                if assessment.tier == RiskTier.CRITICAL:
                    intent, is_new = await self._ensure_intent(
                        position, assessment, policy, now
                    )
                    assessment = dataclasses.replace(assessment, intent_id=intent.intent_id)
                    if is_new:
                        created.append(intent)

            self._log_assessment(assessment)
            assessments.append(assessment)

        logger.info(
            "Evaluated %d positions: %d critical, %d warning, %d watch, "
            "%d new intents, %d skipped",
            len(assessments),
            sum(1 for a in assessments if a.tier == RiskTier.CRITICAL),
            sum(1 for a in assessments if a.tier == RiskTier.WARNING),
            sum(1 for a in assessments if a.tier == RiskTier.WATCH),
            len(created),
            len(skipped),
        )
        return EvaluationReport(
            assessments=tuple(assessments),
            created_intents=tuple(created),
            skipped=tuple(skipped),
        )

    @staticmethod
    def _log_assessment(a: RiskAssessment) -> None:
        level = logging.INFO if a.tier == RiskTier.HEALTHY else logging.WARNING
        logger.log(
            level,
            "%s %s: HF %.4f, LTV %.2f%%, %s @ %s",
            a.tier.value.upper(), a.position_id, a.health_factor, a.ltv,
            a.collateral_asset, a.price,
        )

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def _expire_overdue(self, position_id: str, now: datetime) -> None:
        pending = await self._intents.pending_for(position_id)
        if pending is None or pending.deadline >= now:
            return
        await self._intents.update(
            dataclasses.replace(pending, status=IntentStatus.EXPIRED)
        )
        logger.info("Intent %s for %s expired", pending.intent_id, position_id)
        await record_audit(
            self._audit, "liquidation_intent_expired", "liquidation_intent",
            pending.intent_id, now, {"position_id": position_id},
        )

    async def _ensure_intent(
        self,
        position: Position,
        assessment: RiskAssessment,
        policy: Policy | None,
        now: datetime,
    ) -> tuple[LiquidationIntent, bool]:
        existing = await self._intents.pending_for(position.position_id)
        if existing is not None:
            return existing, False

        slippage_bps = (
            policy.max_slippage_bps if policy else self._config.default_max_slippage_bps
        )
        to_cover = (position.total_debt / assessment.price).quantize(
            COLLATERAL_QUANTUM, rounding=ROUND_UP
        )
        amount = min(position.collateral_amount, to_cover)
        min_out = (
            amount * assessment.price * (1 - Decimal(slippage_bps) / 10000)
        ).quantize(CENT, rounding=ROUND_DOWN)

        intent = LiquidationIntent(
            intent_id=await self._intents.next_intent_id(),
            position_id=position.position_id,
            amount_to_liquidate=amount,
            min_out=min_out,
            health_factor=assessment.health_factor,
            deadline=now + timedelta(seconds=self._config.intent_deadline_seconds),
            created_at=now,
        )
        await self._intents.create(intent)
        logger.warning(
            "Liquidation intent %s created for %s: sell %s %s, min out %s",
            intent.intent_id, position.position_id, amount,
            position.collateral_asset, min_out,
        )
        await record_audit(
            self._audit, "liquidation_intent_created", "liquidation_intent",
            intent.intent_id, now,
            {
                "position_id": position.position_id,
                "amount_to_liquidate": amount,
                "min_out": min_out,
                "health_factor": assessment.health_factor,
                "deadline": intent.deadline,
            },
        )
        return intent, True

    async def _require_pending(self, intent_id: str, action: str) -> LiquidationIntent:
        intent = await self._intents.get(intent_id)
        if intent is None:
            raise NotFound("liquidation intent", intent_id)
        if intent.status != IntentStatus.PENDING:
            raise InvalidTransition(intent_id, intent.status.value, action)
        return intent

    async def execute_intent(self, intent_id: str, amount_received: Any) -> LiquidationIntent:
        """Record downstream execution and liquidate the position."""
        received = to_decimal(amount_received, "amount_received")
        intent = await self._require_pending(intent_id, "execute")
        # Intent transitions share the position lock with sweeps and ledger writes
        async with self._ledger.position_lock(intent.position_id):
            intent = await self._require_pending(intent_id, "execute")
            now = self._clock()

            if now > intent.deadline:
                await self._intents.update(
                    dataclasses.replace(intent, status=IntentStatus.EXPIRED)
                )
                await record_audit(
                    self._audit, "liquidation_intent_expired", "liquidation_intent",
                    intent_id, now, {"position_id": intent.position_id},
                )
                raise InvalidTransition(intent_id, IntentStatus.EXPIRED.value, "execute")

            if received < intent.min_out:
                raise PolicyViolation(
                    f"Liquidation output {received} below minimum {intent.min_out}",
                    metric="min_out",
                    value=received,
                    limit=intent.min_out,
                )

            try:
                await self._ledger.mark_liquidated(
                    intent.position_id, intent_id, lock_held=True
                )
            except InvalidTransition:
                # Position left ``active`` (e.g. repaid) after the intent was proposed
                await self._set_status(intent, IntentStatus.CANCELLED, now)
                raise

            return await self._set_status(
                intent, IntentStatus.EXECUTED, now,
                executed_at=now, amount_received=received,
            )

    async def cancel_intent(self, intent_id: str) -> LiquidationIntent:
        intent = await self._require_pending(intent_id, "cancel")
        async with self._ledger.position_lock(intent.position_id):
            intent = await self._require_pending(intent_id, "cancel")
            return await self._set_status(intent, IntentStatus.CANCELLED, self._clock())

    async def _set_status(
        self,
        intent: LiquidationIntent,
        status: IntentStatus,
        now: datetime,
        executed_at: datetime | None = None,
        **details: Any,
    ) -> LiquidationIntent:
        updated = dataclasses.replace(intent, status=status, executed_at=executed_at)
        await self._intents.update(updated)
        logger.info("Intent %s -> %s", intent.intent_id, status.value)
        await record_audit(
            self._audit, f"liquidation_intent_{status.value}", "liquidation_intent",
            intent.intent_id, now, {"position_id": intent.position_id, **details},
        )
        return updated

    async def list_intents(
        self, status: IntentStatus | None = None
    ) -> list[LiquidationIntent]:
        return await self._intents.list(status=status)
