"""Data models — all frozen (immutable).

Mutations produce new records via ``dataclasses.replace``; amounts are
``Decimal`` and timestamps are timezone-aware UTC.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .errors import InvalidTransition, ValidationError

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any, name: str = "value") -> Decimal:
    """Coerce user input to a finite Decimal, raising ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be numeric", field=name)
    if isinstance(value, float):
        value = str(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{name} must be numeric", field=name, value=str(value))
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite", field=name, value=str(value))
    return result


class PositionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"


class IntentStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RiskTier(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    WATCH = "watch"
    HEALTHY = "healthy"


_ALLOWED_TRANSITIONS: dict[PositionStatus, frozenset[PositionStatus]] = {
    PositionStatus.PENDING: frozenset({PositionStatus.ACTIVE}),
    PositionStatus.ACTIVE: frozenset(
        {PositionStatus.CLOSED, PositionStatus.LIQUIDATED}
    ),
    PositionStatus.CLOSED: frozenset(),
    PositionStatus.LIQUIDATED: frozenset(),
}


@dataclass(frozen=True)
class RiskTiers:
    """Health-factor boundaries: below ``critical`` liquidates, etc."""

    critical: Decimal = Decimal("1.0")
    warning: Decimal = Decimal("1.2")
    watch: Decimal = Decimal("1.5")

    def __post_init__(self) -> None:
        if not (Decimal(0) < self.critical < self.warning < self.watch):
            raise ValidationError(
                "Risk tiers must be ascending: critical < warning < watch",
                critical=self.critical,
                warning=self.warning,
                watch=self.watch,
            )


@dataclass(frozen=True)
class Position:
    """A borrower's credit line against a single collateral asset."""

    position_id: str
    borrower: str
    collateral_asset: str
    collateral_amount: Decimal
    vault_id: str
    borrowed_asset: str
    principal: Decimal
    accrued_interest: Decimal
    interest_rate: Decimal
    status: PositionStatus
    opened_at: datetime
    last_interest_accrual: datetime
    closed_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0
    tx_hash: str | None = None

    def __post_init__(self) -> None:
        if self.principal < 0:
            raise ValidationError("principal must be >= 0", principal=self.principal)
        if self.accrued_interest < 0:
            raise ValidationError(
                "accrued_interest must be >= 0",
                accrued_interest=self.accrued_interest,
            )
        if self.is_open and self.collateral_amount <= 0:
            raise ValidationError(
                "collateral_amount must be > 0 while the position is open",
                collateral_amount=self.collateral_amount,
            )

    @property
    def is_open(self) -> bool:
        return self.status in (PositionStatus.PENDING, PositionStatus.ACTIVE)

    @property
    def total_debt(self) -> Decimal:
        return self.principal + self.accrued_interest

    def transition(self, target: PositionStatus, at: datetime, **changes: Any) -> Position:
        """Return a copy in ``target`` status, enforcing the lifecycle."""
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(self.position_id, self.status.value, target.value)
        if target in (PositionStatus.CLOSED, PositionStatus.LIQUIDATED):
            changes.setdefault("closed_at", at)
        return dataclasses.replace(self, status=target, updated_at=at, **changes)


@dataclass(frozen=True)
class Policy:
    """Per-collateral-asset risk configuration.

    ``max_ltv_on_draw`` is a fraction (0.8 = 80%); the liquidation bands,
    interest rate and spread are percentages.
    """

    asset: str
    max_ltv_on_draw: Decimal
    liquidation_band_1: Decimal = Decimal("85")
    liquidation_band_2: Decimal = Decimal("90")
    liquidation_band_3: Decimal = Decimal("95")
    base_interest_rate: Decimal = Decimal("5.0")
    spread: Decimal = Decimal("2.0")
    policy_version: int = 1
    circuit_breaker: bool = False
    max_slippage_bps: int = 100
    risk_tiers: RiskTiers | None = None

    @property
    def max_ltv_percent(self) -> Decimal:
        return self.max_ltv_on_draw * 100

    @property
    def liquidation_threshold(self) -> Decimal:
        """Fraction at which the health factor reaches 1.0 (band 3)."""
        return self.liquidation_band_3 / 100

    @property
    def interest_rate(self) -> Decimal:
        return self.base_interest_rate + self.spread

    def validate(self) -> None:
        if not self.asset:
            raise ValidationError("Policy asset is required")
        if not (Decimal(0) < self.max_ltv_on_draw <= Decimal(1)):
            raise ValidationError(
                "max_ltv_on_draw must be a fraction in (0, 1]",
                max_ltv_on_draw=self.max_ltv_on_draw,
            )
        bands = (self.liquidation_band_1, self.liquidation_band_2, self.liquidation_band_3)
        if not (bands[0] < bands[1] < bands[2] <= Decimal(100)):
            raise ValidationError(
                "Liquidation bands must be ascending and <= 100",
                liquidation_band_1=bands[0],
                liquidation_band_2=bands[1],
                liquidation_band_3=bands[2],
            )
        if self.max_ltv_percent >= self.liquidation_band_1:
            raise ValidationError(
                "max_ltv_on_draw must leave headroom below liquidation_band_1",
                max_ltv=self.max_ltv_percent,
                liquidation_band_1=self.liquidation_band_1,
            )
        if self.base_interest_rate < 0 or self.spread < 0:
            raise ValidationError("Interest rate and spread must be >= 0")
        if not 0 <= self.max_slippage_bps < 10000:
            raise ValidationError(
                "max_slippage_bps must be in [0, 10000)",
                max_slippage_bps=self.max_slippage_bps,
            )


@dataclass(frozen=True)
class PriceQuote:
    """One oracle observation. Only approved quotes gate mutations."""

    quote_id: str
    asset: str
    price: Decimal
    source: str
    timestamp: datetime
    approved: bool = False
    approved_by: str | None = None
    approved_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValidationError("price must be > 0", asset=self.asset, price=self.price)


@dataclass(frozen=True)
class LiquidationIntent:
    intent_id: str
    position_id: str
    amount_to_liquidate: Decimal
    min_out: Decimal
    health_factor: Decimal
    deadline: datetime
    created_at: datetime
    status: IntentStatus = IntentStatus.PENDING
    executed_at: datetime | None = None


@dataclass(frozen=True)
class AuditEvent:
    event_type: str
    entity_type: str
    entity_id: str
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    user_address: str | None = None


def serialize(value: Any) -> Any:
    """Convert models (and containers of them) to JSON-friendly values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value
