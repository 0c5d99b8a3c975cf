"""Pure risk math for lending positions — no I/O, no state."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..models import CENT, RiskTier, RiskTiers

# Returned for debt-free positions, which cannot be at risk.
SAFE_HEALTH_FACTOR = Decimal("999")

DAYS_PER_YEAR = Decimal(365)


def loan_to_value(borrowed: Decimal, collateral_value: Decimal) -> Decimal:
    """Loan-to-Value ratio as a percentage (0 when there is no collateral)."""
    if collateral_value <= 0:
        return Decimal(0)
    return borrowed / collateral_value * 100


def health_factor(
    collateral_value: Decimal,
    borrowed: Decimal,
    liquidation_threshold: Decimal,
) -> Decimal:
    """Calculate health factor.

    health_factor = (collateral * liquidation_threshold) / borrowed

    ``liquidation_threshold`` is a fraction (0.8 = 80%). Values below 1.0
    mean the position can be liquidated.
    """
    if borrowed <= 0:
        return SAFE_HEALTH_FACTOR
    return collateral_value * liquidation_threshold / borrowed


def liquidation_price(
    borrowed: Decimal,
    collateral_amount: Decimal,
    liquidation_threshold: Decimal,
) -> Decimal:
    """Collateral price at which the health factor reaches 1.0."""
    if collateral_amount <= 0 or liquidation_threshold <= 0:
        return Decimal(0)
    return borrowed / (collateral_amount * liquidation_threshold)


def accrued_interest(
    principal: Decimal, annual_rate_percent: Decimal, days_elapsed: int
) -> Decimal:
    """Simple (non-compounding) interest, rounded to cents.

    ``days_elapsed`` is floored at 1 so same-day queries still accrue.
    """
    days = max(1, int(days_elapsed))
    interest = principal * annual_rate_percent * days / (100 * DAYS_PER_YEAR)
    return interest.quantize(CENT, rounding=ROUND_HALF_UP)


def max_borrowable(collateral_value: Decimal, max_ltv_percent: Decimal) -> Decimal:
    return collateral_value * max_ltv_percent / 100


def classify_health(factor: Decimal, tiers: RiskTiers) -> RiskTier:
    """Map a health factor onto its risk tier (lower bounds inclusive)."""
    if factor < tiers.critical:
        return RiskTier.CRITICAL
    if factor < tiers.warning:
        return RiskTier.WARNING
    if factor < tiers.watch:
        return RiskTier.WATCH
    return RiskTier.HEALTHY


@dataclass(frozen=True)
class RiskSnapshot:
    collateral_value: Decimal
    debt: Decimal
    ltv: Decimal
    health_factor: Decimal
    liquidation_price: Decimal


def snapshot(
    collateral_amount: Decimal,
    price: Decimal,
    debt: Decimal,
    liquidation_threshold: Decimal,
) -> RiskSnapshot:
    """Evaluate every metric for one position at one price."""
    collateral_value = collateral_amount * price
    return RiskSnapshot(
        collateral_value=collateral_value,
        debt=debt,
        ltv=loan_to_value(debt, collateral_value),
        health_factor=health_factor(collateral_value, debt, liquidation_threshold),
        liquidation_price=liquidation_price(debt, collateral_amount, liquidation_threshold),
    )
