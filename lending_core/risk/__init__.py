"""Risk math."""
from .calculator import (
    SAFE_HEALTH_FACTOR,
    RiskSnapshot,
    accrued_interest,
    classify_health,
    health_factor,
    liquidation_price,
    loan_to_value,
    max_borrowable,
    snapshot,
)

__all__ = [
    "SAFE_HEALTH_FACTOR",
    "RiskSnapshot",
    "accrued_interest",
    "classify_health",
    "health_factor",
    "liquidation_price",
    "loan_to_value",
    "max_borrowable",
    "snapshot",
]
