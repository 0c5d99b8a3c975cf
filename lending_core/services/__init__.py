"""Application services."""
from .confirmation import ConfirmationService
from .liquidation_evaluator import EvaluationReport, LiquidationEvaluator, RiskAssessment
from .monitor import Monitor
from .policy_admin import PolicyAdmin
from .position_ledger import PositionLedger
from .price_service import PriceService

__all__ = [
    "ConfirmationService",
    "EvaluationReport",
    "LiquidationEvaluator",
    "Monitor",
    "PolicyAdmin",
    "PositionLedger",
    "PriceService",
    "RiskAssessment",
]
