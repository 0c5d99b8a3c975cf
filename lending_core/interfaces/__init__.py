"""Protocol interfaces for the lending core's collaborators."""
from .audit_trail import AuditTrail
from .intent_store import IntentStore
from .notifier import Notifier
from .policy_store import PolicyStore
from .position_repository import PositionRepository
from .price_oracle import PriceFeed, PriceOracle, PriceQuoteStore

__all__ = [
    "AuditTrail",
    "IntentStore",
    "Notifier",
    "PolicyStore",
    "PositionRepository",
    "PriceFeed",
    "PriceOracle",
    "PriceQuoteStore",
]
