from .calls import (
    ContractCall,
    DrawCall,
    OpenPositionCall,
    RepayCall,
    UpdatePriceCall,
    build_invocation,
)
from .client import SorobanClient
from .confirmation import wait_for_transaction

__all__ = [
    "ContractCall",
    "DrawCall",
    "OpenPositionCall",
    "RepayCall",
    "SorobanClient",
    "UpdatePriceCall",
    "build_invocation",
    "wait_for_transaction",
]
