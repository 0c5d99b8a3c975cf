"""Store implementations: in-process and Supabase."""
from .memory import (
    MemoryAuditTrail,
    MemoryIntentStore,
    MemoryPolicyStore,
    MemoryPositionRepository,
    MemoryPriceStore,
)
from .supabase import (
    SupabaseAuditTrail,
    SupabaseClient,
    SupabaseIntentStore,
    SupabasePolicyStore,
    SupabasePositionRepository,
    SupabasePriceStore,
)

__all__ = [
    "MemoryAuditTrail",
    "MemoryIntentStore",
    "MemoryPolicyStore",
    "MemoryPositionRepository",
    "MemoryPriceStore",
    "SupabaseAuditTrail",
    "SupabaseClient",
    "SupabaseIntentStore",
    "SupabasePolicyStore",
    "SupabasePositionRepository",
    "SupabasePriceStore",
]
