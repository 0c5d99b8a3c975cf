"""Policy administration — versioned updates and the circuit breaker."""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import Any, Callable

from ..errors import NotFound
from ..interfaces.audit_trail import AuditTrail
from ..interfaces.policy_store import PolicyStore
from ..models import Policy, serialize, to_decimal, utcnow
from .audit import record_audit
from .position_ledger import normalize_symbol

logger = logging.getLogger(__name__)


class PolicyAdmin:
    def __init__(
        self,
        store: PolicyStore,
        audit: AuditTrail,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._audit = audit
        self._clock = clock

    async def get(self, asset: str) -> Policy:
        asset = normalize_symbol(asset)
        policy = await self._store.get_policy(asset)
        if policy is None:
            raise NotFound("policy", asset)
        return policy

    async def list(self) -> list[Policy]:
        return await self._store.list_policies()

    async def set_policy(
        self,
        asset: str,
        max_ltv_on_draw: Any,
        liquidation_band_1: Any = 85,
        liquidation_band_2: Any = 90,
        liquidation_band_3: Any = 95,
        base_interest_rate: Any = 5.0,
        spread: Any = 2.0,
        max_slippage_bps: int = 100,
    ) -> Policy:
        """Create or replace an asset's policy, bumping its version.

        The circuit-breaker flag carries over from the previous version.
        """
        asset = normalize_symbol(asset)
        existing = await self._store.get_policy(asset)
        policy = Policy(
            asset=asset,
            max_ltv_on_draw=to_decimal(max_ltv_on_draw, "max_ltv_on_draw"),
            liquidation_band_1=to_decimal(liquidation_band_1, "liquidation_band_1"),
            liquidation_band_2=to_decimal(liquidation_band_2, "liquidation_band_2"),
            liquidation_band_3=to_decimal(liquidation_band_3, "liquidation_band_3"),
            base_interest_rate=to_decimal(base_interest_rate, "base_interest_rate"),
            spread=to_decimal(spread, "spread"),
            policy_version=existing.policy_version + 1 if existing else 1,
            circuit_breaker=existing.circuit_breaker if existing else False,
            max_slippage_bps=int(max_slippage_bps),
            risk_tiers=existing.risk_tiers if existing else None,
        )
        policy.validate()

        await self._store.put_policy(policy)
        logger.info("Policy for %s set to version %d", asset, policy.policy_version)
        await record_audit(
            self._audit, "policy_updated", "policy", asset, self._clock(), serialize(policy)
        )
        return policy

    async def toggle_circuit_breaker(self, asset: str, enabled: bool) -> Policy:
        current = await self.get(asset)
        policy = dataclasses.replace(
            current,
            circuit_breaker=enabled,
            policy_version=current.policy_version + 1,
        )
        await self._store.put_policy(policy)
        logger.warning(
            "Circuit breaker for %s %s", policy.asset, "ENABLED" if enabled else "disabled"
        )
        await record_audit(
            self._audit, "circuit_breaker", "policy", policy.asset, self._clock(),
            {"enabled": enabled, "policy_version": policy.policy_version},
        )
        return policy
