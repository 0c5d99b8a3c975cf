"""Typed failures raised by the lending core.

Every error carries a machine-readable ``kind`` plus the computed values a
caller needs to render a message (e.g. the LTV and the limit it breached).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any


class LendingError(Exception):
    """Base class for all lending-core failures."""

    kind = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        details = {
            k: str(v) if isinstance(v, Decimal) else v
            for k, v in self.details.items()
        }
        return {"kind": self.kind, "message": self.message, "details": details}


class ValidationError(LendingError):
    """Malformed or missing input. Caller-fixable, never retried."""

    kind = "validation"


class NotFound(LendingError):
    kind = "not_found"

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(
            f"{entity} not found: {identifier}", entity=entity, identifier=identifier
        )
        self.entity = entity
        self.identifier = identifier


class PolicyViolation(LendingError):
    """An LTV, slippage or circuit-breaker limit would be breached."""

    kind = "policy_violation"

    def __init__(
        self,
        message: str,
        metric: str,
        value: Decimal | None = None,
        limit: Decimal | None = None,
    ) -> None:
        super().__init__(message, metric=metric, value=value, limit=limit)
        self.metric = metric
        self.value = value
        self.limit = limit


class InvalidTransition(LendingError):
    kind = "invalid_transition"

    def __init__(self, entity_id: str, current: str, attempted: str) -> None:
        super().__init__(
            f"Cannot {attempted} {entity_id}: status is {current}",
            entity_id=entity_id,
            current=current,
            attempted=attempted,
        )
        self.current = current
        self.attempted = attempted


class InsufficientDebt(LendingError):
    """Repayment larger than the outstanding debt."""

    kind = "insufficient_debt"

    def __init__(self, position_id: str, amount: Decimal, total_debt: Decimal) -> None:
        super().__init__(
            f"Repayment amount {amount} exceeds total debt of {total_debt:.2f}",
            position_id=position_id,
            amount=amount,
            total_debt=total_debt,
        )
        self.amount = amount
        self.total_debt = total_debt


class DependencyUnavailable(LendingError):
    kind = "dependency_unavailable"

    def __init__(self, dependency: str, reason: str) -> None:
        super().__init__(
            f"{dependency} unavailable: {reason}", dependency=dependency, reason=reason
        )
        self.dependency = dependency


class ConcurrentModification(LendingError):
    """Conditional write lost against a concurrent writer."""

    kind = "conflict"

    def __init__(self, position_id: str, expected_version: int) -> None:
        super().__init__(
            f"Position {position_id} changed since version {expected_version}",
            position_id=position_id,
            expected_version=expected_version,
        )


class TransactionTimeout(LendingError):
    kind = "timeout"

    def __init__(self, tx_hash: str, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {attempts} attempts "
            f"({elapsed:.1f}s)",
            tx_hash=tx_hash,
            attempts=attempts,
            elapsed=elapsed,
        )


class TransactionFailed(LendingError):
    kind = "transaction_failed"

    def __init__(self, tx_hash: str, status: str) -> None:
        super().__init__(
            f"Transaction {tx_hash} finished with status {status}",
            tx_hash=tx_hash,
            status=status,
        )
