"""Contract invocations as tagged variants.

Each call type carries exactly the arguments its contract method takes.
``build_invocation`` renders one into the payload a signer turns into a
transaction; signing and submission happen outside this package.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Any, Union

from ...errors import ValidationError

# Soroban token amounts and oracle prices use 7 decimal places
SCALE = Decimal(10) ** 7


@dataclass(frozen=True)
class OpenPositionCall:
    position_id: str
    owner: str
    collateral_ref: str
    asset: str


@dataclass(frozen=True)
class DrawCall:
    position_id: str
    amount: Decimal
    oracle_round: int
    new_ltv_bps: int


@dataclass(frozen=True)
class RepayCall:
    position_id: str
    payer: str
    amount: Decimal


@dataclass(frozen=True)
class UpdatePriceCall:
    asset: str
    price: Decimal
    timestamp: datetime
    round_id: int


ContractCall = Union[OpenPositionCall, DrawCall, RepayCall, UpdatePriceCall]


def to_units(amount: Decimal) -> int:
    """Scale a decimal amount to integer contract units (truncating)."""
    return int((amount * SCALE).to_integral_value(rounding=ROUND_DOWN))


def ltv_bps(ltv_percent: Decimal) -> int:
    return int((ltv_percent * 100).to_integral_value(rounding=ROUND_DOWN))


def _arg(kind: str, value: Any) -> dict[str, Any]:
    return {"type": kind, "value": value}


def build_invocation(call: ContractCall, contracts: dict[str, str]) -> dict[str, Any]:
    """Render ``call`` as ``{"contract_id", "method", "args"}``.

    ``contracts`` maps the contract role (``loans``, ``price_oracle``) to
    its deployed id.
    """
    if isinstance(call, OpenPositionCall):
        role, method = "loans", "open_position"
        args = [
            _arg("bytes32", call.position_id),
            _arg("address", call.owner),
            _arg("bytes32", call.collateral_ref),
            _arg("symbol", call.asset),
        ]
    elif isinstance(call, DrawCall):
        role, method = "loans", "draw"
        args = [
            _arg("bytes32", call.position_id),
            _arg("i128", to_units(call.amount)),
            _arg("u64", call.oracle_round),
            _arg("u32", call.new_ltv_bps),
        ]
    elif isinstance(call, RepayCall):
        role, method = "loans", "repay"
        args = [
            _arg("bytes32", call.position_id),
            _arg("address", call.payer),
            _arg("i128", to_units(call.amount)),
        ]
    elif isinstance(call, UpdatePriceCall):
        role, method = "price_oracle", "update_price"
        args = [
            _arg("string", call.asset),
            _arg("i128", to_units(call.price)),
            _arg("u64", int(call.timestamp.timestamp())),
            _arg("u64", call.round_id),
        ]
    else:
        raise ValidationError(f"Unsupported contract call: {type(call).__name__}")

    contract_id = contracts.get(role)
    if not contract_id:
        raise ValidationError(
            f"Contract '{role}' is not configured (chain.contracts.{role})", contract=role
        )
    return {"contract_id": contract_id, "method": method, "args": args}
