"""Command-line interface for the lending core."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .app import LendingApp, build_app
from .chains.soroban import (
    DrawCall,
    OpenPositionCall,
    RepayCall,
    UpdatePriceCall,
    build_invocation,
)
from .config import load_config
from .errors import LendingError, ValidationError
from .logging_setup import configure_logging
from .models import IntentStatus, serialize, to_decimal, utcnow


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-core",
        description="Collateralized lending core: positions, risk and liquidations",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    # Positions
    p = sub.add_parser("open", help="Open a pending position")
    p.add_argument("borrower")
    p.add_argument("collateral_asset")
    p.add_argument("collateral_amount")
    p.add_argument("borrow_asset")
    p.add_argument("borrow_amount")
    p.add_argument("--vault-id", default=None)

    p = sub.add_parser("confirm", help="Activate a pending position")
    p.add_argument("position_id")
    p.add_argument("--tx-hash", default=None)
    p.add_argument(
        "--wait",
        action="store_true",
        help="Poll the chain until --tx-hash succeeds before confirming",
    )

    p = sub.add_parser("draw", help="Borrow more against an active position")
    p.add_argument("position_id")
    p.add_argument("amount")

    p = sub.add_parser("repay", help="Repay debt (interest first)")
    p.add_argument("position_id")
    p.add_argument("amount")
    p.add_argument("--repayer", default=None)

    p = sub.add_parser("accrue", help="Accrue interest on an active position")
    p.add_argument("position_id")

    p = sub.add_parser("positions", help="List positions, newest first")
    p.add_argument("--borrower", default=None)
    p.add_argument("--status", default=None)

    # Liquidations
    p = sub.add_parser("evaluate", help="Run one liquidation sweep")
    p.add_argument("position_ids", nargs="*", help="Limit to these positions")

    p = sub.add_parser("intents", help="List liquidation intents")
    p.add_argument("--status", default=None, choices=[s.value for s in IntentStatus])

    p = sub.add_parser("execute-intent", help="Record an executed liquidation")
    p.add_argument("intent_id")
    p.add_argument("amount_received")

    p = sub.add_parser("cancel-intent", help="Cancel a pending liquidation intent")
    p.add_argument("intent_id")

    # Prices
    p = sub.add_parser("ingest-prices", help="Fetch live prices as unapproved quotes")
    p.add_argument("symbols", nargs="*")

    p = sub.add_parser("submit-price", help="Record a manual unapproved quote")
    p.add_argument("asset")
    p.add_argument("price")
    p.add_argument("--source", default="manual")

    p = sub.add_parser("approve-price", help="Approve a quote for risk use")
    p.add_argument("quote_id")
    p.add_argument("--by", dest="approved_by", required=True)

    p = sub.add_parser("prices", help="List price quotes")
    p.add_argument("--asset", default=None)
    p.add_argument("--approved", action="store_true", default=None)

    # Policies
    p = sub.add_parser("set-policy", help="Create or update an asset policy")
    p.add_argument("asset")
    p.add_argument("max_ltv_on_draw", help="Fraction, e.g. 0.8")
    p.add_argument("--band1", default="85")
    p.add_argument("--band2", default="90")
    p.add_argument("--band3", default="95")
    p.add_argument("--base-rate", default="5.0")
    p.add_argument("--spread", default="2.0")
    p.add_argument("--max-slippage-bps", type=int, default=100)

    p = sub.add_parser("circuit-breaker", help="Halt or resume new draws for an asset")
    p.add_argument("asset")
    p.add_argument("state", choices=["on", "off"])

    sub.add_parser("policies", help="List asset policies")

    # Contract invocations
    p = sub.add_parser("build-call", help="Render a contract invocation payload")
    calls = p.add_subparsers(dest="call", required=True)
    c = calls.add_parser("open")
    c.add_argument("position_id")
    c.add_argument("owner")
    c.add_argument("collateral_ref")
    c.add_argument("asset")
    c = calls.add_parser("draw")
    c.add_argument("position_id")
    c.add_argument("amount")
    c.add_argument("oracle_round", type=int)
    c.add_argument("new_ltv_bps", type=int)
    c = calls.add_parser("repay")
    c.add_argument("position_id")
    c.add_argument("payer")
    c.add_argument("amount")
    c = calls.add_parser("update-price")
    c.add_argument("asset")
    c.add_argument("price")
    c.add_argument("round_id", type=int)

    # Monitoring
    sub.add_parser("check", help="Single sweep with alerts")
    sub.add_parser("report", help="Generate daily position report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


def _build_call(args: argparse.Namespace) -> Any:
    if args.call == "open":
        return OpenPositionCall(args.position_id, args.owner, args.collateral_ref, args.asset)
    if args.call == "draw":
        return DrawCall(
            args.position_id, to_decimal(args.amount, "amount"),
            args.oracle_round, args.new_ltv_bps,
        )
    if args.call == "repay":
        return RepayCall(args.position_id, args.payer, to_decimal(args.amount, "amount"))
    return UpdatePriceCall(
        args.asset.upper(), to_decimal(args.price, "price"), utcnow(), args.round_id
    )


async def _dispatch(app: LendingApp, args: argparse.Namespace) -> Any:
    cmd = args.command

    if cmd == "open":
        return await app.ledger.open(
            args.borrower, args.collateral_asset, args.collateral_amount,
            args.borrow_asset, args.borrow_amount, vault_id=args.vault_id,
        )
    if cmd == "confirm":
        if args.wait:
            if not args.tx_hash:
                raise ValidationError("--wait requires --tx-hash")
            return await app.confirmation.confirm_when_landed(args.position_id, args.tx_hash)
        return await app.ledger.confirm(args.position_id, tx_hash=args.tx_hash)
    if cmd == "draw":
        return await app.ledger.draw(args.position_id, args.amount)
    if cmd == "repay":
        return await app.ledger.repay(args.position_id, args.amount, repayer=args.repayer)
    if cmd == "accrue":
        return await app.ledger.accrue_interest(args.position_id)
    if cmd == "positions":
        return await app.ledger.query(borrower=args.borrower, status=args.status)

    if cmd == "evaluate":
        return await app.evaluator.evaluate(args.position_ids or None)
    if cmd == "intents":
        status = IntentStatus(args.status) if args.status else None
        return await app.evaluator.list_intents(status=status)
    if cmd == "execute-intent":
        return await app.evaluator.execute_intent(args.intent_id, args.amount_received)
    if cmd == "cancel-intent":
        return await app.evaluator.cancel_intent(args.intent_id)

    if cmd == "ingest-prices":
        return await app.prices.ingest(args.symbols or None)
    if cmd == "submit-price":
        return await app.prices.submit(args.asset, args.price, args.source)
    if cmd == "approve-price":
        return await app.prices.approve(args.quote_id, args.approved_by)
    if cmd == "prices":
        return await app.prices.list_quotes(asset=args.asset, approved=args.approved)

    if cmd == "set-policy":
        return await app.policies.set_policy(
            args.asset, args.max_ltv_on_draw,
            liquidation_band_1=args.band1,
            liquidation_band_2=args.band2,
            liquidation_band_3=args.band3,
            base_interest_rate=args.base_rate,
            spread=args.spread,
            max_slippage_bps=args.max_slippage_bps,
        )
    if cmd == "circuit-breaker":
        return await app.policies.toggle_circuit_breaker(args.asset, args.state == "on")
    if cmd == "policies":
        return await app.policies.list()

    if cmd == "build-call":
        return build_invocation(_build_call(args), app.config.chain.contracts)

    if cmd == "check":
        return await app.monitor.check_and_alert()
    if cmd == "report":
        return await app.monitor.generate_daily_report()
    if cmd == "monitor":
        await app.monitor.run_continuous(args.interval)
        return None

    raise ValidationError(f"Unknown command: {cmd}")


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command; returns the process exit code."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    app = build_app(config)

    try:
        result = await _dispatch(app, args)
    except LendingError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1

    if result is not None:
        print(json.dumps(serialize(result), indent=2, default=str))
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
