"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from lending_core.config import (
    ChainConfig,
    ConfirmationConfig,
    LedgerConfig,
    LiquidationConfig,
    PythConfig,
)
from lending_core.services import (
    LiquidationEvaluator,
    PolicyAdmin,
    PositionLedger,
    PriceService,
)
from lending_core.stores import (
    MemoryAuditTrail,
    MemoryIntentStore,
    MemoryPolicyStore,
    MemoryPositionRepository,
    MemoryPriceStore,
)

from tests.helpers import FixedClock


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def ledger_config() -> LedgerConfig:
    return LedgerConfig(
        default_prices={"BTC": Decimal("65000"), "ETH": Decimal("3500")},
    )


@pytest.fixture()
def liquidation_config() -> LiquidationConfig:
    return LiquidationConfig()


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        contracts={"loans": "CLOANS", "price_oracle": "CORACLE"},
        confirmation=ConfirmationConfig(
            max_attempts=5, base_delay=1.0, max_delay=4.0, timeout=60.0
        ),
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.example.com/v2/updates/price/latest",
        feeds={"BTC": "aaa111", "ETH": "bbb222", "XLM": "ccc333"},
    )


# ---------------------------------------------------------------------------
# Stores and services
# ---------------------------------------------------------------------------


@pytest.fixture()
def positions() -> MemoryPositionRepository:
    return MemoryPositionRepository()


@pytest.fixture()
def price_store() -> MemoryPriceStore:
    return MemoryPriceStore()


@pytest.fixture()
def policy_store() -> MemoryPolicyStore:
    return MemoryPolicyStore()


@pytest.fixture()
def intent_store() -> MemoryIntentStore:
    return MemoryIntentStore()


@pytest.fixture()
def audit() -> MemoryAuditTrail:
    return MemoryAuditTrail()


@pytest.fixture()
def ledger(
    positions: MemoryPositionRepository,
    price_store: MemoryPriceStore,
    policy_store: MemoryPolicyStore,
    audit: MemoryAuditTrail,
    ledger_config: LedgerConfig,
    clock: FixedClock,
) -> PositionLedger:
    return PositionLedger(
        positions, price_store, policy_store, audit, ledger_config, clock=clock
    )


@pytest.fixture()
def evaluator(
    ledger: PositionLedger,
    price_store: MemoryPriceStore,
    policy_store: MemoryPolicyStore,
    intent_store: MemoryIntentStore,
    audit: MemoryAuditTrail,
    liquidation_config: LiquidationConfig,
    clock: FixedClock,
) -> LiquidationEvaluator:
    return LiquidationEvaluator(
        ledger, price_store, policy_store, intent_store, audit,
        liquidation_config, clock=clock,
    )


@pytest.fixture()
def prices(
    price_store: MemoryPriceStore, audit: MemoryAuditTrail, clock: FixedClock
) -> PriceService:
    return PriceService(price_store, None, audit, clock=clock)


@pytest.fixture()
def policies(
    policy_store: MemoryPolicyStore, audit: MemoryAuditTrail, clock: FixedClock
) -> PolicyAdmin:
    return PolicyAdmin(policy_store, audit, clock=clock)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    ledger:
      default_max_ltv: 75
      missing_price: default
      default_prices: {btc: 65000, ETH: 3500}
    liquidation:
      tiers: {critical: 1.0, warning: 1.25, watch: 1.6}
      default_liquidation_threshold: 82.5
      intent_deadline_seconds: 600
    monitor:
      check_interval_minutes: 5
    storage:
      backend: memory
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      contracts: {loans: CLOANS}
      confirmation: {max_attempts: 4, base_delay: 0.5, max_delay: 2.0, timeout: 30}
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {BTC: "aaa", ETH: "bbb"}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

