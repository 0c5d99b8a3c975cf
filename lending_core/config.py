"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ValidationError
from .models import RiskTiers

logger = logging.getLogger(__name__)

STELLAR_ADDRESS_PATTERN = r"^G[A-Z0-9]{55}$"

MISSING_PRICE_MODES = ("default", "reject")
STORAGE_BACKENDS = ("memory", "supabase")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    borrower_pattern: str = STELLAR_ADDRESS_PATTERN
    default_max_ltv: Decimal = Decimal("80")
    default_interest_rate: Decimal = Decimal("7.0")
    # "default": fall back to default_prices when no approved quote exists.
    # "reject": fail the open instead.
    missing_price: str = "default"
    default_prices: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class LiquidationConfig:
    tiers: RiskTiers = field(default_factory=RiskTiers)
    default_liquidation_threshold: Decimal = Decimal("80")
    intent_deadline_seconds: int = 300
    default_max_slippage_bps: int = 100


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_minutes: int = 15


@dataclass(frozen=True)
class SupabaseConfig:
    url: str = ""
    service_key: str = ""
    timeout: int = 30


@dataclass(frozen=True)
class StorageConfig:
    backend: str = "memory"
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)


@dataclass(frozen=True)
class ConfirmationConfig:
    max_attempts: int = 10
    base_delay: float = 1.0
    max_delay: float = 16.0
    timeout: float = 120.0


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    contracts: dict[str, str] = field(default_factory=dict)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    liquidation: LiquidationConfig = field(default_factory=LiquidationConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        borrower_pattern=raw.get("borrower_pattern", STELLAR_ADDRESS_PATTERN),
        default_max_ltv=_dec(raw.get("default_max_ltv", 80)),
        default_interest_rate=_dec(raw.get("default_interest_rate", 7.0)),
        missing_price=raw.get("missing_price", "default"),
        default_prices={
            str(k).upper(): _dec(v) for k, v in raw.get("default_prices", {}).items()
        },
    )


def _build_liquidation(raw: dict[str, Any]) -> LiquidationConfig:
    tiers = raw.get("tiers", {})
    try:
        risk_tiers = RiskTiers(
            critical=_dec(tiers.get("critical", 1.0)),
            warning=_dec(tiers.get("warning", 1.2)),
            watch=_dec(tiers.get("watch", 1.5)),
        )
    except ValidationError as e:
        raise ValueError(f"liquidation.tiers: {e.message}")
    return LiquidationConfig(
        tiers=risk_tiers,
        default_liquidation_threshold=_dec(
            raw.get("default_liquidation_threshold", 80)
        ),
        intent_deadline_seconds=int(raw.get("intent_deadline_seconds", 300)),
        default_max_slippage_bps=int(raw.get("default_max_slippage_bps", 100)),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
    )


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    sb = raw.get("supabase", {})
    return StorageConfig(
        backend=raw.get("backend", "memory"),
        supabase=SupabaseConfig(
            url=sb.get("url", ""),
            service_key=sb.get("service_key", ""),
            timeout=int(sb.get("timeout", 30)),
        ),
    )


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    conf = raw.get("confirmation", {})
    return ChainConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        contracts=dict(raw.get("contracts", {})),
        confirmation=ConfirmationConfig(
            max_attempts=int(conf.get("max_attempts", 10)),
            base_delay=float(conf.get("base_delay", 1.0)),
            max_delay=float(conf.get("max_delay", 16.0)),
            timeout=float(conf.get("timeout", 120.0)),
        ),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        ledger=_build_ledger(raw.get("ledger") or {}),
        liquidation=_build_liquidation(raw.get("liquidation") or {}),
        monitor=_build_monitor(raw.get("monitor") or {}),
        storage=_build_storage(raw.get("storage") or {}),
        chain=_build_chain(raw.get("chain") or {}),
        price_oracle=_build_price_oracle(raw.get("price_oracle") or {}),
        notifications=_build_notifications(raw.get("notifications") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if cfg.ledger.missing_price not in MISSING_PRICE_MODES:
        raise ValueError(
            f"ledger.missing_price must be one of {MISSING_PRICE_MODES}, "
            f"got '{cfg.ledger.missing_price}'"
        )
    try:
        re.compile(cfg.ledger.borrower_pattern)
    except re.error as e:
        raise ValueError(f"ledger.borrower_pattern is not a valid regex: {e}")

    if not Decimal(0) < cfg.ledger.default_max_ltv <= Decimal(100):
        raise ValueError("ledger.default_max_ltv must be in (0, 100]")
    for symbol, price in cfg.ledger.default_prices.items():
        if price <= 0:
            raise ValueError(f"Default price for '{symbol}' must be positive")

    threshold = cfg.liquidation.default_liquidation_threshold
    if not Decimal(0) < threshold <= Decimal(100):
        raise ValueError("liquidation.default_liquidation_threshold must be in (0, 100]")
    if cfg.liquidation.intent_deadline_seconds <= 0:
        raise ValueError("liquidation.intent_deadline_seconds must be positive")

    if cfg.storage.backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"storage.backend must be one of {STORAGE_BACKENDS}, "
            f"got '{cfg.storage.backend}'"
        )

    confirmation = cfg.chain.confirmation
    if confirmation.max_attempts < 1:
        raise ValueError("chain.confirmation.max_attempts must be >= 1")
    if confirmation.base_delay < 0 or confirmation.max_delay < confirmation.base_delay:
        raise ValueError("chain.confirmation delays must satisfy 0 <= base <= max")
