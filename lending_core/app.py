"""Build the service graph from configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .chains.soroban import SorobanClient
from .config import AppConfig
from .interfaces import (
    AuditTrail,
    IntentStore,
    Notifier,
    PolicyStore,
    PositionRepository,
    PriceQuoteStore,
)
from .models import utcnow
from .notifications import EmailNotifier, TelegramNotifier
from .oracles import PythPriceFeed
from .services import (
    ConfirmationService,
    LiquidationEvaluator,
    Monitor,
    PolicyAdmin,
    PositionLedger,
    PriceService,
)
from .stores import (
    MemoryAuditTrail,
    MemoryIntentStore,
    MemoryPolicyStore,
    MemoryPositionRepository,
    MemoryPriceStore,
    SupabaseAuditTrail,
    SupabaseClient,
    SupabaseIntentStore,
    SupabasePolicyStore,
    SupabasePositionRepository,
    SupabasePriceStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stores:
    positions: PositionRepository
    prices: PriceQuoteStore
    policies: PolicyStore
    intents: IntentStore
    audit: AuditTrail


@dataclass(frozen=True)
class LendingApp:
    config: AppConfig
    stores: Stores
    ledger: PositionLedger
    evaluator: LiquidationEvaluator
    prices: PriceService
    policies: PolicyAdmin
    confirmation: ConfirmationService
    monitor: Monitor


def build_stores(config: AppConfig) -> Stores:
    if config.storage.backend == "supabase":
        client = SupabaseClient(config.storage.supabase)
        return Stores(
            positions=SupabasePositionRepository(client),
            prices=SupabasePriceStore(client),
            policies=SupabasePolicyStore(client),
            intents=SupabaseIntentStore(client),
            audit=SupabaseAuditTrail(client),
        )
    logger.debug("Using in-memory storage; state is lost on exit")
    return Stores(
        positions=MemoryPositionRepository(),
        prices=MemoryPriceStore(),
        policies=MemoryPolicyStore(),
        intents=MemoryIntentStore(),
        audit=MemoryAuditTrail(),
    )


def build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    if config.notifications.email.enabled:
        notifiers.append(EmailNotifier(config.notifications.email))
    return notifiers


def build_app(
    config: AppConfig,
    stores: Stores | None = None,
    notifiers: list[Notifier] | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> LendingApp:
    stores = stores or build_stores(config)
    if notifiers is None:
        notifiers = build_notifiers(config)

    ledger = PositionLedger(
        stores.positions, stores.prices, stores.policies, stores.audit,
        config.ledger, clock=clock,
    )
    evaluator = LiquidationEvaluator(
        ledger, stores.prices, stores.policies, stores.intents, stores.audit,
        config.liquidation, clock=clock,
    )
    feed = PythPriceFeed(config.price_oracle.pyth) if config.price_oracle.pyth.feeds else None

    return LendingApp(
        config=config,
        stores=stores,
        ledger=ledger,
        evaluator=evaluator,
        prices=PriceService(
            stores.prices, feed, stores.audit,
            source=config.price_oracle.provider, clock=clock,
        ),
        policies=PolicyAdmin(stores.policies, stores.audit, clock=clock),
        confirmation=ConfirmationService(
            ledger, SorobanClient(config.chain), config.chain.confirmation
        ),
        monitor=Monitor(evaluator, ledger, notifiers, config.monitor, clock=clock),
    )
