"""Supabase (PostgREST) backed stores.

Every request opens its own session over a certifi SSL context. Amounts
travel as decimal strings so PostgREST ``numeric`` columns keep full
precision.
"""
from __future__ import annotations

import logging
import ssl
from datetime import datetime
from decimal import Decimal
from typing import Any

import aiohttp
import certifi

from ..config import SupabaseConfig
from ..errors import ConcurrentModification, DependencyUnavailable, ValidationError
from ..models import (
    AuditEvent,
    IntentStatus,
    LiquidationIntent,
    Policy,
    Position,
    PositionStatus,
    PriceQuote,
    RiskTiers,
    serialize,
)

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Minimal PostgREST client for the lending tables."""

    def __init__(self, config: SupabaseConfig) -> None:
        self.base_url = config.url.rstrip("/")
        self.service_key = config.service_key
        self.timeout = config.timeout

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        if not self.base_url or not self.service_key:
            raise DependencyUnavailable(
                "supabase", "storage.supabase.url and service_key must be configured"
            )
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        """Issue one REST call and return the decoded rows."""
        headers = self._headers(prefer)
        url = f"{self.base_url}/rest/v1/{table}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error(
                            "Supabase %s %s failed: HTTP %s %s",
                            method, table, response.status, body,
                        )
                        raise DependencyUnavailable(
                            "supabase", f"HTTP {response.status} on {method} {table}"
                        )
                    if response.status == 204:
                        return []
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise DependencyUnavailable("supabase", str(e))

        if isinstance(data, dict):
            return [data]
        return data or []

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params = {k: f"eq.{_param(v)}" for k, v in (filters or {}).items()}
        params["select"] = "*"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        return await self.request("GET", table, params=params)

    async def insert(
        self, table: str, row: dict[str, Any], upsert_on: str | None = None
    ) -> list[dict[str, Any]]:
        prefer = "return=representation"
        params = None
        if upsert_on:
            prefer += ",resolution=merge-duplicates"
            params = {"on_conflict": upsert_on}
        return await self.request("POST", table, params=params, payload=row, prefer=prefer)

    async def update(
        self, table: str, filters: dict[str, Any], patch: dict[str, Any]
    ) -> list[dict[str, Any]]:
        params = {k: f"eq.{_param(v)}" for k, v in filters.items()}
        return await self.request(
            "PATCH", table, params=params, payload=patch, prefer="return=representation"
        )


def _param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(serialize(value))


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def position_to_row(p: Position) -> dict[str, Any]:
    return serialize(
        {
            "position_id": p.position_id,
            "borrower_address": p.borrower,
            "collateral_asset": p.collateral_asset,
            "collateral_amount": p.collateral_amount,
            "vault_id": p.vault_id,
            "borrowed_asset": p.borrowed_asset,
            "borrowed_amount": p.principal,
            "accrued_interest": p.accrued_interest,
            "interest_rate": p.interest_rate,
            "status": p.status,
            "created_at": p.opened_at,
            "last_interest_accrual": p.last_interest_accrual,
            "closed_at": p.closed_at,
            "updated_at": p.updated_at,
            "version": p.version,
            "tx_hash": p.tx_hash,
        }
    )


def position_from_row(row: dict[str, Any]) -> Position:
    return Position(
        position_id=row["position_id"],
        borrower=row["borrower_address"],
        collateral_asset=row["collateral_asset"],
        collateral_amount=_dec(row["collateral_amount"]),
        vault_id=row["vault_id"],
        borrowed_asset=row["borrowed_asset"],
        principal=_dec(row["borrowed_amount"]),
        accrued_interest=_dec(row.get("accrued_interest") or 0),
        interest_rate=_dec(row["interest_rate"]),
        status=PositionStatus(row["status"]),
        opened_at=_dt(row["created_at"]),
        last_interest_accrual=_dt(row.get("last_interest_accrual") or row["created_at"]),
        closed_at=_dt(row.get("closed_at")),
        updated_at=_dt(row.get("updated_at")),
        version=int(row.get("version") or 0),
        tx_hash=row.get("tx_hash"),
    )


def quote_to_row(q: PriceQuote) -> dict[str, Any]:
    return serialize(
        {
            "id": q.quote_id,
            "asset": q.asset,
            "price": q.price,
            "source": q.source,
            "published_at": q.timestamp,
            "approved": q.approved,
            "approved_by": q.approved_by,
            "approved_at": q.approved_at,
        }
    )


def quote_from_row(row: dict[str, Any]) -> PriceQuote:
    return PriceQuote(
        quote_id=str(row["id"]),
        asset=row["asset"],
        price=_dec(row["price"]),
        source=row["source"],
        timestamp=_dt(row["published_at"]),
        approved=bool(row.get("approved")),
        approved_by=row.get("approved_by"),
        approved_at=_dt(row.get("approved_at")),
    )


def policy_to_row(p: Policy) -> dict[str, Any]:
    tiers = p.risk_tiers
    return serialize(
        {
            "asset": p.asset,
            "max_ltv_on_draw": p.max_ltv_on_draw,
            "liquidation_band_1": p.liquidation_band_1,
            "liquidation_band_2": p.liquidation_band_2,
            "liquidation_band_3": p.liquidation_band_3,
            "base_interest_rate": p.base_interest_rate,
            "spread": p.spread,
            "policy_version": p.policy_version,
            "circuit_breaker": p.circuit_breaker,
            "max_slippage_bps": p.max_slippage_bps,
            "tier_critical": tiers.critical if tiers else None,
            "tier_warning": tiers.warning if tiers else None,
            "tier_watch": tiers.watch if tiers else None,
        }
    )


def policy_from_row(row: dict[str, Any]) -> Policy:
    tiers = None
    if row.get("tier_critical") is not None:
        tiers = RiskTiers(
            critical=_dec(row["tier_critical"]),
            warning=_dec(row["tier_warning"]),
            watch=_dec(row["tier_watch"]),
        )
    return Policy(
        asset=row["asset"],
        max_ltv_on_draw=_dec(row["max_ltv_on_draw"]),
        liquidation_band_1=_dec(row["liquidation_band_1"]),
        liquidation_band_2=_dec(row["liquidation_band_2"]),
        liquidation_band_3=_dec(row["liquidation_band_3"]),
        base_interest_rate=_dec(row["base_interest_rate"]),
        spread=_dec(row["spread"]),
        policy_version=int(row.get("policy_version") or 1),
        circuit_breaker=bool(row.get("circuit_breaker")),
        max_slippage_bps=int(row.get("max_slippage_bps") or 100),
        risk_tiers=tiers,
    )


def intent_to_row(i: LiquidationIntent) -> dict[str, Any]:
    return serialize(
        {
            "intent_id": i.intent_id,
            "position_id": i.position_id,
            "collateral_to_sell": i.amount_to_liquidate,
            "min_output": i.min_out,
            "health_factor": i.health_factor,
            "deadline": i.deadline,
            "status": i.status,
            "created_at": i.created_at,
            "executed_at": i.executed_at,
        }
    )


def intent_from_row(row: dict[str, Any]) -> LiquidationIntent:
    return LiquidationIntent(
        intent_id=row["intent_id"],
        position_id=row["position_id"],
        amount_to_liquidate=_dec(row["collateral_to_sell"]),
        min_out=_dec(row["min_output"]),
        health_factor=_dec(row["health_factor"]),
        deadline=_dt(row["deadline"]),
        created_at=_dt(row["created_at"]),
        status=IntentStatus(row["status"]),
        executed_at=_dt(row.get("executed_at")),
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SupabasePositionRepository:
    TABLE = "positions"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, position_id: str) -> Position | None:
        rows = await self._client.select(self.TABLE, {"position_id": position_id}, limit=1)
        return position_from_row(rows[0]) if rows else None

    async def insert(self, position: Position) -> Position:
        rows = await self._client.insert(self.TABLE, position_to_row(position))
        return position_from_row(rows[0]) if rows else position

    async def update(self, position: Position, expected_version: int) -> Position:
        row = position_to_row(position)
        row["version"] = expected_version + 1
        # Filtering on the old version turns the PATCH into a compare-and-set
        rows = await self._client.update(
            self.TABLE,
            {"position_id": position.position_id, "version": expected_version},
            row,
        )
        if not rows:
            raise ConcurrentModification(position.position_id, expected_version)
        return position_from_row(rows[0])

    async def list(
        self, borrower: str | None = None, status: PositionStatus | None = None
    ) -> list[Position]:
        filters: dict[str, Any] = {}
        if borrower is not None:
            filters["borrower_address"] = borrower
        if status is not None:
            filters["status"] = status
        rows = await self._client.select(self.TABLE, filters, order="created_at.desc")
        return [position_from_row(r) for r in rows]


class SupabasePriceStore:
    TABLE = "price_feeds"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def record_quote(self, quote: PriceQuote) -> PriceQuote:
        await self._client.insert(self.TABLE, quote_to_row(quote))
        return quote

    async def get_quote(self, quote_id: str) -> PriceQuote | None:
        rows = await self._client.select(self.TABLE, {"id": quote_id}, limit=1)
        return quote_from_row(rows[0]) if rows else None

    async def approve_quote(self, quote: PriceQuote) -> PriceQuote:
        rows = await self._client.update(
            self.TABLE,
            {"id": quote.quote_id},
            serialize(
                {
                    "approved": True,
                    "approved_by": quote.approved_by,
                    "approved_at": quote.approved_at,
                }
            ),
        )
        return quote_from_row(rows[0]) if rows else quote

    async def list_quotes(
        self, asset: str | None = None, approved: bool | None = None
    ) -> list[PriceQuote]:
        filters: dict[str, Any] = {}
        if asset is not None:
            filters["asset"] = asset
        if approved is not None:
            filters["approved"] = approved
        rows = await self._client.select(self.TABLE, filters, order="published_at.desc")
        return [quote_from_row(r) for r in rows]

    async def get_approved_price(self, asset: str) -> PriceQuote | None:
        rows = await self._client.select(
            self.TABLE,
            {"asset": asset, "approved": True},
            order="published_at.desc",
            limit=1,
        )
        return quote_from_row(rows[0]) if rows else None


class SupabasePolicyStore:
    TABLE = "policy_parameters"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_policy(self, asset: str) -> Policy | None:
        rows = await self._client.select(self.TABLE, {"asset": asset}, limit=1)
        return policy_from_row(rows[0]) if rows else None

    async def put_policy(self, policy: Policy) -> Policy:
        await self._client.insert(self.TABLE, policy_to_row(policy), upsert_on="asset")
        return policy

    async def list_policies(self) -> list[Policy]:
        rows = await self._client.select(self.TABLE, order="asset.asc")
        return [policy_from_row(r) for r in rows]


class SupabaseIntentStore:
    TABLE = "liquidation_intents"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def next_intent_id(self) -> str:
        # A unique index on intent_id rejects a concurrent duplicate
        rows = await self._client.select(self.TABLE, order="created_at.desc", limit=1)
        last = 0
        if rows:
            try:
                last = int(str(rows[0]["intent_id"]).removeprefix("LIQ-"))
            except ValueError:
                logger.warning("Unexpected intent id format: %s", rows[0]["intent_id"])
        return f"LIQ-{last + 1}"

    async def create(self, intent: LiquidationIntent) -> LiquidationIntent:
        if await self.pending_for(intent.position_id) is not None:
            raise ValidationError(
                f"Position {intent.position_id} already has a pending intent",
                position_id=intent.position_id,
            )
        await self._client.insert(self.TABLE, intent_to_row(intent))
        return intent

    async def get(self, intent_id: str) -> LiquidationIntent | None:
        rows = await self._client.select(self.TABLE, {"intent_id": intent_id}, limit=1)
        return intent_from_row(rows[0]) if rows else None

    async def update(self, intent: LiquidationIntent) -> LiquidationIntent:
        await self._client.update(
            self.TABLE, {"intent_id": intent.intent_id}, intent_to_row(intent)
        )
        return intent

    async def pending_for(self, position_id: str) -> LiquidationIntent | None:
        rows = await self._client.select(
            self.TABLE,
            {"position_id": position_id, "status": IntentStatus.PENDING},
            limit=1,
        )
        return intent_from_row(rows[0]) if rows else None

    async def list(self, status: IntentStatus | None = None) -> list[LiquidationIntent]:
        filters = {"status": status} if status is not None else None
        rows = await self._client.select(self.TABLE, filters, order="created_at.desc")
        return [intent_from_row(r) for r in rows]


class SupabaseAuditTrail:
    TABLE = "audit_logs"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def record(self, event: AuditEvent) -> None:
        await self._client.insert(self.TABLE, serialize(event))
