"""Scheduled liquidation sweeps with alerting and a daily report."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Callable

from ..config import MonitorConfig
from ..interfaces.notifier import Notifier
from ..models import IntentStatus, PositionStatus, RiskTier, utcnow
from .liquidation_evaluator import EvaluationReport, LiquidationEvaluator, RiskAssessment
from .position_ledger import PositionLedger

logger = logging.getLogger(__name__)

_TIER_LABELS = {
    RiskTier.CRITICAL: "🚨 CRITICAL",
    RiskTier.WARNING: "⚠️ WARNING",
    RiskTier.WATCH: "👀 Watch",
    RiskTier.HEALTHY: "✅ Healthy",
}


class Monitor:
    """Runs the liquidation sweep and fans results out to the notifiers."""

    def __init__(
        self,
        evaluator: LiquidationEvaluator,
        ledger: PositionLedger,
        notifiers: list[Notifier],
        config: MonitorConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._evaluator = evaluator
        self._ledger = ledger
        self._notifiers = notifiers
        self._config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_address(address: str) -> str:
        if len(address) > 16:
            return f"{address[:8]}...{address[-6:]}"
        return address

    def _now_str(self) -> str:
        return self._clock().strftime("%Y-%m-%d %H:%M:%S")

    def _build_sweep_log(self, report: EvaluationReport) -> str:
        counts = Counter(a.tier for a in report.assessments)
        lines = [f"📊 Liquidation sweep · {len(report.assessments)} positions", ""]
        for tier in RiskTier:
            lines.append(f"{_TIER_LABELS[tier]}: {counts.get(tier, 0)}")
        if report.created_intents:
            lines.append(f"New liquidation intents: {len(report.created_intents)}")
        if report.skipped:
            lines.append(f"Skipped (no approved price): {len(report.skipped)}")
        lines += ["", f"{self._now_str()} UTC"]
        return "\n".join(lines)

    def _build_alert(self, a: RiskAssessment) -> str:
        if a.tier == RiskTier.CRITICAL:
            action = f"Liquidation intent {a.intent_id} proposed."
        else:
            action = "Consider adding collateral or repaying debt."
        return (
            f"{_TIER_LABELS[a.tier]} · HF {a.health_factor:.2f}\n"
            f"\n"
            f"Position: {a.position_id}\n"
            f"Borrower: {self._format_address(a.borrower)}\n"
            f"\n"
            f"Collateral: {a.collateral_asset} ${a.collateral_value:,.2f} @ ${a.price:,.2f}\n"
            f"Debt: ${a.debt:,.2f}\n"
            f"LTV: {a.ltv:.2f}%\n"
            f"Liquidation price: ${a.liquidation_price:,.2f}\n"
            f"\n"
            f"{action}\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = False) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def check_and_alert(self) -> EvaluationReport:
        """Sweep once; alert on every warning or critical position."""
        report = await self._evaluator.evaluate()
        await self._send_log(self._build_sweep_log(report), silent=True)

        for assessment in report.assessments:
            if assessment.tier == RiskTier.CRITICAL:
                await self._send_alert(
                    self._build_alert(assessment), subject="🚨 CRITICAL: Liquidation Risk!"
                )
            elif assessment.tier == RiskTier.WARNING:
                await self._send_alert(
                    self._build_alert(assessment), subject="⚠️ WARNING: Low Health Factor"
                )
        return report

    async def generate_daily_report(self) -> str:
        """Summarise positions by status, average active LTV and pending intents."""
        positions = await self._ledger.query()
        by_status = Counter(p.status for p in positions)

        ltvs: list[Decimal] = []
        for position in positions:
            if position.status != PositionStatus.ACTIVE:
                continue
            assessment = await self._evaluator.assess(position.position_id)
            if assessment is not None:
                ltvs.append(assessment.ltv)

        pending = await self._evaluator.list_intents(status=IntentStatus.PENDING)
        outstanding = sum(
            (p.total_debt for p in positions if p.status == PositionStatus.ACTIVE),
            Decimal(0),
        )

        lines = ["📋 Daily Lending Report", ""]
        for status in PositionStatus:
            lines.append(f"{status.value.capitalize()}: {by_status.get(status, 0)}")
        lines.append("")
        lines.append(f"Outstanding debt: ${outstanding:,.2f}")
        if ltvs:
            lines.append(f"Average LTV (active): {sum(ltvs) / len(ltvs):.2f}%")
        else:
            lines.append("Average LTV (active): n/a")
        lines.append(f"Pending liquidation intents: {len(pending)}")
        for intent in pending:
            lines.append(f"  {intent.intent_id} · {intent.position_id}")
        lines += ["", f"{self._now_str()} UTC"]

        report = "\n".join(lines)
        await self._send_alert(report, subject="📋 Daily Lending Report")
        logger.info("Daily report sent")
        return report

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run continuous monitoring loop."""
        interval = check_interval_minutes or self._config.check_interval_minutes
        logger.info(
            "Starting continuous monitoring (checking every %d minutes)", interval
        )

        while True:
            try:
                await self.check_and_alert()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in monitoring loop: %s", e)
                await asyncio.sleep(60)
