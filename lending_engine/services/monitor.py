"""Position monitor — watches account health and sends alerts."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable

from ..config import AppConfig
from ..engine.core import LendingEngine
from ..engine.interest import utilization
from ..interfaces.notifier import Notifier
from ..models import AccountHealth
from ..notifications import EmailNotifier, TelegramNotifier

logger = logging.getLogger(__name__)

PriceRefresh = Callable[[], Awaitable[Any]]


def build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    if config.notifications.email.enabled:
        notifiers.append(EmailNotifier(config.notifications.email))
    return notifiers


class PositionMonitor:
    """Classifies every indebted account and alerts on the risky ones.

    Accounts below the engine's minimum collateral ratio are liquidatable
    (critical alert); accounts below ``thresholds.health_warning`` get a
    warning alert; everything else is logged only.
    """

    def __init__(
        self,
        engine: LendingEngine,
        config: AppConfig,
        notifiers: list[Notifier] | None = None,
        refresh_prices: PriceRefresh | None = None,
    ) -> None:
        self._engine = engine
        self._config = config
        self._warning = config.monitor.thresholds.health_warning
        self._notifiers = build_notifiers(config) if notifiers is None else list(notifiers)
        self._refresh_prices = refresh_prices

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    def _get_status(self, health_factor: Decimal) -> str:
        if health_factor < self._engine.min_collateral_ratio:
            return "🚨 LIQUIDATABLE"
        if health_factor < self._warning:
            return "⚠️ WARNING"
        return "✅ Healthy"

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _positions_summary(self, account: str) -> tuple[str, str]:
        supplied: list[str] = []
        borrowed: list[str] = []
        for market in self._engine.markets():
            supply = self._engine.supply_balance(market.asset, account)
            debt = self._engine.borrow_balance(market.asset, account)
            if supply > 0:
                supplied.append(f"{supply:,.4f} {market.asset}")
            if debt > 0:
                borrowed.append(f"{debt:,.4f} {market.asset}")
        return ", ".join(supplied) or "—", ", ".join(borrowed) or "—"

    def _build_log_message(self, health: AccountHealth) -> str:
        supplied, borrowed = self._positions_summary(health.account)
        return (
            f"📊 {health.account}\n"
            f"\n"
            f"{self._get_status(health.health_factor)}\n"
            f"\n"
            f"Supplied: {supplied}\n"
            f"Borrowed: {borrowed}\n"
            f"Collateral value: ${health.collateral_value:,.2f} · Debt: ${health.debt_value:,.2f}\n"
            f"HF: {health.health_factor:.4f}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def _build_alert(self, health: AccountHealth, critical: bool) -> str:
        supplied, borrowed = self._positions_summary(health.account)
        headline = "🚨 LIQUIDATABLE" if critical else "⚠️ WARNING"
        advice = (
            "Position can be liquidated now. Repay debt or add collateral immediately!"
            if critical
            else "Consider adding collateral or repaying part of the debt."
        )
        return (
            f"{headline} — HF {health.health_factor:.4f}\n"
            f"\n"
            f"Account: {health.account}\n"
            f"Supplied: {supplied}\n"
            f"Borrowed: {borrowed}\n"
            f"\n"
            f"Risk-weighted collateral: ${health.collateral_value:,.2f}\n"
            f"Debt: ${health.debt_value:,.2f}\n"
            f"Minimum ratio: {self._engine.min_collateral_ratio}\n"
            f"\n"
            f"{advice}\n"
            f"\n"
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

    async def check_and_alert(self) -> list[AccountHealth]:
        """Check every indebted account; returns the healths that were checked."""
        if self._refresh_prices is not None:
            await self._refresh_prices()

        checked: list[AccountHealth] = []
        for account in self._engine.accounts():
            health = self._engine.account_health(account)
            if not health.has_debt:
                continue
            checked.append(health)

            logger.info(
                "Account %s · Collateral: $%.2f  Debt: $%.2f  HF: %.4f",
                account,
                health.collateral_value,
                health.debt_value,
                health.health_factor,
            )
            await self._send_log(self._build_log_message(health), silent=True)

            if health.health_factor < self._engine.min_collateral_ratio:
                await self._send_alert(
                    self._build_alert(health, critical=True),
                    subject=f"🚨 LIQUIDATABLE: {account}",
                )
            elif health.health_factor < self._warning:
                await self._send_alert(
                    self._build_alert(health, critical=False),
                    subject=f"⚠️ WARNING: {account} health factor low",
                )

        if not checked:
            logger.info("No indebted accounts")
        return checked

    async def generate_daily_report(self) -> str:
        """Send a summary of all markets and indebted accounts."""
        if self._refresh_prices is not None:
            await self._refresh_prices()

        market_lines: list[str] = []
        for market in self._engine.markets():
            util = utilization(market.total_supply, market.total_borrows)
            market_lines.append(
                f"{market.asset}\n"
                f"  Supplied: {market.total_supply:,.2f} · Borrowed: {market.total_borrows:,.2f}\n"
                f"  Utilization: {util * 100:.2f}%\n"
                f"  Borrow APR: {market.borrow_rate * 100:.2f}% · Supply APR: {market.supply_rate * 100:.2f}%"
            )

        account_lines: list[str] = []
        for account in self._engine.accounts():
            health = self._engine.account_health(account)
            if not health.has_debt:
                continue
            account_lines.append(
                f"{account} · {self._get_status(health.health_factor)} · HF {health.health_factor:.4f}"
            )

        report = (
            f"📋 Daily Lending Report\n"
            f"\n"
            f"━━ Markets ━━\n"
            f"{chr(10).join(market_lines) if market_lines else 'No markets listed.'}\n"
            f"\n"
            f"━━ Borrowers ━━\n"
            f"{chr(10).join(account_lines) if account_lines else 'No open borrows.'}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

        await self._send_alert(report, subject="📋 Daily Lending Report")
        logger.info("Daily report sent")
        return report

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run the check loop forever."""
        interval = check_interval_minutes or self._config.monitor.check_interval_minutes
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
