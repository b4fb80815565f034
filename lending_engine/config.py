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

from .fixed_point import ZERO, to_decimal

logger = logging.getLogger(__name__)

PRICE_PROVIDERS = ("static", "pyth")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    admin: str = ""
    custodian: str = "lending-pool"
    min_collateral_ratio: Decimal = Decimal("1.25")
    liquidation_discount: Decimal = Decimal("0.95")
    state_file: str = "lending_state.json"


@dataclass(frozen=True)
class RateModelConfig:
    base_rate: Decimal = Decimal("0.02")
    slope: Decimal = Decimal("0.2")
    kink: Decimal | None = None
    slope2: Decimal = ZERO


@dataclass(frozen=True)
class MarketConfig:
    asset: str = ""
    collateral_factor: Decimal = ZERO
    reserve_factor: Decimal = ZERO
    interest_rate: RateModelConfig | None = None


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    static: dict[str, Decimal] = field(default_factory=dict)
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TokensConfig:
    balances: dict[str, dict[str, Decimal]] = field(default_factory=dict)


@dataclass(frozen=True)
class ThresholdsConfig:
    health_warning: Decimal = Decimal("1.5")


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_minutes: int = 15
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)


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
    engine: EngineConfig = field(default_factory=EngineConfig)
    interest_rate: RateModelConfig = field(default_factory=RateModelConfig)
    markets: tuple[MarketConfig, ...] = ()
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    tokens: TokensConfig = field(default_factory=TokensConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
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


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _decimal(raw: dict[str, Any], key: str, default: Decimal) -> Decimal:
    value = raw.get(key)
    if value is None:
        return default
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"'{key}' must be a number, got {value!r}") from e


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        admin=str(raw.get("admin", "")),
        custodian=str(raw.get("custodian", EngineConfig.custodian)),
        min_collateral_ratio=_decimal(raw, "min_collateral_ratio", EngineConfig.min_collateral_ratio),
        liquidation_discount=_decimal(raw, "liquidation_discount", EngineConfig.liquidation_discount),
        state_file=str(raw.get("state_file", EngineConfig.state_file)),
    )


def _build_rate_model(raw: dict[str, Any]) -> RateModelConfig:
    kink = raw.get("kink")
    return RateModelConfig(
        base_rate=_decimal(raw, "base_rate", RateModelConfig.base_rate),
        slope=_decimal(raw, "slope", RateModelConfig.slope),
        kink=None if kink is None else _decimal(raw, "kink", ZERO),
        slope2=_decimal(raw, "slope2", ZERO),
    )


def _build_markets(raw: list[dict[str, Any]]) -> tuple[MarketConfig, ...]:
    markets: list[MarketConfig] = []
    for m in raw:
        rate_raw = m.get("interest_rate")
        markets.append(
            MarketConfig(
                asset=str(m.get("asset", "")),
                collateral_factor=_decimal(m, "collateral_factor", ZERO),
                reserve_factor=_decimal(m, "reserve_factor", ZERO),
                interest_rate=_build_rate_model(rate_raw) if rate_raw else None,
            )
        )
    return tuple(markets)


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    static_raw = raw.get("static", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        static={asset: _decimal(static_raw, asset, ZERO) for asset in static_raw},
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_tokens(raw: dict[str, Any]) -> TokensConfig:
    balances_raw = raw.get("balances", {})
    return TokensConfig(
        balances={
            account: {asset: _decimal(assets, asset, ZERO) for asset in assets}
            for account, assets in balances_raw.items()
        }
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    thresholds = raw.get("thresholds", {})
    return MonitorConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
        thresholds=ThresholdsConfig(
            health_warning=_decimal(thresholds, "health_warning", ThresholdsConfig.health_warning),
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
        engine=_build_engine(raw.get("engine", {})),
        interest_rate=_build_rate_model(raw.get("interest_rate", {})),
        markets=_build_markets(raw.get("markets", [])),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        tokens=_build_tokens(raw.get("tokens", {})),
        monitor=_build_monitor(raw.get("monitor", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate_rate_model(rm: RateModelConfig, where: str) -> None:
    if rm.base_rate < 0 or rm.slope < 0 or rm.slope2 < 0:
        raise ValueError(f"{where}: rates and slopes must be non-negative")
    if rm.kink is not None and not 0 < rm.kink < 1:
        raise ValueError(f"{where}: kink must be within (0, 1)")


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.engine.admin:
        raise ValueError("engine.admin must be configured")
    if cfg.engine.min_collateral_ratio <= 0:
        raise ValueError("engine.min_collateral_ratio must be positive")
    if not 0 < cfg.engine.liquidation_discount < 1:
        raise ValueError("engine.liquidation_discount must be within (0, 1)")

    _validate_rate_model(cfg.interest_rate, "interest_rate")

    seen: set[str] = set()
    for market in cfg.markets:
        if not market.asset:
            raise ValueError("Every market needs an asset")
        if market.asset in seen:
            raise ValueError(f"Market '{market.asset}' is configured twice")
        seen.add(market.asset)
        for name in ("collateral_factor", "reserve_factor"):
            if not 0 <= getattr(market, name) <= 1:
                raise ValueError(f"Market '{market.asset}' {name} must be within [0, 1]")
        if market.interest_rate is not None:
            _validate_rate_model(market.interest_rate, f"Market '{market.asset}' interest_rate")

    if cfg.price_oracle.provider not in PRICE_PROVIDERS:
        raise ValueError(f"Unknown price oracle provider '{cfg.price_oracle.provider}'")
    for asset, price in cfg.price_oracle.static.items():
        if price <= 0:
            raise ValueError(f"Static price for '{asset}' must be positive")
