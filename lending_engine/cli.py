"""Command-line interface for the lending engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .config import AppConfig, load_config
from .engine.core import LendingEngine
from .engine.interest import utilization
from .exceptions import LendingError
from .logging_setup import configure_logging
from .oracles import PythOracle, StaticPriceOracle
from .persistence import load_state, save_state
from .services import PositionMonitor
from .tokens import InMemoryTokenLedger

ACCOUNT_COMMANDS = ("supply", "withdraw", "borrow", "repay")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-engine",
        description="Collateralized multi-asset lending engine",
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
    parser.add_argument(
        "--state",
        default=None,
        help="Path to the JSON state file (default: engine.state_file from config)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init", help="List configured markets and seed token balances")
    sub.add_parser("markets", help="Show listed markets")

    health_parser = sub.add_parser("health", help="Show an account's health factor")
    health_parser.add_argument("account")

    for name in ACCOUNT_COMMANDS:
        op = sub.add_parser(name, help=f"{name.capitalize()} an asset")
        op.add_argument("asset")
        op.add_argument("amount")
        op.add_argument("--account", required=True, help="Acting account")
        if name == "repay":
            op.add_argument(
                "--on-behalf-of",
                dest="borrower",
                default=None,
                help="Repay another account's debt",
            )

    liq = sub.add_parser("liquidate", help="Liquidate an unhealthy account")
    liq.add_argument("borrower")
    liq.add_argument("repay_asset")
    liq.add_argument("collateral_asset")
    liq.add_argument("amount")
    liq.add_argument("--account", required=True, help="Liquidator account")

    accrue_parser = sub.add_parser("accrue", help="Accrue interest on a market")
    accrue_parser.add_argument("asset")

    sub.add_parser("check", help="Check borrower health and send alerts")
    sub.add_parser("report", help="Generate daily market report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


def _build_oracle(config: AppConfig) -> StaticPriceOracle | PythOracle:
    if config.price_oracle.provider == "pyth":
        return PythOracle(config.price_oracle.pyth)
    return StaticPriceOracle(config.price_oracle.static)


def _print_markets(engine: LendingEngine) -> None:
    markets = engine.markets()
    if not markets:
        print("No markets listed.")
        return
    for m in markets:
        util = utilization(m.total_supply, m.total_borrows)
        print(
            f"{m.asset}: supply {m.total_supply} · borrows {m.total_borrows} · "
            f"reserves {m.total_reserves} · utilization {util * 100:.2f}% · "
            f"borrow APR {m.borrow_rate * 100:.2f}% · supply APR {m.supply_rate * 100:.2f}% · "
            f"CF {m.collateral_factor} · RF {m.reserve_factor}"
        )


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    state_path = Path(args.state or config.engine.state_file)

    oracle = _build_oracle(config)
    if isinstance(oracle, PythOracle):
        await oracle.refresh()
    tokens = InMemoryTokenLedger(config.engine.custodian)
    engine = LendingEngine.from_config(config, oracle, tokens)

    if args.command == "init":
        if load_state(state_path, engine, tokens):
            print(f"State file {state_path} already exists; listing new markets only.")
        else:
            tokens.load(config.tokens.balances)
        for market in engine.list_configured_markets(config):
            print(f"Listed {market.asset}")
        save_state(state_path, engine, tokens)
        return

    if not load_state(state_path, engine, tokens):
        raise FileNotFoundError(f"State file not found: {state_path} (run 'init' first)")

    if args.command == "markets":
        _print_markets(engine)
    elif args.command == "health":
        health = engine.account_health(args.account)
        print(
            f"{args.account}: health factor {health.health_factor} "
            f"(collateral {health.collateral_value}, debt {health.debt_value}, "
            f"minimum {engine.min_collateral_ratio})"
        )
    elif args.command in ACCOUNT_COMMANDS:
        if args.command == "repay":
            paid = engine.repay(args.asset, args.account, args.amount, args.borrower)
            print(f"Repaid {paid} {args.asset}")
        else:
            result = getattr(engine, args.command)(args.asset, args.account, args.amount)
            print(f"{args.command.capitalize()} {args.amount} {args.asset}: balance {result}")
        save_state(state_path, engine, tokens)
    elif args.command == "liquidate":
        seized = engine.liquidate(
            args.account, args.borrower, args.repay_asset, args.collateral_asset, args.amount
        )
        print(f"Seized {seized} {args.collateral_asset} from {args.borrower}")
        save_state(state_path, engine, tokens)
    elif args.command == "accrue":
        market = engine.accrue(args.asset)
        print(f"{market.asset} accrued: borrows {market.total_borrows}, supply {market.total_supply}")
        save_state(state_path, engine, tokens)
    elif args.command in ("check", "report", "monitor"):
        async def refresh() -> None:
            load_state(state_path, engine, tokens)
            if isinstance(oracle, PythOracle):
                await oracle.refresh()

        monitor = PositionMonitor(engine, config, refresh_prices=refresh)
        if args.command == "check":
            await monitor.check_and_alert()
        elif args.command == "report":
            await monitor.generate_daily_report()
        else:
            await monitor.run_continuous(args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except LendingError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
