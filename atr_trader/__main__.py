#!/usr/bin/env python3
"""
ATR Partition Trader command line.

Usage:
    python -m atr_trader --paper --side buy
    python -m atr_trader --config config.yaml      # live, Binance futures

In live mode type "buy", "sell" or "quit" and press enter.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from .app import TradingApp, build_binance_app, build_paper_app
from .config import ConfigError, load_config, setup_logging
from .core.event_bus import Event, EventType


class ConsoleUserInterface:
    """Prints label changes and messages to stdout."""

    def __init__(self):
        self._last_labels = None

    def render_labels(self, buy_text: str, sell_text: str) -> None:
        labels = (buy_text, sell_text)
        if labels != self._last_labels:
            self._last_labels = labels
            print(f"[ {buy_text} ]  [ {sell_text} ]")

    def show_message(self, text: str) -> None:
        print(f"! {text}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="atr_trader",
        description="Risk-sized, partitioned market entries from ATR"
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--env-file", default=None, help="Path to .env with API credentials")
    parser.add_argument("--paper", action="store_true", help="Run a paper session")
    parser.add_argument("--side", choices=["buy", "sell"], default="buy",
                        help="Paper session: direction of the demo entry")
    parser.add_argument("--balance", type=float, default=10_000.0,
                        help="Paper session: account balance")
    parser.add_argument("--price", type=float, default=45_000.0,
                        help="Paper session: bid price")
    parser.add_argument("--atr", type=float, default=150.0,
                        help="Paper session: ATR in price units for every timeframe")
    return parser.parse_args(argv)


async def run_paper(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    app = build_paper_app(
        config,
        balance=args.balance,
        bid=args.price,
        ask=args.price + config.pip_size,
        volatility={timeframe: args.atr for timeframe in config.timeframes}
    )

    outcomes: List[Event] = []
    app.event_bus.subscribe(EventType.PARTITION_SUBMITTED, outcomes.append)
    app.event_bus.subscribe(EventType.PARTITION_FAILED, outcomes.append)

    await app.start()
    print(f"[ {app.ui.buy_label} ]  [ {app.ui.sell_label} ]")

    if args.side == "buy":
        await app.enter_long()
    else:
        await app.enter_short()

    expected = len(config.entry.weights)
    for _ in range(50):
        if len(outcomes) >= expected or app.entry_processor.entries_rejected_count:
            break
        await asyncio.sleep(0.1)

    await app.stop()

    for event in sorted(outcomes, key=lambda e: e.data["index"]):
        data = event.data
        print(f"{data['label']}: {data['status']} volume={data['volume']}")
    for message in app.ui.messages:
        print(f"! {message}")

    return 0 if app.entry_processor.partitions_failed_count == 0 else 1


async def _read_commands(app: TradingApp) -> None:
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        command = line.strip().lower()
        if not line or command in ("quit", "exit", "q"):
            return
        if command == "buy":
            await app.enter_long()
        elif command == "sell":
            await app.enter_short()
        elif command:
            print("Commands: buy, sell, quit")


async def run_live(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    app = await build_binance_app(config, ConsoleUserInterface(), env_file=args.env_file)
    await app.start()
    try:
        await _read_commands(app)
    finally:
        await app.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run_paper(args) if args.paper else run_live(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
