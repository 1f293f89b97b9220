# arbbot/main.py
"""
Flashloan Arbitrage Engine Main Loop

THIS IS THE ENTRY POINT - Run with: python -m arbbot.main

MODES:
1. SCAN: Find and log opportunities, never execute (safe)
2. EXECUTE: Submit the first executable opportunity of each block
"""

import argparse
import logging
import queue
import signal
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from arbbot.arbitrage_scanner import (
    Opportunity,
    OpportunitySearch,
    SizeRange,
    TokenPair,
    choose_direction,
    exceeds_threshold,
    price_gap_pct,
)
from arbbot.config import BotConfig, ConfigError, load_config
from arbbot.executor import ArbitrageContract, ExecutionCoordinator, ExecutionRecord
from arbbot.observe import RecentLogHandler, setup_logging
from arbbot.profit_calculator import format_profit_analysis
from arbbot.quote_engine import MarketQuoteAdapter, PoolQuote, make_adapter
from arbbot.rpc_health import EndpointPool, EndpointUnavailableError
from arbbot.tokens import TokenDescriptor, TokenRegistry
from arbbot.venues import resolve_venues

logger = logging.getLogger(__name__)


# =============================================================================
# STATISTICS TRACKER
# =============================================================================

class StatisticsTracker:
    """Track bot performance statistics (profit in token A smallest units)"""

    def __init__(self):
        self.start_time = datetime.now()
        self.scan_count = 0
        self.pairs_checked = 0
        self.opportunities_found = 0
        self.trades_executed = 0
        self.trades_successful = 0
        self.total_profit = 0
        self.best_net_profit = 0

    def record_scan(self, pairs: int):
        self.scan_count += 1
        self.pairs_checked += pairs

    def record_opportunity(self, opportunity: Opportunity):
        self.opportunities_found += 1
        if opportunity.net_profit > self.best_net_profit:
            self.best_net_profit = opportunity.net_profit

    def record_trade(self, record: ExecutionRecord):
        self.trades_executed += 1
        if record.succeeded:
            self.trades_successful += 1
            self.total_profit += record.profit

    def get_summary(self, token: Optional[TokenDescriptor] = None) -> str:
        runtime = datetime.now() - self.start_time
        success_rate = (self.trades_successful / self.trades_executed * 100) if self.trades_executed > 0 else 0

        def fmt(amount: int) -> str:
            if token is None:
                return str(amount)
            return f"{token.from_base_units(amount):.8f} {token.symbol}"

        return (
            f"\n{'='*60}\n"
            f"📊 BOT STATISTICS\n"
            f"{'='*60}\n"
            f"Runtime: {runtime}\n"
            f"Blocks Scanned: {self.scan_count}\n"
            f"Pairs Checked: {self.pairs_checked}\n"
            f"Opportunities Found: {self.opportunities_found}\n"
            f"Trades Executed: {self.trades_executed}\n"
            f"Trades Successful: {self.trades_successful} ({success_rate:.1f}%)\n"
            f"Expected Profit (confirmed trades): {fmt(self.total_profit)}\n"
            f"Best Opportunity: {fmt(self.best_net_profit)}\n"
            f"{'='*60}\n"
        )


# =============================================================================
# ENGINE STATE & COMMANDS
# =============================================================================

class BotMode:
    SCAN = "scan"        # Observe only, the coordinator is never called
    EXECUTE = "execute"  # Real execution through the arbitrage contract


class Command(Enum):
    START = "start"
    STOP = "stop"
    STATUS = "status"
    HISTORY = "history"
    LOGS = "logs"
    SHUTDOWN = "shutdown"


Reply = Callable[[str], None]


@dataclass
class EngineState:
    """
    Mutable engine state owned by the driver

    Commands are only consumed between ticks, on the driver's own thread,
    so they never interleave with a scan or an execution.
    """
    scanning: bool = True
    shutdown: bool = False
    last_block: Optional[int] = None
    commands: "queue.Queue[Tuple[Command, Optional[Reply]]]" = field(default_factory=queue.Queue)

    def submit(self, command: Command, reply: Optional[Reply] = None) -> None:
        self.commands.put((command, reply))


def check_execution_venues(config: BotConfig) -> None:
    """
    The arbitrage contract swaps on exactly two concentrated-liquidity venues,
    so execute mode cannot pick routes from a wider venue set.
    """
    if len(config.venues) != 2:
        raise ConfigError(
            f"Execute mode needs exactly the contract's two venues in VENUES, got {', '.join(config.venues)}"
        )

    try:
        venues = resolve_venues(config.venues, config.venue_overrides)
    except KeyError as e:
        raise ConfigError(f"VENUES: {e}") from e

    for venue in venues:
        if not venue.is_concentrated:
            raise ConfigError(f"Execute mode only supports concentrated-liquidity venues, got {venue.name}")


def human_price(quote: PoolQuote, pair: TokenPair) -> Decimal:
    """Price of one whole token B in whole token A"""
    raw = Decimal(quote.spot_price.numerator) / Decimal(quote.spot_price.denominator)
    return raw * (Decimal(10) ** (pair.token_b.decimals - pair.token_a.decimals))


# =============================================================================
# MAIN BOT CLASS
# =============================================================================

class ArbitrageBot:
    """
    Block-driven flashloan arbitrage engine

    Per new block:
    1. Spot prices for every configured pair on every venue
    2. Price-gap gate (cheapest venue is the buy leg)
    3. Trade-size sweep for the best net profit
    4. Execute the first opportunity found (execute mode), then stop the tick
    """

    def __init__(
        self,
        config: BotConfig,
        mode: str = BotMode.SCAN,
        endpoints: Optional[EndpointPool] = None,
        tokens: Optional[TokenRegistry] = None,
        adapters: Optional[Sequence[MarketQuoteAdapter]] = None,
        coordinator: Optional[ExecutionCoordinator] = None,
        log_buffer: Optional[RecentLogHandler] = None,
    ):
        self.config = config
        self.mode = mode
        self.state = EngineState()
        self.stats = StatisticsTracker()
        self.log_buffer = log_buffer

        self.endpoints = endpoints or EndpointPool(config.rpc_endpoints)
        self.tokens = tokens or TokenRegistry(self.endpoints)

        if adapters is None:
            try:
                venues = resolve_venues(config.venues, config.venue_overrides)
            except KeyError as e:
                raise ConfigError(f"VENUES: {e}") from e
            adapters = [make_adapter(venue, self.endpoints) for venue in venues]
        self.adapters: List[MarketQuoteAdapter] = list(adapters)
        self._adapters_by_name: Dict[str, MarketQuoteAdapter] = {a.name: a for a in self.adapters}

        if mode == BotMode.EXECUTE:
            check_execution_venues(config)

        if coordinator is None and mode == BotMode.EXECUTE:
            if not config.can_execute:
                raise ConfigError("Execute mode requires ARBITRAGE_CONTRACT and PRIVATE_KEY")
            target = ArbitrageContract(
                endpoints=self.endpoints,
                address=config.arbitrage_contract,
                private_key=config.private_key,
                venues=(config.venues[0], config.venues[1]),
                gas_limit=config.gas_limit,
                simulate=config.simulate_before_submit,
            )
            coordinator = ExecutionCoordinator(
                target=target,
                slippage_bps=config.slippage_bps,
                confirmation_timeout=config.confirmation_timeout,
                history_size=config.history_size,
            )
        self.coordinator = coordinator

        self._base_token: Optional[TokenDescriptor] = None
        self._search: Optional[OpportunitySearch] = None

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info("🛑 Shutdown signal received...")
        self.state.shutdown = True

    # -------------------------------------------------------------------------
    # Lazily resolved (needs the chain)
    # -------------------------------------------------------------------------

    @property
    def base_token(self) -> TokenDescriptor:
        if self._base_token is None:
            self._base_token = self.tokens.get(self.config.base_token)
        return self._base_token

    @property
    def search(self) -> OpportunitySearch:
        if self._search is None:
            base = self.base_token
            self._search = OpportunitySearch(
                flash_loan_fee=self.config.flash_loan_fee,
                gas_units=self.config.gas_units,
                min_profit=base.to_base_units(self.config.min_profit),
            )
        return self._search

    def size_range(self, token: TokenDescriptor) -> SizeRange:
        return SizeRange(
            minimum=token.to_base_units(self.config.trade_size_min),
            maximum=token.to_base_units(self.config.trade_size_max),
            step=token.to_base_units(self.config.trade_size_step),
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def process_commands(self) -> None:
        while True:
            try:
                command, reply = self.state.commands.get_nowait()
            except queue.Empty:
                return

            response = self.handle_command(command)
            logger.info(response)
            if reply is not None:
                reply(response)

    def handle_command(self, command: Command) -> str:
        if command is Command.START:
            self.state.scanning = True
            return "▶️ Scanning started"

        if command is Command.STOP:
            self.state.scanning = False
            return "⏸️ Scanning paused"

        if command is Command.SHUTDOWN:
            self.state.shutdown = True
            return "🛑 Shutting down"

        if command is Command.STATUS:
            return self.status()

        if command is Command.HISTORY:
            return self.history_report()

        if command is Command.LOGS:
            if self.log_buffer is None:
                return "No log buffer attached"
            return "\n".join(self.log_buffer.lines()) or "No logs yet"

        raise ValueError(f"Unknown command: {command}")

    def status(self) -> str:
        coordinator_state = self.coordinator.state.value if self.coordinator else "disabled"
        lines = [
            f"Mode: {self.mode}",
            f"Scanning: {'on' if self.state.scanning else 'paused'}",
            f"RPC: {self.endpoints.current_url} (failovers: {self.endpoints.failovers})",
            f"Last block: {self.state.last_block}",
            f"Execution: {coordinator_state}",
        ]
        if self.coordinator is not None and self.coordinator.attempts:
            lines.append(f"Success rate: {self.coordinator.successes}/{self.coordinator.attempts}")
        return "\n".join(lines)

    def history_report(self, limit: int = 10) -> str:
        if self.coordinator is None or not self.coordinator.history:
            return "No executions yet"

        lines = []
        for record in self.coordinator.recent(limit):
            line = f"#{record.sequence_id} {record.pair} {record.outcome.value} profit={record.profit}"
            if record.tx_hash:
                line += f" tx={record.tx_hash}"
            if record.reason:
                line += f" ({record.reason})"
            lines.append(line)
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Decision loop
    # -------------------------------------------------------------------------

    def run_tick(self) -> Optional[Opportunity]:
        """One poll: commands, then at most one scan per new block"""
        self.process_commands()
        if self.state.shutdown or not self.state.scanning:
            return None

        try:
            self.endpoints.require()
        except EndpointUnavailableError as e:
            logger.warning(f"⚠️ {e}, retrying next tick")
            return None

        block = self.endpoints.last_block
        if self.state.last_block is not None and block <= self.state.last_block:
            logger.debug(f"Block {block} already scanned")
            return None

        if self.coordinator is not None and not self.coordinator.is_idle:
            logger.info(f"⏳ Execution in flight ({self.coordinator.state.value}), skipping block {block}")
            return None

        self.state.last_block = block
        return self.scan_block(block)

    def scan_block(self, block: int) -> Optional[Opportunity]:
        base = self.base_token
        gas_price = self.endpoints.get_gas_price()

        logger.info("-" * 40)
        logger.info(f"🔎 Block {block} | gas {gas_price / 10**9:.4f} gwei")

        checked = 0
        found: Optional[Opportunity] = None

        for target in self.config.target_tokens:
            checked += 1
            try:
                found = self.check_pair(base, target, gas_price)
            except EndpointUnavailableError as e:
                logger.warning(f"⚠️ {e}, abandoning block {block}")
                break
            except Exception as e:
                logger.error(f"[{self.tokens.get_symbol(target)}] pair check failed: {e}")
                continue

            if found is not None:
                break

        self.stats.record_scan(checked)
        if found is None:
            return None

        self.stats.record_opportunity(found)
        logger.info(
            f"💰 [{found.opportunity_id}] {found.pair.label} {found.direction}\n"
            + format_profit_analysis(found.profit_analysis, base.symbol, base.decimals)
        )

        if self.mode == BotMode.EXECUTE and self.coordinator is not None:
            record = self.coordinator.execute(found)
            if record is not None:
                self.stats.record_trade(record)

        return found

    def check_pair(self, base: TokenDescriptor, target_address: str, gas_price: int) -> Optional[Opportunity]:
        target = self.tokens.get(target_address)
        pair = TokenPair(token_a=base, token_b=target)

        quotes: List[PoolQuote] = []
        for adapter in self.adapters:
            try:
                quote = adapter.get_spot_price(base.address, target.address)
            except OSError as e:
                raise EndpointUnavailableError(f"[{pair.label}] {adapter.name} price read failed: {e}") from e
            except Exception as e:
                logger.warning(f"[{pair.label}] {adapter.name} price read failed: {e}")
                continue
            if quote is None:
                logger.info(f"[{pair.label}] no liquid pool on {adapter.name}")
                continue
            quotes.append(quote)

        chosen = choose_direction(quotes)
        if chosen is None:
            logger.info(f"[{pair.label}] fewer than two venues with liquidity, skipping")
            return None

        buy, sell = chosen
        gap = price_gap_pct(buy, sell)
        logger.info(
            f"[{pair.label}] {buy.venue} {human_price(buy, pair):.8f} | "
            f"{sell.venue} {human_price(sell, pair):.8f} | gap {gap:.4f}%"
        )

        if not exceeds_threshold(gap, self.config.profit_threshold_pct):
            logger.info(f"[{pair.label}] gap not above {self.config.profit_threshold_pct}% threshold")
            return None

        return self.search.find_best(
            pair,
            self._adapters_by_name[buy.venue],
            self._adapters_by_name[sell.venue],
            buy.fee_tier,
            self.size_range(base),
            gas_price,
        )

    def run(self, once: bool = False):
        """
        Main bot loop
        Polls every polling_interval seconds until shutdown
        """
        logger.info("=" * 60)
        logger.info("🚀 ARBITRAGE ENGINE STARTING")
        logger.info(f"Mode: {self.mode}")
        logger.info(f"Venues: {', '.join(a.name for a in self.adapters)}")
        logger.info(f"Pairs: {len(self.config.target_tokens)} against {self.config.base_token}")
        logger.info(f"RPC endpoints: {len(self.endpoints.endpoints)}")
        logger.info("=" * 60)

        # Signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

        try:
            while not self.state.shutdown:
                try:
                    self.run_tick()
                except Exception as e:
                    logger.error(f"Loop error: {e}")

                if once or self.state.shutdown:
                    break
                time.sleep(self.config.polling_interval)

        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")

        finally:
            logger.info(self.stats.get_summary(self._base_token))
            logger.info("Bot stopped.")


# =============================================================================
# ENTRY POINT
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Flashloan Arbitrage Engine")
    parser.add_argument(
        "--mode",
        choices=[BotMode.SCAN, BotMode.EXECUTE],
        default=BotMode.SCAN,
        help="Bot mode: scan (observe only), execute (real trades)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )
    parser.add_argument(
        "--env",
        default=None,
        help="Path to .env file (default: config/.env)",
    )

    args = parser.parse_args(argv)
    log_buffer = setup_logging()

    try:
        config = load_config(args.env, require_signer=args.mode == BotMode.EXECUTE)
        bot = ArbitrageBot(config, mode=args.mode, log_buffer=log_buffer)
    except ConfigError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 1

    bot.run(once=args.once)
    return 0


if __name__ == "__main__":
    sys.exit(main())
