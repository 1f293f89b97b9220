# arbbot/__init__.py
"""
Flashloan Arbitrage Engine
Cross-venue flashloan arbitrage for Arbitrum DEXes

Modules:
- config: Configuration and environment
- rpc_health: RPC endpoint pool with failover
- tokens: ERC20 token registry
- venues: DEX venue registry
- quote_engine: Market quote adapters (uniswap_v3, uniswap_v2)
- profit_calculator: Flashloan profit model
- arbitrage_scanner: Opportunity search
- executor: Single-flight execution coordinator
- observe: Logging setup
- main: Entry point
"""

__version__ = "3.0.0"
__author__ = "TradeBot"

from arbbot.arbitrage_scanner import Opportunity, OpportunitySearch, SizeRange, TokenPair
from arbbot.config import BotConfig, ConfigError, load_config
from arbbot.executor import ExecutionCoordinator, ExecutionOutcome, ExecutionRecord, ExecutionState
from arbbot.profit_calculator import (
    ProfitAnalysis,
    flashloan_repayment,
    minimum_acceptable_output,
    net_profit,
)
from arbbot.rpc_health import EndpointPool, EndpointUnavailableError

__all__ = [
    "BotConfig",
    "ConfigError",
    "load_config",
    "EndpointPool",
    "EndpointUnavailableError",
    "ProfitAnalysis",
    "flashloan_repayment",
    "net_profit",
    "minimum_acceptable_output",
    "Opportunity",
    "OpportunitySearch",
    "SizeRange",
    "TokenPair",
    "ExecutionCoordinator",
    "ExecutionOutcome",
    "ExecutionRecord",
    "ExecutionState",
]
