# arbbot/config.py
"""
Arbitrage Engine Configuration
Loads economic parameters, endpoints and venues from the environment (.env)
"""

import math
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from web3 import Web3

# -----------------------------
# Paths
# -----------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / "config" / ".env"

# -----------------------------
# Economic defaults
# -----------------------------
DEFAULT_PROFIT_THRESHOLD_PCT = Decimal("0.1")   # Min price gap between venues (%)
DEFAULT_MIN_PROFIT = Decimal("0.001")           # Min net profit (token A units)
DEFAULT_FLASH_LOAN_FEE = Decimal("0.0009")      # 0.09%
DEFAULT_SLIPPAGE_BPS = 50                       # 0.50%
DEFAULT_GAS_UNITS = 500_000                     # Typical for a V3 dual swap + flashloan
DEFAULT_GAS_LIMIT = 1_500_000                   # Transaction gas limit

# -----------------------------
# Trade size sweep (token A units)
# -----------------------------
DEFAULT_TRADE_SIZE_MIN = Decimal("0.1")
DEFAULT_TRADE_SIZE_MAX = Decimal("2.0")
DEFAULT_TRADE_SIZE_STEP = Decimal("0.1")

# -----------------------------
# Loop & execution
# -----------------------------
DEFAULT_POLLING_INTERVAL = 3.0       # seconds (~1 Arbitrum block)
DEFAULT_CONFIRMATION_TIMEOUT = 120   # seconds
DEFAULT_HISTORY_SIZE = 50
DEFAULT_VENUES = ("uniswap_v3", "sushiswap_v3")


class ConfigError(Exception):
    """Missing or invalid configuration. Fatal at startup."""


@dataclass(frozen=True)
class BotConfig:
    base_token: str
    target_tokens: Tuple[str, ...]
    rpc_endpoints: Tuple[str, ...]

    profit_threshold_pct: Decimal = DEFAULT_PROFIT_THRESHOLD_PCT
    min_profit: Decimal = DEFAULT_MIN_PROFIT
    flash_loan_fee: Decimal = DEFAULT_FLASH_LOAN_FEE
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    gas_units: int = DEFAULT_GAS_UNITS
    gas_limit: int = DEFAULT_GAS_LIMIT

    trade_size_min: Decimal = DEFAULT_TRADE_SIZE_MIN
    trade_size_max: Decimal = DEFAULT_TRADE_SIZE_MAX
    trade_size_step: Decimal = DEFAULT_TRADE_SIZE_STEP

    polling_interval: float = DEFAULT_POLLING_INTERVAL
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    history_size: int = DEFAULT_HISTORY_SIZE
    simulate_before_submit: bool = True

    venues: Tuple[str, ...] = DEFAULT_VENUES
    # {"uniswap_v3": {"factory": "0x..", "quoter": "0x.."}}
    venue_overrides: Dict[str, Dict[str, str]] = field(default_factory=dict)

    arbitrage_contract: Optional[str] = None
    private_key: Optional[str] = None

    def __post_init__(self):
        validate(self)

    @property
    def can_execute(self) -> bool:
        return bool(self.arbitrage_contract and self.private_key)


# =============================================================================
# VALIDATION
# =============================================================================

def _check_address(name: str, value: str) -> None:
    if not value or not Web3.is_address(value):
        raise ConfigError(f"{name} is not a valid address: {value!r}")


def validate(cfg: BotConfig) -> None:
    """Reject configurations with undefined economic parameters"""
    _check_address("ARB_FOR", cfg.base_token)

    if not cfg.target_tokens:
        raise ConfigError("ARB_AGAINST_TOKENS must list at least one token")
    for token in cfg.target_tokens:
        _check_address("ARB_AGAINST_TOKENS entry", token)
        if token.lower() == cfg.base_token.lower():
            raise ConfigError("ARB_AGAINST_TOKENS must not contain ARB_FOR")

    if not cfg.rpc_endpoints:
        raise ConfigError("RPC_ENDPOINTS must list at least one endpoint")

    if len(cfg.venues) < 2:
        raise ConfigError("VENUES must name at least two venues")

    for name, value in (
        ("PROFIT_THRESHOLD", cfg.profit_threshold_pct),
        ("MIN_PROFIT_THRESHOLD", cfg.min_profit),
        ("FLASH_LOAN_FEE", cfg.flash_loan_fee),
        ("TRADE_SIZE_MIN", cfg.trade_size_min),
        ("TRADE_SIZE_MAX", cfg.trade_size_max),
        ("TRADE_SIZE_STEP", cfg.trade_size_step),
    ):
        if not Decimal(value).is_finite():
            raise ConfigError(f"{name} must be a finite number")
    if not (math.isfinite(cfg.polling_interval) and math.isfinite(cfg.confirmation_timeout)):
        raise ConfigError("Polling interval and confirmation timeout must be finite")

    if cfg.profit_threshold_pct < 0:
        raise ConfigError("PROFIT_THRESHOLD must be >= 0")
    if cfg.min_profit < 0:
        raise ConfigError("MIN_PROFIT_THRESHOLD must be >= 0")
    if not Decimal(0) <= cfg.flash_loan_fee <= Decimal(1):
        raise ConfigError("FLASH_LOAN_FEE must be within [0, 1]")
    if not 0 <= cfg.slippage_bps <= 10_000:
        raise ConfigError("SLIPPAGE_TOLERANCE_BPS must be within [0, 10000]")
    if cfg.gas_units <= 0 or cfg.gas_limit <= 0:
        raise ConfigError("Gas units and gas limit must be positive")

    if cfg.trade_size_min <= 0 or cfg.trade_size_step <= 0:
        raise ConfigError("Trade size minimum and step must be positive")
    if cfg.trade_size_max < cfg.trade_size_min:
        raise ConfigError("TRADE_SIZE_MAX must be >= TRADE_SIZE_MIN")

    if cfg.polling_interval <= 0 or cfg.confirmation_timeout <= 0:
        raise ConfigError("Polling interval and confirmation timeout must be positive")
    if cfg.history_size <= 0:
        raise ConfigError("HISTORY_SIZE must be positive")

    if cfg.arbitrage_contract:
        _check_address("ARBITRAGE_CONTRACT", cfg.arbitrage_contract)


# =============================================================================
# ENVIRONMENT LOADING
# =============================================================================

def _split(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _decimal(env: Dict[str, str], key: str, default: Decimal) -> Decimal:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{key} is not a number: {raw!r}")
    if not value.is_finite():
        raise ConfigError(f"{key} must be a finite number: {raw!r}")
    return value


def _int(env: Dict[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} is not an integer: {raw!r}")


def _float(env: Dict[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} is not a number: {raw!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{key} must be a finite number: {raw!r}")
    return value


def _venue_overrides(env: Dict[str, str], venues: Tuple[str, ...]) -> Dict[str, Dict[str, str]]:
    """e.g. UNISWAP_V3_FACTORY / UNISWAP_V3_QUOTER"""
    overrides = {}
    for name in venues:
        prefix = name.upper()
        entry = {}
        for key in ("factory", "quoter"):
            value = env.get(f"{prefix}_{key.upper()}")
            if value:
                entry[key] = value
        if entry:
            overrides[name] = entry
    return overrides


def config_from_env(env: Dict[str, str], require_signer: bool = True) -> BotConfig:
    """Build a BotConfig from an environment mapping"""
    base_token = env.get("ARB_FOR")
    if not base_token:
        raise ConfigError("ARB_FOR not set in environment")

    venues = _split(env.get("VENUES")) or DEFAULT_VENUES

    cfg = BotConfig(
        base_token=base_token,
        target_tokens=_split(env.get("ARB_AGAINST_TOKENS")),
        rpc_endpoints=_split(env.get("RPC_ENDPOINTS")),
        profit_threshold_pct=_decimal(env, "PROFIT_THRESHOLD", DEFAULT_PROFIT_THRESHOLD_PCT),
        min_profit=_decimal(env, "MIN_PROFIT_THRESHOLD", DEFAULT_MIN_PROFIT),
        flash_loan_fee=_decimal(env, "FLASH_LOAN_FEE", DEFAULT_FLASH_LOAN_FEE),
        slippage_bps=_int(env, "SLIPPAGE_TOLERANCE_BPS", DEFAULT_SLIPPAGE_BPS),
        gas_units=_int(env, "ESTIMATED_GAS_UNITS", DEFAULT_GAS_UNITS),
        gas_limit=_int(env, "GAS_LIMIT", DEFAULT_GAS_LIMIT),
        trade_size_min=_decimal(env, "TRADE_SIZE_MIN", DEFAULT_TRADE_SIZE_MIN),
        trade_size_max=_decimal(env, "TRADE_SIZE_MAX", DEFAULT_TRADE_SIZE_MAX),
        trade_size_step=_decimal(env, "TRADE_SIZE_STEP", DEFAULT_TRADE_SIZE_STEP),
        polling_interval=_float(env, "POLLING_INTERVAL_SECONDS", DEFAULT_POLLING_INTERVAL),
        confirmation_timeout=_float(env, "CONFIRMATION_TIMEOUT_SECONDS", DEFAULT_CONFIRMATION_TIMEOUT),
        history_size=_int(env, "HISTORY_SIZE", DEFAULT_HISTORY_SIZE),
        simulate_before_submit=env.get("SIMULATE_BEFORE_SUBMIT", "true").lower() != "false",
        venues=venues,
        venue_overrides=_venue_overrides(env, venues),
        arbitrage_contract=env.get("ARBITRAGE_CONTRACT") or None,
        private_key=env.get("PRIVATE_KEY") or None,
    )

    if require_signer:
        if not cfg.arbitrage_contract:
            raise ConfigError("ARBITRAGE_CONTRACT not set in environment")
        if not cfg.private_key:
            raise ConfigError("PRIVATE_KEY not set in environment")

    return cfg


def load_config(env_path: Optional[Path] = None, require_signer: bool = True) -> BotConfig:
    """
    Load configuration from .env (if present) and the process environment
    Raises ConfigError - the process must refuse to start
    """
    path = Path(env_path) if env_path else ENV_PATH
    if path.exists():
        load_dotenv(path)
    elif env_path is not None:
        raise ConfigError(f".env file not found at {path}")

    return config_from_env(dict(os.environ), require_signer=require_signer)
