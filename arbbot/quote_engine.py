# arbbot/quote_engine.py
"""
Market Quote Adapters
Pool discovery, spot prices and exact-input swap simulation per venue kind
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Optional, Tuple

from web3 import Web3

from arbbot.rpc_health import EndpointPool
from arbbot.venues import VenueDescriptor, VenueKind

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class LiquidPool:
    pool_address: str
    fee_tier: int


@dataclass(frozen=True)
class PoolQuote:
    """
    Spot price snapshot for one venue. Never reused across poll cycles.

    spot_price is the price of token B expressed in token A, in smallest
    units (exact ratio, no floating point).
    """
    venue: str
    pool_address: str
    fee_tier: int
    spot_price: Fraction
    has_liquidity: bool


@dataclass(frozen=True)
class SwapQuote:
    """Simulated exact-input hop. amount_out == 0 means no route / no liquidity."""
    venue: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    fee_tier: int

    @property
    def has_route(self) -> bool:
        return self.amount_out > 0


# =============================================================================
# HELPERS
# =============================================================================

def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Pool token ordering (token0 has the lower address)"""
    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    return token_b, token_a


def orient_price(raw_token1_per_token0: Fraction, token_a: str, token_b: str) -> Fraction:
    """
    Convert a pool's token1/token0 ratio into the price of token B in token A
    """
    token0, _ = sort_tokens(token_a, token_b)
    if token0.lower() == token_a.lower():
        # raw = B per A
        return 1 / raw_token1_per_token0
    return raw_token1_per_token0


# =============================================================================
# ADAPTER BASE
# =============================================================================

class MarketQuoteAdapter(ABC):
    """One adapter per venue; reads chain state through the endpoint pool"""

    def __init__(self, venue: VenueDescriptor, endpoints: EndpointPool):
        self.venue = venue
        self.endpoints = endpoints
        # Pool addresses never change for a (pair, fee); liquidity is never cached
        self._pool_cache: Dict[Tuple[str, str, int], str] = {}

    @property
    def name(self) -> str:
        return self.venue.name

    @property
    def w3(self) -> Web3:
        return self.endpoints.current()

    @abstractmethod
    def find_liquid_pool(self, token_a: str, token_b: str) -> Optional[LiquidPool]:
        ...

    @abstractmethod
    def get_spot_price(self, token_a: str, token_b: str) -> Optional[PoolQuote]:
        ...

    @abstractmethod
    def quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapQuote:
        ...

    def _no_route(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapQuote:
        return SwapQuote(
            venue=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=0,
            fee_tier=fee_tier,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def make_adapter(venue: VenueDescriptor, endpoints: EndpointPool) -> MarketQuoteAdapter:
    """Adapter for the venue's kind"""
    from arbbot.uniswap_v2 import ConstantProductAdapter
    from arbbot.uniswap_v3 import ConcentratedLiquidityAdapter

    if venue.kind is VenueKind.CONCENTRATED_LIQUIDITY:
        return ConcentratedLiquidityAdapter(venue, endpoints)
    if venue.kind is VenueKind.CONSTANT_PRODUCT:
        return ConstantProductAdapter(venue, endpoints)
    raise ValueError(f"Unsupported venue kind: {venue.kind}")
