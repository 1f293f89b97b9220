# arbbot/arbitrage_scanner.py
"""
Opportunity Search
Sweeps flashloan sizes across a buy venue and a sell venue and keeps the
size with the highest net profit
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterator, Optional, Sequence, Tuple

from arbbot.profit_calculator import FeeFraction, ProfitAnalysis, net_profit
from arbbot.quote_engine import MarketQuoteAdapter, PoolQuote, SwapQuote
from arbbot.rpc_health import EndpointUnavailableError
from arbbot.tokens import TokenDescriptor

logger = logging.getLogger(__name__)

_opportunity_counter = itertools.count(1)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class TokenPair:
    """token_a is borrowed and repaid, token_b is the intermediate"""
    token_a: TokenDescriptor
    token_b: TokenDescriptor

    @property
    def label(self) -> str:
        return f"{self.token_a.symbol}/{self.token_b.symbol}"


@dataclass(frozen=True)
class Direction:
    buy_venue: str   # hop 1: token A -> token B
    sell_venue: str  # hop 2: token B -> token A

    def __str__(self) -> str:
        return f"buy on {self.buy_venue}, sell on {self.sell_venue}"


@dataclass(frozen=True)
class SizeRange:
    """Inclusive ascending sweep of borrow sizes in smallest units"""
    minimum: int
    maximum: int
    step: int

    def __post_init__(self):
        if self.minimum <= 0 or self.step <= 0:
            raise ValueError("SizeRange minimum and step must be positive")
        if self.maximum < self.minimum:
            raise ValueError("SizeRange maximum must be >= minimum")

    def __iter__(self) -> Iterator[int]:
        amount = self.minimum
        while amount <= self.maximum:
            yield amount
            amount += self.step


@dataclass(frozen=True)
class Opportunity:
    pair: TokenPair
    amount_in: int
    first_hop: SwapQuote
    second_hop: SwapQuote
    profit_analysis: ProfitAnalysis
    direction: Direction
    fee_tier: int
    opportunity_id: str = field(default_factory=lambda: f"ARB-{int(time.time())}-{next(_opportunity_counter)}")
    detected_at: float = field(default_factory=time.time)

    @property
    def net_profit(self) -> int:
        return self.profit_analysis.net_profit


# =============================================================================
# DIRECTION SELECTION
# =============================================================================

def choose_direction(quotes: Sequence[PoolQuote]) -> Optional[Tuple[PoolQuote, PoolQuote]]:
    """
    Cheapest venue (lowest price of token B in token A) is the buy leg,
    the dearest the sell leg. Ties keep configured venue order.
    """
    if len(quotes) < 2:
        return None

    buy = min(quotes, key=lambda q: q.spot_price)
    sell = max(quotes, key=lambda q: q.spot_price)
    if buy is sell:
        # All prices equal: keep the first two in configured order
        buy, sell = quotes[0], quotes[1]
    return buy, sell


def price_gap_pct(buy: PoolQuote, sell: PoolQuote) -> Decimal:
    """Percentage by which the sell venue's price exceeds the buy venue's"""
    gap = (sell.spot_price / buy.spot_price - 1) * 100
    return Decimal(gap.numerator) / Decimal(gap.denominator)


def exceeds_threshold(gap_pct: Decimal, threshold_pct: Decimal) -> bool:
    """A gap exactly at the threshold does not qualify"""
    return gap_pct > threshold_pct


# =============================================================================
# OPPORTUNITY SEARCH
# =============================================================================

class OpportunitySearch:
    """
    Discrete linear scan over trade sizes (ascending). A candidate replaces
    the current best only on a strictly higher net profit, so ties keep the
    smallest size.
    """

    def __init__(
        self,
        flash_loan_fee: FeeFraction,
        gas_units: int,
        min_profit: int = 0,
    ):
        self.flash_loan_fee = flash_loan_fee
        self.gas_units = gas_units
        self.min_profit = min_profit

    def find_best(
        self,
        pair: TokenPair,
        venue_buy: MarketQuoteAdapter,
        venue_sell: MarketQuoteAdapter,
        fee_tier: int,
        size_range: SizeRange,
        gas_price: int,
    ) -> Optional[Opportunity]:
        token_a = pair.token_a.address
        token_b = pair.token_b.address
        direction = Direction(buy_venue=venue_buy.name, sell_venue=venue_sell.name)

        best: Optional[Opportunity] = None
        scanned = 0

        for amount_in in size_range:
            scanned += 1
            try:
                first_hop = venue_buy.quote(token_a, token_b, amount_in, fee_tier)
                if not first_hop.has_route:
                    continue

                second_hop = venue_sell.quote(token_b, token_a, first_hop.amount_out, fee_tier)
                if not second_hop.has_route:
                    continue

                analysis = net_profit(
                    amount_in,
                    first_hop.amount_out,
                    second_hop.amount_out,
                    gas_price,
                    self.flash_loan_fee,
                    self.gas_units,
                )
            except OSError as e:
                # Connection-level failure ends the sweep; require() fails over next tick
                raise EndpointUnavailableError(
                    f"[{pair.label}] endpoint failed at amount {amount_in}: {e}"
                ) from e
            except Exception as e:
                logger.warning(f"[{pair.label}] error analyzing amount {amount_in}: {e}")
                continue

            if not analysis.is_profitable or analysis.net_profit < self.min_profit:
                continue

            if best is None or analysis.net_profit > best.net_profit:
                best = Opportunity(
                    pair=pair,
                    amount_in=amount_in,
                    first_hop=first_hop,
                    second_hop=second_hop,
                    profit_analysis=analysis,
                    direction=direction,
                    fee_tier=fee_tier,
                )
                logger.debug(
                    f"[{pair.label}] new best net profit {analysis.net_profit} at amount {amount_in}"
                )

        if best is None:
            logger.info(f"[{pair.label}] no profitable size in {scanned} candidates ({direction})")
        else:
            logger.info(
                f"🎯 [{pair.label}] best size {pair.token_a.from_base_units(best.amount_in)} "
                f"{pair.token_a.symbol}, net profit "
                f"{pair.token_a.from_base_units(best.net_profit)} {pair.token_a.symbol} ({direction})"
            )
        return best
