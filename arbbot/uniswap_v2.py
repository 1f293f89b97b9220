# arbbot/uniswap_v2.py
import logging
from fractions import Fraction
from typing import Optional

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from arbbot.quote_engine import (
    ZERO_ADDRESS,
    LiquidPool,
    MarketQuoteAdapter,
    PoolQuote,
    SwapQuote,
    orient_price,
)

logger = logging.getLogger(__name__)

FACTORY_ABI = [
    {
        "name": "getPair",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"},
        ],
        "outputs": [{"name": "pair", "type": "address"}],
    },
]

PAIR_ABI = [
    {
        "name": "getReserves",
        "outputs": [
            {"name": "_reserve0", "type": "uint112"},
            {"name": "_reserve1", "type": "uint112"},
            {"name": "_blockTimestampLast", "type": "uint32"},
        ],
        "inputs": [],
        "stateMutability": "view",
        "type": "function",
    }
]

ROUTER_ABI = [
    {
        "name": "getAmountsOut",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
]


class ConstantProductAdapter(MarketQuoteAdapter):
    """V2 pairs have one implicit fee, so there is no tier probing"""

    @property
    def fee_tier(self) -> int:
        return self.venue.fee_tiers[0]

    def _pair_address(self, token_a: str, token_b: str) -> Optional[str]:
        key = (token_a.lower(), token_b.lower(), self.fee_tier)
        if key in self._pool_cache:
            return self._pool_cache[key]

        factory = self.w3.eth.contract(address=self.venue.factory, abi=FACTORY_ABI)
        pair = factory.functions.getPair(
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b),
        ).call()

        if pair == ZERO_ADDRESS:
            return None

        self._pool_cache[key] = pair
        return pair

    def _reserves(self, pair_address: str):
        pair = self.w3.eth.contract(address=pair_address, abi=PAIR_ABI)
        r0, r1, _ = pair.functions.getReserves().call()
        return r0, r1

    def find_liquid_pool(self, token_a: str, token_b: str) -> Optional[LiquidPool]:
        pair_address = self._pair_address(token_a, token_b)
        if pair_address is None:
            return None

        r0, r1 = self._reserves(pair_address)
        if r0 == 0 or r1 == 0:
            return None

        return LiquidPool(pool_address=pair_address, fee_tier=self.fee_tier)

    def get_spot_price(self, token_a: str, token_b: str) -> Optional[PoolQuote]:
        pair_address = self._pair_address(token_a, token_b)
        if pair_address is None:
            return None

        r0, r1 = self._reserves(pair_address)
        if r0 == 0 or r1 == 0:
            logger.debug(f"[{self.name}] empty reserves for {token_a}/{token_b}")
            return None

        return PoolQuote(
            venue=self.name,
            pool_address=pair_address,
            fee_tier=self.fee_tier,
            spot_price=orient_price(Fraction(r1, r0), token_a, token_b),
            has_liquidity=True,
        )

    def quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapQuote:
        # fee_tier is ignored: the pair's fee is fixed
        if amount_in <= 0:
            return self._no_route(token_in, token_out, amount_in, self.fee_tier)

        router = self.w3.eth.contract(address=self.venue.quoter, abi=ROUTER_ABI)
        path = [
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
        ]

        try:
            amounts = router.functions.getAmountsOut(amount_in, path).call()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"[{self.name}] getAmountsOut reverted for {amount_in}: {e}")
            return self._no_route(token_in, token_out, amount_in, self.fee_tier)

        return SwapQuote(
            venue=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=int(amounts[-1]),
            fee_tier=self.fee_tier,
        )
