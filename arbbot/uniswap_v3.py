# arbbot/uniswap_v3.py
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
        "name": "getPool",
        "outputs": [{"name": "pool", "type": "address"}],
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"},
            {"name": "fee", "type": "uint24"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

POOL_ABI = [
    {
        "name": "slot0",
        "outputs": [
            {"name": "sqrtPriceX96", "type": "uint160"},
            {"name": "tick", "type": "int24"},
            {"name": "", "type": "uint16"},
            {"name": "", "type": "uint16"},
            {"name": "", "type": "uint16"},
            {"name": "", "type": "uint8"},
            {"name": "", "type": "bool"},
        ],
        "inputs": [],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "name": "liquidity",
        "outputs": [{"name": "", "type": "uint128"}],
        "inputs": [],
        "stateMutability": "view",
        "type": "function",
    },
]

QUOTER_V2_ABI = [
    {
        "name": "quoteExactInputSingle",
        "outputs": [
            {"name": "amountOut", "type": "uint256"},
            {"name": "sqrtPriceX96After", "type": "uint160"},
            {"name": "initializedTicksCrossed", "type": "uint32"},
            {"name": "gasEstimate", "type": "uint256"},
        ],
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        # QuoterV2 is non-view on-chain; only ever eth_call'ed
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

Q192 = 2 ** 192


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> Fraction:
    """token1/token0 in smallest units, exact"""
    return Fraction(sqrt_price_x96 * sqrt_price_x96, Q192)


class ConcentratedLiquidityAdapter(MarketQuoteAdapter):

    def _pool_address(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        key = (token_a.lower(), token_b.lower(), fee)
        if key in self._pool_cache:
            return self._pool_cache[key]

        factory = self.w3.eth.contract(address=self.venue.factory, abi=FACTORY_ABI)
        pool = factory.functions.getPool(
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b),
            fee,
        ).call()

        if pool == ZERO_ADDRESS:
            return None

        self._pool_cache[key] = pool
        return pool

    def find_liquid_pool(self, token_a: str, token_b: str) -> Optional[LiquidPool]:
        for fee in sorted(self.venue.fee_tiers):
            pool_address = self._pool_address(token_a, token_b, fee)
            if pool_address is None:
                continue

            pool = self.w3.eth.contract(address=pool_address, abi=POOL_ABI)
            if pool.functions.liquidity().call() > 0:
                return LiquidPool(pool_address=pool_address, fee_tier=fee)

        return None

    def get_spot_price(self, token_a: str, token_b: str) -> Optional[PoolQuote]:
        liquid = self.find_liquid_pool(token_a, token_b)
        if liquid is None:
            logger.debug(f"[{self.name}] no liquid pool for {token_a}/{token_b}")
            return None

        pool = self.w3.eth.contract(address=liquid.pool_address, abi=POOL_ABI)
        sqrt_price_x96 = pool.functions.slot0().call()[0]
        if sqrt_price_x96 == 0:
            return None

        raw = sqrt_price_x96_to_price(sqrt_price_x96)
        return PoolQuote(
            venue=self.name,
            pool_address=liquid.pool_address,
            fee_tier=liquid.fee_tier,
            spot_price=orient_price(raw, token_a, token_b),
            has_liquidity=True,
        )

    def quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapQuote:
        if amount_in <= 0:
            return self._no_route(token_in, token_out, amount_in, fee_tier)

        quoter = self.w3.eth.contract(address=self.venue.quoter, abi=QUOTER_V2_ABI)
        params = (
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            amount_in,
            fee_tier,
            0,
        )

        try:
            amount_out = quoter.functions.quoteExactInputSingle(params).call()[0]
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"[{self.name}] quote reverted for {amount_in}: {e}")
            return self._no_route(token_in, token_out, amount_in, fee_tier)

        return SwapQuote(
            venue=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=int(amount_out),
            fee_tier=fee_tier,
        )
