"""
Market quote adapters against mocked venue contracts.
"""

from fractions import Fraction
from unittest.mock import MagicMock

from web3 import Web3
from web3.exceptions import ContractLogicError

from arbbot.quote_engine import ZERO_ADDRESS, make_adapter, orient_price, sort_tokens
from arbbot.uniswap_v2 import ConstantProductAdapter
from arbbot.uniswap_v3 import ConcentratedLiquidityAdapter, sqrt_price_x96_to_price
from arbbot.venues import VENUES, VenueDescriptor, VenueKind, resolve_venues

from fakes import TOKEN_A, TOKEN_B

FACTORY = "0x" + "aa" * 20
QUOTER = "0x" + "bb" * 20
POOL_500 = "0x" + "50" * 20
POOL_3000 = "0x" + "30" * 20
PAIR = "0x" + "77" * 20


def mock_chain(contracts):
    w3 = MagicMock()
    w3.eth.contract.side_effect = lambda address, abi: contracts[address]
    endpoints = MagicMock()
    endpoints.current.return_value = w3
    return endpoints


def returning(value):
    return MagicMock(call=MagicMock(return_value=value))


# =============================================================================
# Helpers
# =============================================================================

def test_sort_tokens_orders_by_address():
    assert sort_tokens(TOKEN_B, TOKEN_A) == (TOKEN_A, TOKEN_B)
    assert sort_tokens(TOKEN_A, TOKEN_B) == (TOKEN_A, TOKEN_B)


def test_orient_price_gives_price_of_b_in_a():
    raw = Fraction(4)  # token1 per token0

    assert orient_price(raw, TOKEN_A, TOKEN_B) == Fraction(1, 4)
    assert orient_price(raw, TOKEN_B, TOKEN_A) == Fraction(4)


def test_sqrt_price_is_squared_exactly():
    assert sqrt_price_x96_to_price(2 ** 96) == 1
    assert sqrt_price_x96_to_price(2 ** 95) == Fraction(1, 4)


# =============================================================================
# Concentrated liquidity
# =============================================================================

def v3_adapter():
    pools = {500: POOL_500, 3000: POOL_3000}
    factory = MagicMock()
    factory.functions.getPool.side_effect = lambda a, b, fee: returning(pools.get(fee, ZERO_ADDRESS))

    empty_pool = MagicMock()
    empty_pool.functions.liquidity.return_value = returning(0)

    liquid_pool = MagicMock()
    liquid_pool.functions.liquidity.return_value = returning(10 ** 18)
    liquid_pool.functions.slot0.return_value = returning([2 * 2 ** 96, 0, 0, 0, 0, 0, True])

    quoter = MagicMock()
    endpoints = mock_chain({FACTORY: factory, POOL_500: empty_pool, POOL_3000: liquid_pool, QUOTER: quoter})

    venue = VenueDescriptor("uniswap_v3", VenueKind.CONCENTRATED_LIQUIDITY, FACTORY, QUOTER)
    return ConcentratedLiquidityAdapter(venue, endpoints), factory, quoter


def test_first_tier_with_liquidity_wins():
    adapter, _, _ = v3_adapter()

    liquid = adapter.find_liquid_pool(TOKEN_A, TOKEN_B)

    assert liquid.pool_address == POOL_3000
    assert liquid.fee_tier == 3000


def test_pool_addresses_are_cached():
    adapter, factory, _ = v3_adapter()

    adapter.find_liquid_pool(TOKEN_A, TOKEN_B)
    adapter.find_liquid_pool(TOKEN_A, TOKEN_B)

    assert factory.functions.getPool.call_count == 2


def test_v3_spot_price_oriented_to_token_a():
    adapter, _, _ = v3_adapter()

    quote = adapter.get_spot_price(TOKEN_A, TOKEN_B)

    # sqrtPrice 2 -> 4 token1 per token0; token A is token0
    assert quote.spot_price == Fraction(1, 4)
    assert quote.fee_tier == 3000
    assert quote.venue == "uniswap_v3"
    assert quote.has_liquidity


def test_v3_quote_exact_input():
    adapter, _, quoter = v3_adapter()
    quoter.functions.quoteExactInputSingle.return_value = returning([123_456, 0, 3, 90_000])

    quote = adapter.quote(TOKEN_A, TOKEN_B, 10 ** 18, 3000)

    assert quote.amount_out == 123_456
    assert quote.has_route
    quoter.functions.quoteExactInputSingle.assert_called_once_with(
        (Web3.to_checksum_address(TOKEN_A), Web3.to_checksum_address(TOKEN_B), 10 ** 18, 3000, 0)
    )


def test_v3_quote_revert_is_zero_sentinel():
    adapter, _, quoter = v3_adapter()
    quoter.functions.quoteExactInputSingle.return_value.call.side_effect = ContractLogicError("execution reverted")

    quote = adapter.quote(TOKEN_A, TOKEN_B, 10 ** 18, 500)

    assert quote.amount_out == 0
    assert not quote.has_route
    assert quote.fee_tier == 500


def test_no_liquid_pool_means_no_price():
    factory = MagicMock()
    factory.functions.getPool.side_effect = lambda a, b, fee: returning(ZERO_ADDRESS)
    venue = VenueDescriptor("sushiswap_v3", VenueKind.CONCENTRATED_LIQUIDITY, FACTORY, QUOTER)
    adapter = ConcentratedLiquidityAdapter(venue, mock_chain({FACTORY: factory}))

    assert adapter.find_liquid_pool(TOKEN_A, TOKEN_B) is None
    assert adapter.get_spot_price(TOKEN_A, TOKEN_B) is None


# =============================================================================
# Constant product
# =============================================================================

def v2_adapter(reserves=(1000, 4000), pair=PAIR):
    factory = MagicMock()
    factory.functions.getPair.return_value = returning(pair)

    pair_contract = MagicMock()
    pair_contract.functions.getReserves.return_value = returning([reserves[0], reserves[1], 0])

    router = MagicMock()
    endpoints = mock_chain({FACTORY: factory, PAIR: pair_contract, QUOTER: router})

    venue = VenueDescriptor("sushiswap_v2", VenueKind.CONSTANT_PRODUCT, FACTORY, QUOTER, fee_tiers=(3000,))
    return ConstantProductAdapter(venue, endpoints), router


def test_v2_spot_price_is_reserve_ratio():
    adapter, _ = v2_adapter()

    assert adapter.get_spot_price(TOKEN_A, TOKEN_B).spot_price == Fraction(1, 4)
    assert adapter.get_spot_price(TOKEN_B, TOKEN_A).spot_price == Fraction(4)
    assert adapter.find_liquid_pool(TOKEN_A, TOKEN_B).fee_tier == 3000


def test_v2_empty_reserves_or_missing_pair():
    adapter, _ = v2_adapter(reserves=(0, 4000))
    assert adapter.get_spot_price(TOKEN_A, TOKEN_B) is None
    assert adapter.find_liquid_pool(TOKEN_A, TOKEN_B) is None

    adapter, _ = v2_adapter(pair=ZERO_ADDRESS)
    assert adapter.get_spot_price(TOKEN_A, TOKEN_B) is None


def test_v2_quote_uses_router():
    adapter, router = v2_adapter()
    router.functions.getAmountsOut.return_value = returning([10 ** 18, 3_990 * 10 ** 6])

    quote = adapter.quote(TOKEN_A, TOKEN_B, 10 ** 18, 500)

    assert quote.amount_out == 3_990 * 10 ** 6
    assert quote.fee_tier == 3000


def test_v2_quote_revert_is_zero_sentinel():
    adapter, router = v2_adapter()
    router.functions.getAmountsOut.return_value.call.side_effect = ContractLogicError("INSUFFICIENT_LIQUIDITY")

    assert adapter.quote(TOKEN_A, TOKEN_B, 10 ** 18, 3000).amount_out == 0


# =============================================================================
# Registry
# =============================================================================

def test_make_adapter_by_kind():
    endpoints = MagicMock()

    assert isinstance(make_adapter(VENUES["uniswap_v3"], endpoints), ConcentratedLiquidityAdapter)
    assert isinstance(make_adapter(VENUES["sushiswap_v2"], endpoints), ConstantProductAdapter)


def test_resolve_venues_applies_overrides():
    venues = resolve_venues(["uniswap_v3", "sushiswap_v3"], {"uniswap_v3": {"quoter": QUOTER}})

    assert [v.name for v in venues] == ["uniswap_v3", "sushiswap_v3"]
    assert venues[0].quoter == Web3.to_checksum_address(QUOTER)
    assert venues[0].factory == VENUES["uniswap_v3"].factory
