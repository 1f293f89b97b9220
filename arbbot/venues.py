# arbbot/venues.py
"""
Venue Registry (Arbitrum)
Static DEX descriptors: factory, quoter/router and fee tiers to probe
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from web3 import Web3


class VenueKind(Enum):
    CONSTANT_PRODUCT = "constant_product"              # Uniswap V2 style pairs
    CONCENTRATED_LIQUIDITY = "concentrated_liquidity"  # Uniswap V3 style pools


# Uniswap V3 fee tiers (hundredths of a bip), probed in ascending order
FEE_TIERS: Tuple[int, ...] = (500, 3000, 10000)

# Label used for V2 pairs: single implicit 0.30% fee
CONSTANT_PRODUCT_FEE_TIER = 3000


@dataclass(frozen=True)
class VenueDescriptor:
    name: str
    kind: VenueKind
    factory: str
    quoter: str  # QuoterV2 for V3 venues, router for V2 venues
    fee_tiers: Tuple[int, ...] = FEE_TIERS

    @property
    def is_concentrated(self) -> bool:
        return self.kind is VenueKind.CONCENTRATED_LIQUIDITY


VENUES: Dict[str, VenueDescriptor] = {
    "uniswap_v3": VenueDescriptor(
        name="uniswap_v3",
        kind=VenueKind.CONCENTRATED_LIQUIDITY,
        factory=Web3.to_checksum_address("0x1F98431c8aD98523631AE4a59f267346ea31F984"),
        quoter=Web3.to_checksum_address("0x61fFE014bA17989E743c5F6cB21bF9697530B21e"),
    ),
    "sushiswap_v3": VenueDescriptor(
        name="sushiswap_v3",
        kind=VenueKind.CONCENTRATED_LIQUIDITY,
        factory=Web3.to_checksum_address("0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e"),
        quoter=Web3.to_checksum_address("0x0524E833cCD057e4d7A296e3aaAb9f7675964Ce1"),
    ),
    "sushiswap_v2": VenueDescriptor(
        name="sushiswap_v2",
        kind=VenueKind.CONSTANT_PRODUCT,
        factory=Web3.to_checksum_address("0xc35DADB65012eC5796536bD9864eD8773aBc74C4"),
        quoter=Web3.to_checksum_address("0x1b02dA8Cb0d097eB8D57A175b88c7D8b47997506"),
        fee_tiers=(CONSTANT_PRODUCT_FEE_TIER,),
    ),
}


def resolve_venues(
    names: Iterable[str],
    overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
) -> List[VenueDescriptor]:
    """Look up venues by name, applying factory/quoter overrides"""
    overrides = overrides or {}
    resolved = []

    for name in names:
        venue = VENUES.get(name)
        if venue is None:
            raise KeyError(f"Unknown venue: {name}")

        override = overrides.get(name, {})
        if override:
            venue = replace(
                venue,
                factory=Web3.to_checksum_address(override.get("factory", venue.factory)),
                quoter=Web3.to_checksum_address(override.get("quoter", venue.quoter)),
            )
        resolved.append(venue)

    return resolved
