# arbbot/tokens.py
"""
Token Registry
Lazily resolves ERC20 metadata and caches it for the process lifetime
"""

import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Dict

from web3 import Web3

from arbbot.rpc_health import EndpointPool

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "symbol",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "name",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
]


@dataclass(frozen=True)
class TokenDescriptor:
    address: str
    decimals: int
    symbol: str
    name: str

    def to_base_units(self, amount: Decimal) -> int:
        return to_base_units(amount, self.decimals)

    def from_base_units(self, amount: int) -> Decimal:
        return from_base_units(amount, self.decimals)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Human amount -> smallest unit, truncating toward zero"""
    scaled = Decimal(amount) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


class TokenRegistry:
    def __init__(self, endpoints: EndpointPool):
        self.endpoints = endpoints
        self._cache: Dict[str, TokenDescriptor] = {}
        self._lock = threading.Lock()

    def get(self, address: str) -> TokenDescriptor:
        address = Web3.to_checksum_address(address)

        cached = self._cache.get(address)
        if cached is not None:
            return cached

        w3 = self.endpoints.current()
        token = w3.eth.contract(address=address, abi=ERC20_ABI)
        decimals = token.functions.decimals().call()
        if not 0 <= decimals <= 255:
            raise ValueError(f"Token {address} reports invalid decimals {decimals}")

        descriptor = TokenDescriptor(
            address=address,
            decimals=int(decimals),
            symbol=token.functions.symbol().call(),
            name=token.functions.name().call(),
        )

        with self._lock:
            # First resolution wins; descriptors are immutable
            descriptor = self._cache.setdefault(address, descriptor)

        logger.info(f"Resolved token {descriptor.symbol} ({address}, {descriptor.decimals} decimals)")
        return descriptor

    def get_symbol(self, address: str) -> str:
        cached = self._cache.get(Web3.to_checksum_address(address))
        return cached.symbol if cached else address[:8]
