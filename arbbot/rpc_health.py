# arbbot/rpc_health.py
"""
RPC Endpoint Pool
Hands out the active Web3 connection and fails over cyclically on liveness failure
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

logger = logging.getLogger(__name__)


class EndpointUnavailableError(Exception):
    """Active endpoint still failing after a failover. Retry on the next tick."""


def connect(rpc_url: str) -> Web3:
    """Build a Web3 connection bound to a single endpoint"""
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 10}))
    w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class EndpointPool:
    """
    Ordered list of RPC endpoints in failover priority order

    acquire() runs one liveness call (block height) against the active
    endpoint. On failure it advances to the next endpoint (wrapping) and
    returns a fresh connection to it without re-testing it; callers that
    still fail call acquire() again on their next operation.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        connection_factory: Callable[[str], Web3] = connect,
    ):
        if not endpoints:
            raise ValueError("EndpointPool needs at least one endpoint")

        self.endpoints: List[str] = list(endpoints)
        self._connect = connection_factory
        self._lock = threading.Lock()
        self._index = 0
        self._w3 = self._connect(self.endpoints[0])
        self.failovers = 0
        self.last_block: Optional[int] = None

    @property
    def current_url(self) -> str:
        return self.endpoints[self._index]

    @property
    def current_index(self) -> int:
        return self._index

    def current(self) -> Web3:
        """Active connection without a liveness check"""
        return self._w3

    def acquire(self) -> Web3:
        w3, _ = self._checked()
        return w3

    def _checked(self) -> Tuple[Web3, bool]:
        """Active connection and whether it just answered the liveness call"""
        w3 = self._w3
        index = self._index

        try:
            start = time.time()
            self.last_block = w3.eth.block_number
            latency = time.time() - start
            logger.debug(f"RPC {self.endpoints[index]} OK (latency={latency:.2f}s, block={self.last_block})")
            return w3, True
        except Exception as e:
            logger.warning(f"⚠️ RPC {self.endpoints[index]} failed ({e}), switching...")
            return self._advance(index), False

    def _advance(self, failed_index: int) -> Web3:
        with self._lock:
            # Another caller already moved past the failed endpoint
            if self._index != failed_index:
                return self._w3

            self._index = (failed_index + 1) % len(self.endpoints)
            self._w3 = self._connect(self.endpoints[self._index])
            self.failovers += 1
            logger.info(f"🔁 Switched to RPC {self.endpoints[self._index]}")
            return self._w3

    def require(self) -> Web3:
        """
        acquire(), then verify an endpoint handed out by a failover answers
        Raises EndpointUnavailableError so the driver retries next tick
        """
        w3, alive = self._checked()
        if alive:
            return w3

        # Only the endpoint handed out after a failover is still untested
        try:
            self.last_block = w3.eth.block_number
        except Exception as e:
            raise EndpointUnavailableError(f"RPC {self.current_url} unavailable: {e}") from e
        return w3

    def get_gas_price(self) -> int:
        """Current gas price in wei from the active endpoint"""
        return self._w3.eth.gas_price
