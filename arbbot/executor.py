# arbbot/executor.py
"""
Execution Coordinator
Single-flight submission of flashloan arbitrage trades to the deployed contract
"""

import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional, Tuple

from web3 import Web3
from web3.exceptions import TimeExhausted

from arbbot.arbitrage_scanner import Direction, Opportunity
from arbbot.profit_calculator import minimum_acceptable_output
from arbbot.rpc_health import EndpointPool

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS & DATA CLASSES
# =============================================================================

class ExecutionState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


class ExecutionOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"


class ConfirmationTimeout(Exception):
    """Transaction not mined within the confirmation timeout"""


@dataclass(frozen=True)
class ExecutionRequest:
    direction: Direction
    token_a: str
    token_b: str
    fee_tier: int
    amount_in: int
    minimum_amount_out: int


@dataclass(frozen=True)
class ExecutionRecord:
    sequence_id: int
    opportunity_id: str
    pair: str
    amount_in: int
    profit: int
    tx_hash: Optional[str]
    outcome: ExecutionOutcome
    reason: str = ""
    recorded_at: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is ExecutionOutcome.SUCCESS


# =============================================================================
# EXECUTION TARGET
# =============================================================================

class ExecutionTarget(ABC):
    """Opaque on-chain executor: borrow, two swaps and repay in one transaction"""

    @abstractmethod
    def submit(self, request: ExecutionRequest) -> str:
        """Send the trade, return the transaction hash. Raises on failure."""

    @abstractmethod
    def wait_for_confirmation(self, tx_hash: str, timeout: float) -> bool:
        """True if mined successfully, False if reverted. Raises ConfirmationTimeout."""


EXECUTE_TRADE_ABI = [
    {
        "name": "executeTrade",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_startOnFirstVenue", "type": "bool"},
            {"name": "_token0", "type": "address"},
            {"name": "_token1", "type": "address"},
            {"name": "_fee", "type": "uint24"},
            {"name": "_flashAmount", "type": "uint256"},
            {"name": "_amountOutMinimum", "type": "uint256"},
        ],
        "outputs": [],
    },
]


class ArbitrageContract(ExecutionTarget):
    """
    Deployed flashloan arbitrage contract

    The contract is wired to exactly two venues. It routes hop 1 through the
    first when _startOnFirstVenue is true, otherwise through the second, and
    hop 2 through the other one.
    """

    def __init__(
        self,
        endpoints: EndpointPool,
        address: str,
        private_key: str,
        venues: Tuple[str, str],
        gas_limit: int,
        simulate: bool = True,
    ):
        self.endpoints = endpoints
        self.address = Web3.to_checksum_address(address)
        self.private_key = private_key
        if len(venues) != 2 or venues[0] == venues[1]:
            raise ValueError(f"ArbitrageContract needs two distinct venues, got {venues!r}")
        self.venues = tuple(venues)
        self.gas_limit = gas_limit
        self.simulate = simulate

    def start_on_first(self, direction: Direction) -> bool:
        """Contract flag for a direction; raises for a route the contract cannot run"""
        if (direction.buy_venue, direction.sell_venue) == self.venues:
            return True
        if (direction.sell_venue, direction.buy_venue) == self.venues:
            return False
        raise ValueError(
            f"Route {direction} is not executable by a contract wired to "
            f"{self.venues[0]} and {self.venues[1]}"
        )

    def _contract(self, w3: Web3):
        return w3.eth.contract(address=self.address, abi=EXECUTE_TRADE_ABI)

    def submit(self, request: ExecutionRequest) -> str:
        start_on_first = self.start_on_first(request.direction)
        w3 = self.endpoints.current()
        account = w3.eth.account.from_key(self.private_key)

        call = self._contract(w3).functions.executeTrade(
            start_on_first,
            Web3.to_checksum_address(request.token_a),
            Web3.to_checksum_address(request.token_b),
            request.fee_tier,
            request.amount_in,
            request.minimum_amount_out,
        )

        if self.simulate:
            # eth_call first; raises ContractLogicError on revert
            call.call({"from": account.address})

        tx = call.build_transaction({
            "from": account.address,
            "nonce": w3.eth.get_transaction_count(account.address, "pending"),
            "gas": self.gas_limit,
            "gasPrice": w3.eth.gas_price,
            "chainId": w3.eth.chain_id,
        })

        signed = account.sign_transaction(tx)
        tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info(f"Arbitrage tx sent: {tx_hash}")
        return tx_hash

    def wait_for_confirmation(self, tx_hash: str, timeout: float) -> bool:
        w3 = self.endpoints.current()
        try:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeout(f"not mined within {timeout}s") from e
        return receipt.status == 1


# =============================================================================
# EXECUTION COORDINATOR
# =============================================================================

class ExecutionCoordinator:
    """
    Idle -> Submitting -> AwaitingConfirmation -> Confirmed | Reverted -> Idle

    At most one execution is in flight; execute() while not Idle is a no-op.
    The return to Idle happens in a finally block on every path.
    """

    def __init__(
        self,
        target: ExecutionTarget,
        slippage_bps: int,
        confirmation_timeout: float,
        history_size: int = 50,
    ):
        self.target = target
        self.slippage_bps = slippage_bps
        self.confirmation_timeout = confirmation_timeout

        self._state = ExecutionState.IDLE
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)
        self.history: Deque[ExecutionRecord] = deque(maxlen=history_size)

        self.attempts = 0
        self.successes = 0

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is ExecutionState.IDLE

    def _begin(self) -> bool:
        with self._lock:
            if self._state is not ExecutionState.IDLE:
                return False
            self._state = ExecutionState.SUBMITTING
            return True

    def _transition(self, state: ExecutionState) -> None:
        with self._lock:
            logger.debug(f"Execution state {self._state.value} -> {state.value}")
            self._state = state

    def execute(self, opportunity: Opportunity) -> Optional[ExecutionRecord]:
        if not self._begin():
            logger.info(f"⏳ Already executing a trade ({self._state.value}), skipping {opportunity.opportunity_id}")
            return None

        try:
            self.attempts += 1
            return self._run(opportunity)
        finally:
            self._transition(ExecutionState.IDLE)

    def _run(self, opportunity: Opportunity) -> ExecutionRecord:
        opp_id = opportunity.opportunity_id
        analysis = opportunity.profit_analysis

        # Slippage base is the final hop: it is exposed to slippage and
        # denominated in the token the break-even floor is measured in
        minimum_out = minimum_acceptable_output(
            opportunity.second_hop.amount_out,
            self.slippage_bps,
            analysis.flashloan_total_repay,
            analysis.gas_cost_estimate,
        )

        request = ExecutionRequest(
            direction=opportunity.direction,
            token_a=opportunity.pair.token_a.address,
            token_b=opportunity.pair.token_b.address,
            fee_tier=opportunity.fee_tier,
            amount_in=opportunity.amount_in,
            minimum_amount_out=minimum_out,
        )

        logger.info(
            f"[{opp_id}] 💸 Executing {opportunity.pair.label}: {opportunity.direction}, "
            f"amount {request.amount_in}, min out {minimum_out}"
        )

        try:
            tx_hash = self.target.submit(request)
        except Exception as e:
            self._transition(ExecutionState.REVERTED)
            return self._record(opportunity, None, ExecutionOutcome.FAILED, f"submission failed: {e}")

        self._transition(ExecutionState.AWAITING_CONFIRMATION)

        try:
            confirmed = self.target.wait_for_confirmation(tx_hash, self.confirmation_timeout)
        except ConfirmationTimeout as e:
            self._transition(ExecutionState.REVERTED)
            return self._record(opportunity, tx_hash, ExecutionOutcome.FAILED, f"timeout: {e}")
        except Exception as e:
            self._transition(ExecutionState.REVERTED)
            return self._record(opportunity, tx_hash, ExecutionOutcome.FAILED, str(e))

        if not confirmed:
            self._transition(ExecutionState.REVERTED)
            return self._record(opportunity, tx_hash, ExecutionOutcome.FAILED, "transaction reverted")

        self._transition(ExecutionState.CONFIRMED)
        self.successes += 1
        return self._record(opportunity, tx_hash, ExecutionOutcome.SUCCESS)

    def _record(
        self,
        opportunity: Opportunity,
        tx_hash: Optional[str],
        outcome: ExecutionOutcome,
        reason: str = "",
    ) -> ExecutionRecord:
        record = ExecutionRecord(
            sequence_id=next(self._sequence),
            opportunity_id=opportunity.opportunity_id,
            pair=opportunity.pair.label,
            amount_in=opportunity.amount_in,
            profit=opportunity.net_profit,
            tx_hash=tx_hash,
            outcome=outcome,
            reason=reason,
            recorded_at=time.time(),
        )
        self.history.append(record)

        if record.succeeded:
            logger.info(f"[{record.opportunity_id}] ✅ Trade successful! TX: {tx_hash}")
        else:
            logger.warning(f"[{record.opportunity_id}] ❌ Trade failed: {reason}")
        logger.info(f"Success rate: {self.successes}/{self.attempts}")
        return record

    def recent(self, limit: int = 10) -> List[ExecutionRecord]:
        """Most recent records first"""
        return list(reversed(self.history))[:limit]
