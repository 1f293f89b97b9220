# arbbot/profit_calculator.py
"""
Flashloan Profit Model
Exact integer accounting for flashloan fee, gas and slippage bounds

All amounts are integers in the token's smallest unit. The only division is
the basis-point fee/slippage computation, which truncates toward zero like
the on-chain contract does, so the off-chain estimate never overstates output.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Union

from arbbot.tokens import from_base_units

BPS_DENOMINATOR = 10_000

FeeFraction = Union[Decimal, str, int, float]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class FlashLoanRepayment:
    borrow_amount: int
    fee_bps: int
    fee_amount: int
    total_repay: int


@dataclass(frozen=True)
class ProfitAnalysis:
    """Complete breakdown of one borrow -> swap -> swap -> repay cycle"""
    amount_borrowed: int
    amount_after_first_swap: int
    amount_received_final: int

    # Costs
    flashloan_fee_bps: int
    flashloan_fee_amount: int
    flashloan_total_repay: int
    gas_units: int
    gas_price: int
    gas_cost_estimate: int
    total_costs_required: int

    # Result
    gross_profit: int
    net_profit: int
    profit_margin_bps: int
    is_profitable: bool


# =============================================================================
# PROFIT MODEL
# =============================================================================

def fee_fraction_to_bps(fee_fraction: FeeFraction) -> int:
    """floor(fee_fraction * 10000), computed in decimal so 0.0029 stays 29 bps"""
    if isinstance(fee_fraction, float):
        fee_fraction = str(fee_fraction)
    fee = Decimal(fee_fraction)

    if not Decimal(0) <= fee <= Decimal(1):
        raise ValueError(f"fee fraction must be within [0, 1], got {fee}")

    return int((fee * BPS_DENOMINATOR).to_integral_value(rounding=ROUND_FLOOR))


def flashloan_repayment(borrow_amount: int, fee_fraction: FeeFraction) -> FlashLoanRepayment:
    """Principal plus fee, with the fee truncated to whole basis points"""
    if borrow_amount <= 0:
        raise ValueError("borrow_amount must be positive")

    fee_bps = fee_fraction_to_bps(fee_fraction)
    fee_amount = (borrow_amount * fee_bps) // BPS_DENOMINATOR

    return FlashLoanRepayment(
        borrow_amount=borrow_amount,
        fee_bps=fee_bps,
        fee_amount=fee_amount,
        total_repay=borrow_amount + fee_amount,
    )


def net_profit(
    amount_borrowed: int,
    amount_after_hop1: int,
    amount_after_hop2: int,
    gas_price: int,
    flash_loan_fee: FeeFraction,
    gas_units: int,
) -> ProfitAnalysis:
    """
    Net profit after flashloan repayment and gas

    is_profitable is exactly (amount_after_hop2 >= repay + gas), which is the
    same statement as net_profit >= 0.
    """
    if amount_borrowed <= 0:
        raise ValueError("amount_borrowed must be positive")
    if gas_price <= 0:
        raise ValueError("gas_price must be positive")
    if gas_units <= 0:
        raise ValueError("gas_units must be positive")

    repayment = flashloan_repayment(amount_borrowed, flash_loan_fee)
    gas_cost = gas_units * gas_price
    total_costs = repayment.total_repay + gas_cost

    net = amount_after_hop2 - total_costs
    is_profitable = amount_after_hop2 >= total_costs

    margin_bps = 0
    if is_profitable and amount_after_hop2 > 0:
        margin_bps = (net * BPS_DENOMINATOR) // amount_after_hop2

    return ProfitAnalysis(
        amount_borrowed=amount_borrowed,
        amount_after_first_swap=amount_after_hop1,
        amount_received_final=amount_after_hop2,
        flashloan_fee_bps=repayment.fee_bps,
        flashloan_fee_amount=repayment.fee_amount,
        flashloan_total_repay=repayment.total_repay,
        gas_units=gas_units,
        gas_price=gas_price,
        gas_cost_estimate=gas_cost,
        total_costs_required=total_costs,
        gross_profit=amount_after_hop2 - amount_borrowed,
        net_profit=net,
        profit_margin_bps=margin_bps,
        is_profitable=is_profitable,
    )


def minimum_acceptable_output(
    hop_output: int,
    slippage_bps: int,
    required_repay: int,
    required_gas_cost: int,
) -> int:
    """
    Higher of the slippage floor and the break-even floor

    hop_output must be the output of the hop that is exposed to slippage and
    denominated in the repaid token (the final hop).
    """
    if hop_output <= 0:
        raise ValueError("hop_output must be positive")
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValueError("slippage_bps must be within [0, 10000]")

    with_slippage = (hop_output * (BPS_DENOMINATOR - slippage_bps)) // BPS_DENOMINATOR
    break_even = required_repay + required_gas_cost

    return max(with_slippage, break_even)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def format_profit_analysis(analysis: ProfitAnalysis, symbol: str = "", decimals: int = 18) -> str:
    """Format profit analysis for logging"""

    def fmt(amount: int) -> str:
        return f"{from_base_units(amount, decimals):.8f} {symbol}".rstrip()

    return (
        f"=== Profit Analysis ===\n"
        f"Borrowed:        {fmt(analysis.amount_borrowed)}\n"
        f"Flashloan Fee:   {fmt(analysis.flashloan_fee_amount)} ({analysis.flashloan_fee_bps} bps)\n"
        f"Must Repay:      {fmt(analysis.flashloan_total_repay)}\n"
        f"Gas Cost:        {fmt(analysis.gas_cost_estimate)} "
        f"({analysis.gas_units} gas @ {analysis.gas_price / 10**9:.2f} gwei)\n"
        f"Total Costs:     {fmt(analysis.total_costs_required)}\n"
        f"Received:        {fmt(analysis.amount_received_final)}\n"
        f"Gross Profit:    {fmt(analysis.gross_profit)}\n"
        f"--- Result ---\n"
        f"Net Profit:      {fmt(analysis.net_profit)} ({analysis.profit_margin_bps} bps)\n"
        f"Profitable:      {'✅ YES' if analysis.is_profitable else '❌ NO'}"
    )
