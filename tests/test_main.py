"""
Driver tick: block cadence, price-gap gate, first-opportunity stop,
execution hand-off and the command channel.
"""

import logging
from fractions import Fraction

import pytest

from arbbot import main as main_module
from arbbot.config import BotConfig, ConfigError
from arbbot.executor import ExecutionCoordinator, ExecutionState
from arbbot.main import ArbitrageBot, BotMode, Command
from arbbot.observe import RecentLogHandler

from fakes import (
    ARB,
    TOKEN_A,
    TOKEN_B,
    TOKEN_C,
    USDC,
    WETH,
    FakeAdapter,
    FakeEndpoints,
    FakeTarget,
    FakeTokens,
)

# Price of the counter token in token A; a 1% gap between the venues
CHEAP = Fraction(1)
DEAR = Fraction(101, 100)


def one_to_one(token_in, token_out, amount_in):
    return amount_in


def plus_one_percent(token_in, token_out, amount_in):
    return amount_in * 101 // 100


def make_config(targets=(TOKEN_B, TOKEN_C), venues=("uniswap_v3", "sushiswap_v3")):
    return BotConfig(
        base_token=TOKEN_A,
        target_tokens=tuple(targets),
        rpc_endpoints=("http://rpc-1",),
        venues=tuple(venues),
    )


def make_bot(
    cheap_prices=None,
    dear_prices=None,
    blocks=(100,),
    mode=BotMode.SCAN,
    coordinator=None,
    tokens=None,
    endpoints=None,
    log_buffer=None,
    config=None,
):
    cheap = FakeAdapter(
        "uniswap_v3",
        one_to_one,
        prices=cheap_prices if cheap_prices is not None else {TOKEN_B: CHEAP, TOKEN_C: CHEAP},
    )
    dear = FakeAdapter(
        "sushiswap_v3",
        plus_one_percent,
        prices=dear_prices if dear_prices is not None else {TOKEN_B: DEAR, TOKEN_C: DEAR},
    )
    bot = ArbitrageBot(
        config or make_config(),
        mode=mode,
        endpoints=endpoints or FakeEndpoints(blocks=blocks),
        tokens=tokens or FakeTokens(WETH, USDC, ARB),
        adapters=[dear, cheap],
        coordinator=coordinator,
        log_buffer=log_buffer,
    )
    return bot, cheap, dear


def test_tick_finds_best_size_on_cheaper_venue():
    bot, cheap, dear = make_bot()

    opportunity = bot.run_tick()

    assert opportunity is not None
    assert opportunity.pair.label == "WETH/USDC"
    assert opportunity.direction.buy_venue == "uniswap_v3"
    assert opportunity.direction.sell_venue == "sushiswap_v3"
    # Profit grows with size, so the top of the 0.1..2.0 sweep wins
    assert opportunity.amount_in == 2 * 10 ** 18
    assert len(cheap.quote_calls) == 20
    assert bot.stats.opportunities_found == 1


def test_stops_at_first_pair_with_an_opportunity():
    bot, cheap, _ = make_bot()

    bot.run_tick()

    assert cheap.spot_calls == [TOKEN_B]


def test_pair_below_gap_threshold_is_not_swept():
    bot, cheap, dear = make_bot(
        cheap_prices={TOKEN_B: Fraction(1000), TOKEN_C: CHEAP},
        dear_prices={TOKEN_B: Fraction(1000), TOKEN_C: DEAR},
    )

    opportunity = bot.run_tick()

    assert opportunity.pair.label == "WETH/ARB"
    assert cheap.spot_calls == [TOKEN_B, TOKEN_C]


def test_pair_needs_two_venues():
    bot, cheap, dear = make_bot(cheap_prices={}, dear_prices={TOKEN_B: DEAR, TOKEN_C: DEAR})

    assert bot.run_tick() is None
    assert cheap.quote_calls == []
    assert bot.stats.pairs_checked == 2


def test_failing_pair_does_not_stop_the_scan():
    bot, _, _ = make_bot(tokens=FakeTokens(WETH, USDC, ARB, broken=[TOKEN_B]))

    opportunity = bot.run_tick()

    assert opportunity.pair.label == "WETH/ARB"


def test_scans_only_on_new_blocks():
    bot, cheap, _ = make_bot(blocks=[100, 100, 101])

    assert bot.run_tick() is not None
    assert bot.run_tick() is None
    assert cheap.spot_calls == [TOKEN_B]

    assert bot.run_tick() is not None
    assert bot.state.last_block == 101
    assert bot.stats.scan_count == 2


def test_unavailable_endpoint_retries_next_tick():
    bot, cheap, _ = make_bot(endpoints=FakeEndpoints(unavailable=True))

    assert bot.run_tick() is None
    assert cheap.spot_calls == []
    assert bot.state.last_block is None


def test_execute_mode_hands_opportunity_to_coordinator():
    target = FakeTarget()
    coordinator = ExecutionCoordinator(target, slippage_bps=50, confirmation_timeout=10)
    bot, _, _ = make_bot(mode=BotMode.EXECUTE, coordinator=coordinator)

    opportunity = bot.run_tick()

    assert len(target.requests) == 1
    assert target.requests[0].amount_in == opportunity.amount_in
    assert bot.stats.trades_executed == 1
    assert bot.stats.trades_successful == 1
    assert bot.stats.total_profit == opportunity.net_profit


def test_scan_mode_never_executes():
    target = FakeTarget()
    coordinator = ExecutionCoordinator(target, slippage_bps=50, confirmation_timeout=10)
    bot, _, _ = make_bot(mode=BotMode.SCAN, coordinator=coordinator)

    assert bot.run_tick() is not None
    assert target.requests == []


def test_busy_coordinator_skips_block():
    coordinator = ExecutionCoordinator(FakeTarget(), slippage_bps=50, confirmation_timeout=10)
    coordinator._state = ExecutionState.AWAITING_CONFIRMATION
    bot, cheap, _ = make_bot(mode=BotMode.EXECUTE, coordinator=coordinator)

    assert bot.run_tick() is None
    assert cheap.spot_calls == []
    assert bot.state.last_block is None


def test_execute_mode_requires_signer():
    with pytest.raises(ConfigError):
        make_bot(mode=BotMode.EXECUTE)


@pytest.mark.parametrize(
    "venues",
    [
        ("uniswap_v3", "sushiswap_v3", "sushiswap_v2"),
        ("uniswap_v3", "sushiswap_v2"),
        ("uniswap_v3", "pancakeswap_v3"),
    ],
)
def test_execute_mode_needs_the_contracts_two_v3_venues(venues):
    coordinator = ExecutionCoordinator(FakeTarget(), slippage_bps=50, confirmation_timeout=10)

    with pytest.raises(ConfigError, match="Execute mode|VENUES"):
        make_bot(mode=BotMode.EXECUTE, coordinator=coordinator, config=make_config(venues=venues))


def test_scan_mode_accepts_any_venue_set():
    bot, _, _ = make_bot(config=make_config(venues=("uniswap_v3", "sushiswap_v3", "sushiswap_v2")))

    assert bot.run_tick() is not None


def test_connection_failure_abandons_the_block():
    def dropped(token_in, token_out, amount_in):
        raise ConnectionError("rpc dropped")

    bot, cheap, dear = make_bot()
    dear.quote_fn = dropped

    assert bot.run_tick() is None
    # One size hit the dead endpoint; TOKEN_C was never checked
    assert len(dear.quote_calls) == 1
    assert cheap.spot_calls == [TOKEN_B]


# =============================================================================
# Commands
# =============================================================================

def test_stop_and_start_commands():
    bot, cheap, _ = make_bot(blocks=[100, 101])

    bot.state.submit(Command.STOP)
    assert bot.run_tick() is None
    assert bot.endpoints.require_calls == 0

    bot.state.submit(Command.START)
    assert bot.run_tick() is not None


def test_status_reply_goes_to_callback():
    bot, _, _ = make_bot()
    replies = []

    bot.state.submit(Command.STATUS, replies.append)
    bot.run_tick()

    assert len(replies) == 1
    assert "Mode: scan" in replies[0]
    assert "Execution: disabled" in replies[0]


def test_history_command_lists_recent_executions():
    coordinator = ExecutionCoordinator(FakeTarget(confirmed=False), slippage_bps=50, confirmation_timeout=10)
    bot, _, _ = make_bot(mode=BotMode.EXECUTE, coordinator=coordinator)
    replies = []

    assert bot.handle_command(Command.HISTORY) == "No executions yet"

    bot.run_tick()
    bot.state.submit(Command.HISTORY, replies.append)
    bot.process_commands()

    assert replies[0].startswith("#1 WETH/USDC failed")
    assert "transaction reverted" in replies[0]


def test_logs_command_returns_recent_lines():
    buffer = RecentLogHandler(capacity=10)
    buffer.setFormatter(logging.Formatter("%(message)s"))
    buffer.records.append("🔎 Block 100")
    bot, _, _ = make_bot(log_buffer=buffer)

    assert bot.handle_command(Command.LOGS) == "🔎 Block 100"


def test_shutdown_command_stops_run_loop(monkeypatch):
    monkeypatch.setattr(main_module.signal, "signal", lambda *args: None)
    bot, cheap, _ = make_bot()

    bot.state.submit(Command.SHUTDOWN)
    bot.run()

    assert bot.state.shutdown
    assert cheap.spot_calls == []


def test_run_once_performs_a_single_tick(monkeypatch):
    monkeypatch.setattr(main_module.signal, "signal", lambda *args: None)
    bot, _, _ = make_bot()

    bot.run(once=True)

    assert bot.stats.scan_count == 1


# =============================================================================
# Entry point
# =============================================================================

def test_main_exits_nonzero_on_config_error(tmp_path, monkeypatch):
    monkeypatch.setattr(main_module, "setup_logging", lambda: RecentLogHandler())

    assert main_module.main(["--env", str(tmp_path / "missing.env")]) == 1
