"""
Endpoint pool failover.
"""

import pytest

from arbbot.rpc_health import EndpointPool, EndpointUnavailableError

from fakes import FakeChain

URLS = ["http://rpc-1", "http://rpc-2", "http://rpc-3"]


def test_healthy_endpoint_is_kept():
    chain = FakeChain(block=1234)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    w3 = pool.acquire()

    assert w3.url == URLS[0]
    assert pool.current_index == 0
    assert pool.last_block == 1234
    assert pool.failovers == 0


def test_failed_liveness_advances_without_retesting():
    chain = FakeChain(down=[URLS[0], URLS[1]])
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    w3 = pool.acquire()

    # The new endpoint is handed out untested, even though it is also down
    assert w3.url == URLS[1]
    assert pool.current_url == URLS[1]
    assert chain.calls == [URLS[0]]
    assert pool.failovers == 1


def test_cycles_through_all_endpoints_without_repeats():
    chain = FakeChain(down=URLS)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    handed_out = [pool.acquire().url for _ in range(len(URLS) * 2)]

    assert handed_out == URLS[1:] + URLS[:1] + URLS[1:] + URLS[:1]
    assert set(handed_out[:len(URLS)]) == set(URLS)
    assert all(a != b for a, b in zip(handed_out, handed_out[1:]))


def test_require_raises_when_still_failing():
    chain = FakeChain(down=URLS)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    with pytest.raises(EndpointUnavailableError):
        pool.require()

    # Next tick starts from the endpoint after the one that failed
    assert pool.current_url == URLS[1]


def test_require_succeeds_after_failover():
    chain = FakeChain(down=[URLS[0]], block=77)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    w3 = pool.require()

    assert w3.url == URLS[1]
    assert pool.last_block == 77


def test_require_on_healthy_endpoint_makes_one_liveness_call():
    chain = FakeChain(block=55)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    pool.require()

    assert chain.calls == [URLS[0]]
    assert pool.last_block == 55


def test_require_rechecks_only_after_failover():
    chain = FakeChain(down=[URLS[0]])
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    pool.require()

    assert chain.calls == [URLS[0], URLS[1]]


def test_stale_failure_does_not_advance_twice():
    chain = FakeChain()
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    pool._advance(failed_index=0)
    pool._advance(failed_index=0)

    assert pool.current_index == 1
    assert pool.failovers == 1


def test_single_endpoint_reconnects_to_itself():
    chain = FakeChain(down=URLS[:1])
    pool = EndpointPool(URLS[:1], connection_factory=chain.connect)

    pool.acquire()

    assert pool.current_index == 0
    assert chain.connected == [URLS[0], URLS[0]]


def test_gas_price_comes_from_active_endpoint():
    chain = FakeChain(gas_price=12345)
    pool = EndpointPool(URLS, connection_factory=chain.connect)

    assert pool.get_gas_price() == 12345


def test_requires_an_endpoint():
    with pytest.raises(ValueError):
        EndpointPool([])
