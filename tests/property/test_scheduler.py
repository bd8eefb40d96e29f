"""Property tests for the early-stop and counting behaviour of the scheduler."""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from config import CheckConfig
from conftest import FakeClient, FakeClientFactory, alive_routes, dead_routes, http_proxies
from validator.url_builder import build_proxy_url
from validator.validator import ProxyValidator


def _run_async(coro):
    return asyncio.run(coro)


async def _check(alive_flags, concurrent, limit):
    proxies = http_proxies(len(alive_flags))
    factory = FakeClientFactory({
        build_proxy_url(p): FakeClient(alive_routes() if alive else dead_routes())
        for p, alive in zip(proxies, alive_flags)
    })
    cfg = CheckConfig(concurrent=concurrent, success_limit=limit, speed_test_url=None, media_check=False)
    validator = ProxyValidator(cfg, client_factory=factory)
    results = await validator.validate_proxies_concurrently(proxies)
    await validator.wait_pending()
    return results, validator.get_stats()


@settings(max_examples=50, deadline=None)
@given(
    alive_flags=st.lists(st.booleans(), max_size=30),
    concurrent=st.integers(min_value=1, max_value=8),
    limit=st.integers(min_value=0, max_value=10),
)
def test_collection_and_counters(alive_flags, concurrent, limit):
    results, stats = _run_async(_check(alive_flags, concurrent, limit))
    n, alive = len(alive_flags), sum(alive_flags)

    collected_alive = sum(r.is_alive for r in results)
    if 0 < limit <= alive:
        assert collected_alive == limit
    else:
        assert len(results) == n
        assert collected_alive == alive

    # background workers keep running after an early stop, so counters end up complete
    assert stats.total_nodes == n
    assert stats.checked_nodes == n
    assert stats.alive_nodes == alive
    assert stats.failed_nodes == n - alive
