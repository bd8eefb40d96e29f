"""Shared fixtures, fake HTTP clients and hypothesis strategies for the test suite."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Union

import pytest
from hypothesis import strategies as st

import config
from config import CheckConfig
from models.proxy_model import Proxy
from validator.client import ProbeResponse


# ---------------------------------------------------------------------------
# Fake clients
# ---------------------------------------------------------------------------

Route = Union[ProbeResponse, BaseException]


class FakeClient:
    """Stands in for ProxiedClient; answers from a url -> response table."""

    def __init__(
        self,
        routes: Optional[Dict[str, Route]] = None,
        default: Route = ProbeResponse(200),
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.routes = dict(routes or {})
        self.default = default
        self.gate = gate
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.closed = True
        return False

    async def _respond(self, method: str, url: str) -> ProbeResponse:
        self.calls.append((method, url))
        if self.gate is not None:
            await self.gate.wait()
        response = self.routes.get(url, self.default)
        if isinstance(response, BaseException):
            raise response
        return response

    async def head(self, url: str) -> ProbeResponse:
        return await self._respond("HEAD", url)

    async def get(self, url: str) -> ProbeResponse:
        return await self._respond("GET", url)


def alive_routes(**extra: Route) -> Dict[str, Route]:
    routes: Dict[str, Route] = {
        config.ALIVE_CHECK_URL: ProbeResponse(204),
        config.CLOUDFLARE_TRACE_URL: ProbeResponse(200, b"fl=1\nip=203.0.113.9\nloc=JP\n"),
    }
    routes.update(extra)
    return routes


def dead_routes() -> Dict[str, Route]:
    return {config.ALIVE_CHECK_URL: ProbeResponse(500)}


class FakeClientFactory:
    """Client factory keyed by proxy connection string; records every client it builds."""

    def __init__(self, clients: Dict[str, FakeClient], fallback: Optional[FakeClient] = None) -> None:
        self.clients = clients
        self.fallback = fallback
        self.requested: list[str] = []

    def __call__(self, proxy_url: str, timeout: float) -> FakeClient:
        self.requested.append(proxy_url)
        if proxy_url in self.clients:
            return self.clients[proxy_url]
        if self.fallback is None:
            raise AssertionError(f"unexpected proxy url {proxy_url}")
        return self.fallback


# ---------------------------------------------------------------------------
# Helpers and fixtures
# ---------------------------------------------------------------------------


def make_proxy(**fields) -> Proxy:
    data = {"name": "node", "type": "http", "server": "127.0.0.1", "port": 8080}
    data.update(fields)
    return Proxy.from_clash_dict(data)


def http_proxies(count: int) -> list[Proxy]:
    return [make_proxy(name=f"node-{i}", server=f"10.0.{i}.1", port=8000 + i) for i in range(count)]


def with_config(check_config: CheckConfig, **changes) -> CheckConfig:
    """Copy of the config with some fields changed, skipping validation."""
    return check_config.model_copy(update=changes)


@pytest.fixture
def check_config() -> CheckConfig:
    """Fast config: no speed test, no unlock probes, no early stop."""
    return CheckConfig(
        concurrent=4,
        timeout=1000,
        success_limit=0,
        speed_test_url=None,
        media_check=False,
    )


# ---------------------------------------------------------------------------
# Hypothesis strategies
# ---------------------------------------------------------------------------

hostnames = st.from_regex(r"[a-z]{1,12}\.(com|net|org|io)", fullmatch=True)
ports = st.integers(min_value=1, max_value=65535)
safe_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")),
    min_size=1,
    max_size=30,
)
octets = st.integers(min_value=0, max_value=255)
ipv4_addresses = st.tuples(octets, octets, octets, octets).map(lambda o: ".".join(map(str, o)))
