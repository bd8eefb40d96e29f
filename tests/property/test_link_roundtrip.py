"""Property tests: connection strings built for a node parse back to the same node."""

from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import hostnames, make_proxy, ports, safe_text
from parser.parser import ProxyParser
from validator.url_builder import build_proxy_url

tokens = st.from_regex(r"[a-z0-9][a-z0-9_.-]{0,15}", fullmatch=True)
alpn_lists = st.lists(st.sampled_from(["h2", "h3", "http/1.1"]), max_size=3, unique=True)

PARSER = ProxyParser()


@settings(max_examples=100)
@given(
    name=safe_text,
    server=hostnames,
    port=ports,
    uuid=safe_text,
    alter_id=st.integers(min_value=0, max_value=65535),
    security=tokens,
    network=tokens,
    header_type=tokens,
    host=st.one_of(st.just(""), hostnames),
    path=st.one_of(st.just(""), safe_text),
    tls=st.booleans(),
    sni=st.one_of(st.just(""), hostnames),
    alpn=alpn_lists,
)
def test_vmess_link_roundtrip(name, server, port, uuid, alter_id, security, network, header_type,
                              host, path, tls, sni, alpn):
    proxy = make_proxy(
        name=name, type="vmess", server=server, port=port, uuid=uuid, alterId=alter_id,
        cipher=security, network=network, **{"header-type": header_type},
        host=host, path=path, tls=tls, servername=sni, alpn=alpn,
    )
    parsed = PARSER.parse_link(build_proxy_url(proxy))

    assert parsed is not None
    assert (parsed.name, parsed.server, parsed.port) == (name, server, port)
    assert parsed.params == proxy.params


@settings(max_examples=100)
@given(
    server=hostnames,
    port=ports,
    password=safe_text,
    method=tokens,
    protocol=tokens,
    obfs=tokens,
    protocol_param=st.one_of(st.just(""), safe_text),
    obfs_param=st.one_of(st.just(""), safe_text),
)
def test_ssr_link_roundtrip(server, port, password, method, protocol, obfs, protocol_param, obfs_param):
    proxy = make_proxy(
        type="ssr", server=server, port=port, password=password, cipher=method,
        protocol=protocol, obfs=obfs, **{"protocol-param": protocol_param, "obfs-param": obfs_param},
    )
    parsed = PARSER.parse_link(build_proxy_url(proxy))

    assert parsed is not None
    assert (parsed.server, parsed.port) == (server, port)
    assert parsed.params == proxy.params


@given(uuid=safe_text, server=hostnames, port=ports)
def test_vmess_link_is_deterministic(uuid, server, port):
    proxy = make_proxy(type="vmess", server=server, port=port, uuid=uuid)
    assert build_proxy_url(proxy) == build_proxy_url(proxy)
