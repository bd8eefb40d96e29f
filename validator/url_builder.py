# validator/url_builder.py

import base64
import json
from typing import Callable, Dict, List, Tuple, Type
from urllib.parse import quote, urlencode

from errors import MissingParameterError, UnsupportedProtocolError
from models.proxy_model import (
    HttpParams,
    HysteriaParams,
    Proxy,
    ShadowsocksParams,
    SocksParams,
    SsrParams,
    TrojanParams,
    TuicParams,
    VlessParams,
    VmessParams,
    WireguardParams,
)

DEFAULT_SS_METHOD = "aes-256-gcm"
DEFAULT_SSR_METHOD = "aes-256-cfb"
DEFAULT_SSR_PROTOCOL = "origin"
DEFAULT_SSR_OBFS = "plain"


def _b64(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def _fragment(pairs: List[Tuple[str, str]]) -> str:
    """只保留非空参数，编码后以 & 连接。"""
    pairs = [(k, v) for k, v in pairs if v]
    if not pairs:
        return ""
    return '#' + urlencode(pairs, quote_via=quote)


def _require(proxy: Proxy, value: str, field: str) -> str:
    if not value:
        raise MissingParameterError(proxy.type, field)
    return value


def build_forward_url(proxy: Proxy) -> str:
    """HTTP/HTTPS/SOCKS4/SOCKS5：scheme://[user:pass@]host:port，凭据经过百分号编码"""
    params = proxy.params
    auth = ""
    if params.username and params.password:
        auth = f"{quote(params.username, safe='')}:{quote(params.password, safe='')}@"
    return f"{proxy.type}://{auth}{proxy.server}:{proxy.port}"


def build_shadowsocks_url(proxy: Proxy) -> str:
    params: ShadowsocksParams = proxy.params
    password = _require(proxy, params.password, 'password')
    method = params.method or DEFAULT_SS_METHOD
    url = f"ss://{method}:{password}@{proxy.server}:{proxy.port}"
    if params.plugin:
        if params.plugin_opts:
            url += f"/?plugin={quote(params.plugin, safe='')}%3B{quote(params.plugin_opts, safe='')}"
        else:
            url += f"/?plugin={quote(params.plugin, safe='')}"
    return url


def build_vmess_url(proxy: Proxy) -> str:
    params: VmessParams = proxy.params
    uuid = _require(proxy, params.uuid, 'uuid')
    # 字段顺序固定，保证相同输入得到相同输出
    descriptor = {
        'v': "2",
        'ps': proxy.name,
        'add': proxy.server,
        'port': proxy.port,
        'id': uuid,
        'aid': params.alter_id,
        'scy': params.security or "auto",
        'net': params.network or "tcp",
        'type': params.header_type or "none",
        'host': params.host,
        'path': params.path,
        'tls': "tls" if params.tls else "",
        'sni': params.sni,
        'alpn': ','.join(params.alpn),
    }
    encoded = _b64(json.dumps(descriptor, ensure_ascii=False, separators=(',', ':')))
    return f"vmess://{encoded}"


def build_vless_url(proxy: Proxy) -> str:
    params: VlessParams = proxy.params
    uuid = _require(proxy, params.uuid, 'uuid')
    return f"vless://{uuid}@{proxy.server}:{proxy.port}" + _fragment([
        ('security', params.security),
        ('type', params.network),
        ('host', params.host),
        ('path', params.path),
        ('tls', "tls" if params.tls else ""),
        ('sni', params.sni),
    ])


def build_trojan_url(proxy: Proxy) -> str:
    params: TrojanParams = proxy.params
    password = _require(proxy, params.password, 'password')
    return f"trojan://{password}@{proxy.server}:{proxy.port}" + _fragment([
        ('security', params.security),
        ('type', params.network),
        ('host', params.host),
        ('path', params.path),
        ('tls', "tls" if params.tls else ""),
        ('sni', params.sni),
    ])


def build_ssr_url(proxy: Proxy) -> str:
    params: SsrParams = proxy.params
    password = _require(proxy, params.password, 'password')
    base = ':'.join([
        proxy.server,
        str(proxy.port),
        params.protocol or DEFAULT_SSR_PROTOCOL,
        params.method or DEFAULT_SSR_METHOD,
        params.obfs or DEFAULT_SSR_OBFS,
        _b64(password),
    ])
    query = []
    if params.obfs_param:
        query.append(f"obfsparam={_b64(params.obfs_param)}")
    if params.protocol_param:
        query.append(f"protoparam={_b64(params.protocol_param)}")
    if query:
        base += "/?" + '&'.join(query)
    return f"ssr://{_b64(base)}"


def build_tuic_url(proxy: Proxy) -> str:
    params: TuicParams = proxy.params
    password = _require(proxy, params.password, 'password')
    return f"tuic://{password}@{proxy.server}:{proxy.port}" + _fragment([
        ('uuid', params.uuid),
        ('host', params.host),
        ('path', params.path),
    ])


def build_minimal_url(proxy: Proxy) -> str:
    """Hysteria / Hysteria2 / WireGuard：scheme://host:port#name"""
    return f"{proxy.type}://{proxy.server}:{proxy.port}#{proxy.name}"


_BUILDERS: Dict[Type, Callable[[Proxy], str]] = {
    HttpParams: build_forward_url,
    SocksParams: build_forward_url,
    ShadowsocksParams: build_shadowsocks_url,
    VmessParams: build_vmess_url,
    VlessParams: build_vless_url,
    TrojanParams: build_trojan_url,
    SsrParams: build_ssr_url,
    TuicParams: build_tuic_url,
    HysteriaParams: build_minimal_url,
    WireguardParams: build_minimal_url,
}


def build_proxy_url(proxy: Proxy) -> str:
    """
    根据节点协议构建代理连接字符串。纯函数，相同输入总是得到相同输出。
    Args:
        proxy (Proxy): 代理节点。
    Returns:
        str: 连接字符串。
    Raises:
        UnsupportedProtocolError: 协议不在支持集合内。
        MissingParameterError: 缺少必需的凭据。
    """
    builder = _BUILDERS.get(type(proxy.params))
    if builder is None:
        raise UnsupportedProtocolError(proxy.type)
    return builder(proxy)
