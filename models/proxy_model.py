# models/proxy_model.py

import hashlib  # 用于生成唯一哈希键
import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

# Clash 配置中除核心字段外原样透传的键不包括这些
CORE_KEYS = ('name', 'type', 'server', 'port')


def _str(data: Mapping[str, Any], *keys: str, default: str = "") -> str:
    """按顺序查找第一个非空的键，并转换为字符串。"""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return str(value)
    return default


def _int(data: Mapping[str, Any], key: str, default: int = 0) -> int:
    try:
        return int(data.get(key, default))
    except (TypeError, ValueError):
        return default


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 'tls')
    return bool(value)


def _alpn(data: Mapping[str, Any]) -> Tuple[str, ...]:
    value = data.get('alpn')
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(',') if v.strip())
    return tuple(str(v) for v in value)


def _transport(data: Mapping[str, Any]) -> Tuple[str, str]:
    """
    从 Clash 风格的传输配置中取出 (host, path)。
    兼容 ws-opts / h2-opts / grpc-opts，以及旧版的 ws-path / ws-headers 字段。
    """
    host = _str(data, 'host')
    path = _str(data, 'path')
    ws_opts = data.get('ws-opts') or {}
    if isinstance(ws_opts, Mapping):
        path = path or _str(ws_opts, 'path')
        headers = ws_opts.get('headers') or {}
        if isinstance(headers, Mapping):
            host = host or _str(headers, 'Host', 'host')
    h2_opts = data.get('h2-opts') or {}
    if isinstance(h2_opts, Mapping):
        path = path or _str(h2_opts, 'path')
        hosts = h2_opts.get('host')
        if isinstance(hosts, list) and hosts and not host:
            host = str(hosts[0])
    grpc_opts = data.get('grpc-opts') or {}
    if isinstance(grpc_opts, Mapping):
        path = path or _str(grpc_opts, 'grpc-service-name')
    path = path or _str(data, 'ws-path')
    headers = data.get('ws-headers') or {}
    if isinstance(headers, Mapping):
        host = host or _str(headers, 'Host', 'host')
    return host, path


@dataclass(frozen=True)
class HttpParams:
    """HTTP / HTTPS 正向代理。"""
    username: str = ""
    password: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HttpParams":
        return cls(username=_str(data, 'username'), password=_str(data, 'password'))


@dataclass(frozen=True)
class SocksParams:
    """SOCKS4 / SOCKS5 代理。"""
    username: str = ""
    password: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SocksParams":
        return cls(username=_str(data, 'username'), password=_str(data, 'password'))


@dataclass(frozen=True)
class ShadowsocksParams:
    password: str = ""
    method: str = ""
    plugin: str = ""
    plugin_opts: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ShadowsocksParams":
        opts = data.get('plugin-opts')
        if isinstance(opts, Mapping):
            # Clash 中 plugin-opts 是映射，这里渲染成 SIP003 的 k=v;k=v 形式
            opts = ';'.join(f"{k}={str(v).lower() if isinstance(v, bool) else v}" for k, v in opts.items())
        return cls(
            password=_str(data, 'password'),
            method=_str(data, 'cipher', 'method'),
            plugin=_str(data, 'plugin'),
            plugin_opts=str(opts) if opts else "",
        )


@dataclass(frozen=True)
class VmessParams:
    uuid: str = ""
    alter_id: int = 0
    security: str = "auto"
    network: str = "tcp"
    header_type: str = "none"
    host: str = ""
    path: str = ""
    tls: bool = False
    sni: str = ""
    alpn: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VmessParams":
        host, path = _transport(data)
        return cls(
            uuid=_str(data, 'uuid', 'id'),
            alter_id=_int(data, 'alterId', _int(data, 'aid')),
            security=_str(data, 'cipher', 'security', 'scy', default="auto"),
            network=_str(data, 'network', 'net', default="tcp"),
            header_type=_str(data, 'header-type', default="none"),
            host=host,
            path=path,
            tls=_bool(data, 'tls'),
            sni=_str(data, 'servername', 'sni'),
            alpn=_alpn(data),
        )


@dataclass(frozen=True)
class VlessParams:
    uuid: str = ""
    security: str = ""
    network: str = ""
    host: str = ""
    path: str = ""
    tls: bool = False
    sni: str = ""
    flow: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VlessParams":
        host, path = _transport(data)
        tls = _bool(data, 'tls')
        security = _str(data, 'security')
        if not security:
            if data.get('reality-opts'):
                security = "reality"
            elif tls:
                security = "tls"
        return cls(
            uuid=_str(data, 'uuid', 'id'),
            security=security,
            network=_str(data, 'network'),
            host=host,
            path=path,
            tls=tls,
            sni=_str(data, 'servername', 'sni'),
            flow=_str(data, 'flow'),
        )


@dataclass(frozen=True)
class TrojanParams:
    password: str = ""
    security: str = ""
    network: str = ""
    host: str = ""
    path: str = ""
    tls: bool = True  # Trojan 协议强制使用 TLS
    sni: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrojanParams":
        host, path = _transport(data)
        return cls(
            password=_str(data, 'password'),
            security=_str(data, 'security'),
            network=_str(data, 'network'),
            host=host,
            path=path,
            tls=_bool(data, 'tls') if 'tls' in data else True,
            sni=_str(data, 'sni', 'servername'),
        )


@dataclass(frozen=True)
class SsrParams:
    password: str = ""
    method: str = ""
    protocol: str = ""
    obfs: str = ""
    protocol_param: str = ""
    obfs_param: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SsrParams":
        return cls(
            password=_str(data, 'password'),
            method=_str(data, 'cipher', 'method'),
            protocol=_str(data, 'protocol'),
            obfs=_str(data, 'obfs'),
            protocol_param=_str(data, 'protocol-param', 'protocol_param'),
            obfs_param=_str(data, 'obfs-param', 'obfs_param'),
        )


@dataclass(frozen=True)
class HysteriaParams:
    """Hysteria / Hysteria2，仅做最小支持。"""
    auth: str = ""
    sni: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HysteriaParams":
        return cls(auth=_str(data, 'auth-str', 'auth_str', 'password'), sni=_str(data, 'sni', 'servername'))


@dataclass(frozen=True)
class TuicParams:
    password: str = ""
    uuid: str = ""
    host: str = ""
    path: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TuicParams":
        host, path = _transport(data)
        return cls(
            password=_str(data, 'password', 'token'),
            uuid=_str(data, 'uuid'),
            host=host or _str(data, 'sni'),
            path=path,
        )


@dataclass(frozen=True)
class WireguardParams:
    """WireGuard，仅做最小支持。"""
    private_key: str = ""
    public_key: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WireguardParams":
        return cls(private_key=_str(data, 'private-key'), public_key=_str(data, 'public-key'))


@dataclass(frozen=True)
class UnknownParams:
    """不在支持集合内的协议，构建 URL 时会失败。"""


ProxyParams = Union[
    HttpParams, SocksParams, ShadowsocksParams, VmessParams, VlessParams,
    TrojanParams, SsrParams, HysteriaParams, TuicParams, WireguardParams, UnknownParams,
]

# 协议标签 -> 参数类型
PARAMS_BY_TYPE = {
    'http': HttpParams,
    'https': HttpParams,
    'socks4': SocksParams,
    'socks5': SocksParams,
    'socks5h': SocksParams,  # 由代理端解析域名
    'ss': ShadowsocksParams,
    'vmess': VmessParams,
    'vless': VlessParams,
    'trojan': TrojanParams,
    'ssr': SsrParams,
    'hysteria': HysteriaParams,
    'hysteria2': HysteriaParams,
    'tuic': TuicParams,
    'wireguard': WireguardParams,
}


@dataclass(frozen=True)
class Proxy:
    """
    代表一个待检测的代理节点。创建后不可变，检测结果另行保存在 CheckResult 中。
    """
    name: str
    server: str
    port: int
    type: str
    params: ProxyParams = field(default_factory=UnknownParams)
    # Clash 配置中的其余字段，导出配置时原样写回
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_clash_dict(cls, data: Mapping[str, Any]) -> "Proxy":
        """
        从 Clash 风格的代理映射创建 Proxy。缺失或格式错误的字段取空值。
        Args:
            data (Mapping[str, Any]): 形如 {name, type, server, port, ...} 的映射。
        Returns:
            Proxy: 代理节点。
        """
        ptype = _str(data, 'type', 'protocol').lower()
        server = _str(data, 'server', 'host')
        port = _int(data, 'port')
        name = _str(data, 'name', default=f"{ptype}-{server}:{port}")
        params_cls = PARAMS_BY_TYPE.get(ptype)
        params = params_cls.from_mapping(data) if params_cls else UnknownParams()
        extra = {k: v for k, v in data.items() if k not in CORE_KEYS}
        return cls(name=name, server=server, port=port, type=ptype, params=params, extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        """
        转换为 Clash 代理映射：核心字段加上透传字段。
        """
        data: Dict[str, Any] = {
            'name': self.name,
            'type': self.type,
            'server': self.server,
            'port': self.port,
        }
        data.update(self.extra)
        return data

    def generate_key(self) -> str:
        """
        为代理生成一个唯一的键，用于去重。
        Returns:
            str: 代理的唯一哈希键。
        """
        # 使用协议类型、服务器地址和端口作为基础唯一键
        key_parts = [self.type, self.server, str(self.port)]

        # 用户凭据（UUID 或密码）也是区分节点的一部分
        credential = getattr(self.params, 'uuid', '') or getattr(self.params, 'password', '')
        if credential:
            key_parts.append(credential)

        unique_string = ':'.join(filter(None, key_parts))
        return hashlib.sha256(unique_string.encode('utf-8')).hexdigest()

    def get_ip_address(self) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
        try:
            return ipaddress.ip_address(self.server)
        except ValueError:
            return None

    def is_same_cidr(self, other: "Proxy", threshold: float) -> bool:
        """
        判断两个节点是否属于同一地址段。
        两个 IPv4 地址按阈值比较前缀：>=1.0 完全相同，>=0.75 前三段，
        >=0.5 前两段，>=0.25 第一段，低于 0.25 视为不相邻。
        其余情况（IPv6、域名、无法解析）退化为字符串完全相同。
        """
        ip1 = self.get_ip_address()
        ip2 = other.get_ip_address()
        if isinstance(ip1, ipaddress.IPv4Address) and isinstance(ip2, ipaddress.IPv4Address):
            octets1 = ip1.packed
            octets2 = ip2.packed
            if threshold >= 1.0:
                return octets1 == octets2  # /32
            if threshold >= 0.75:
                return octets1[:3] == octets2[:3]  # /24
            if threshold >= 0.5:
                return octets1[:2] == octets2[:2]  # /16
            if threshold >= 0.25:
                return octets1[:1] == octets2[:1]  # /8
            return False
        return self.server == other.server

    def __repr__(self):
        return f"Proxy(name='{self.name}', type='{self.type}', server='{self.server}', port={self.port})"
