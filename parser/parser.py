# parser/parser.py

import base64
import binascii
import json  # 用于处理 VMess 的 JSON 内容
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, unquote, urlparse

import yaml

from errors import EmptyProxyListError
from models.proxy_model import Proxy

# 获取当前模块的日志记录器
logger = logging.getLogger(__name__)


def b64decode_text(data: str) -> str:
    """
    同时兼容标准和 URL 安全字母表的 Base64 解码，自动补齐填充。
    """
    data = data.strip().replace('-', '+').replace('_', '/')
    data += '=' * (-len(data) % 4)
    return base64.b64decode(data).decode('utf-8')


def _split_fragment(link: str) -> Tuple[str, str]:
    body, _, fragment = link.partition('#')
    return body, unquote(fragment)


def _split_host_port(server_info: str) -> Tuple[str, int]:
    server, port = server_info.rsplit(':', 1)
    return server.strip('[]'), int(port)


class ProxyParser:
    def __init__(self):
        # 实例化时初始化日志记录器
        self.logger = logging.getLogger(__name__)

    def _parse_ss(self, link: str) -> Optional[Dict[str, Any]]:
        """
        解析 Shadowsocks (SS) 代理链接。
        支持 SIP002 (method:password 明文或 Base64) 以及整体 Base64 的旧格式。
        """
        body, name = _split_fragment(link[len('ss://'):])
        body, _, query = body.partition('?')
        body = body.rstrip('/')

        if '@' not in body:
            # 旧格式：整体 Base64
            body = b64decode_text(body)

        creds, server_info = body.rsplit('@', 1)
        if ':' not in creds:
            creds = b64decode_text(unquote(creds))
        method, password = creds.split(':', 1)
        server, port = _split_host_port(server_info)

        proxy_info: Dict[str, Any] = {
            'name': name or f"Shadowsocks-{server}:{port}",
            'type': 'ss',
            'server': server,
            'port': port,
            'cipher': method,
            'password': password,
        }
        # 插件参数形如 plugin=obfs-local;obfs=http;obfs-host=...
        plugin = dict(parse_qsl(query)).get('plugin')
        if plugin:
            plugin_name, _, plugin_opts = plugin.partition(';')
            proxy_info['plugin'] = plugin_name
            if plugin_opts:
                proxy_info['plugin-opts'] = plugin_opts
        return proxy_info

    def _parse_vmess(self, link: str) -> Optional[Dict[str, Any]]:
        """
        解析 VMess 代理链接（Base64 编码的 JSON）。
        """
        data = json.loads(b64decode_text(link[len('vmess://'):]))

        alpn = data.get('alpn') or ''
        # 将解析出的数据映射到 Clash 风格的字段
        return {
            'name': data.get('ps') or f"VMess-{data.get('add')}:{data.get('port')}",
            'type': 'vmess',
            'server': data.get('add', ''),
            'port': int(data.get('port', 0)),
            'uuid': data.get('id', ''),
            'alterId': int(data.get('aid', 0) or 0),
            'cipher': data.get('scy') or 'auto',
            'network': data.get('net') or 'tcp',
            'header-type': data.get('type') or 'none',
            'host': data.get('host', ''),
            'path': data.get('path', ''),
            'tls': data.get('tls', '') == 'tls',
            'servername': data.get('sni', ''),
            'alpn': [a for a in alpn.split(',') if a] if isinstance(alpn, str) else list(alpn),
        }

    def _parse_ssr(self, link: str) -> Optional[Dict[str, Any]]:
        """
        解析 SSR 代理链接：
        ssr://base64(host:port:protocol:method:obfs:base64(password)/?obfsparam=..&protoparam=..&remarks=..)
        """
        decoded = b64decode_text(link[len('ssr://'):])
        base, _, query = decoded.partition('/?')
        server, port, protocol, method, obfs, password_b64 = base.rsplit(':', 5)

        # 参数值是 Base64，可能包含 '+'，不能用 parse_qsl 解析
        params = {}
        for pair in query.split('&'):
            if '=' in pair:
                key, value = pair.split('=', 1)
                params[key] = b64decode_text(value) if value else ''

        server = server.strip('[]')
        return {
            'name': params.get('remarks') or f"SSR-{server}:{port}",
            'type': 'ssr',
            'server': server,
            'port': int(port),
            'cipher': method,
            'password': b64decode_text(password_b64),
            'protocol': protocol,
            'obfs': obfs,
            'protocol-param': params.get('protoparam', ''),
            'obfs-param': params.get('obfsparam', ''),
        }

    def _parse_trojan(self, link: str) -> Optional[Dict[str, Any]]:
        """
        解析 Trojan 代理链接。
        """
        parsed_url = urlparse(link)
        query = dict(parse_qsl(parsed_url.query))
        server = parsed_url.hostname
        port = parsed_url.port

        proxy_info = {
            'name': unquote(parsed_url.fragment) or f"Trojan-{server}:{port}",
            'type': 'trojan',
            'server': server,
            'port': port,
            'password': unquote(parsed_url.username or ''),  # 密码在用户名部分
        }
        # 兼容一些旧版本或客户端的 peer 参数
        sni = query.get('sni') or query.get('peer')
        if sni:
            proxy_info['sni'] = sni
        if query.get('type'):
            proxy_info['network'] = query['type']
        if query.get('host'):
            proxy_info['host'] = query['host']
        if query.get('path'):
            proxy_info['path'] = query['path']
        return proxy_info

    def _parse_vless(self, link: str) -> Optional[Dict[str, Any]]:
        """
        解析 VLESS 代理链接：uuid@server:port?params#name
        """
        parsed_url = urlparse(link)
        query = dict(parse_qsl(parsed_url.query))
        server = parsed_url.hostname
        port = parsed_url.port
        security = query.get('security', '')

        proxy_info = {
            'name': unquote(parsed_url.fragment) or f"VLESS-{server}:{port}",
            'type': 'vless',
            'server': server,
            'port': port,
            'uuid': parsed_url.username or '',
            'security': security,
            'tls': security in ('tls', 'reality'),
            'network': query.get('type', 'tcp'),
            'flow': query.get('flow', ''),
        }
        if query.get('host'):
            proxy_info['host'] = query['host']
        if query.get('path'):
            proxy_info['path'] = query['path']
        elif query.get('serviceName'):
            proxy_info['path'] = query['serviceName']
        if query.get('sni'):
            proxy_info['servername'] = query['sni']
        return proxy_info

    _LINK_PARSERS = {
        'ss://': '_parse_ss',
        'ssr://': '_parse_ssr',
        'vmess://': '_parse_vmess',
        'trojan://': '_parse_trojan',
        'vless://': '_parse_vless',
    }

    def parse_link(self, link: str) -> Optional[Proxy]:
        """
        解析单条分享链接。
        Args:
            link (str): 形如 ss:// vmess:// 的链接。
        Returns:
            Optional[Proxy]: 解析成功返回 Proxy，否则返回 None。
        """
        link = link.strip()
        for prefix, method in self._LINK_PARSERS.items():
            if not link.startswith(prefix):
                continue
            try:
                proxy_info = getattr(self, method)(link)
            except (ValueError, KeyError, TypeError, binascii.Error, UnicodeDecodeError) as e:
                self.logger.debug(f"解析 {prefix} 代理失败: {link[:50]} - 错误: {e}")
                return None
            return Proxy.from_clash_dict(proxy_info) if proxy_info else None
        return None

    def parse_yaml_nodes(self, content: str) -> List[Proxy]:
        """
        解析 Clash 风格的 YAML 内容，其中包含 proxies 列表。
        """
        proxies: List[Proxy] = []
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            self.logger.warning(f"解析 YAML 内容失败: {e}")
            return proxies

        if not isinstance(data, dict) or not isinstance(data.get('proxies'), list):
            self.logger.warning("YAML 内容不包含 'proxies' 列表或格式不正确。")
            return proxies

        for p_data in data['proxies']:
            if not isinstance(p_data, dict):
                self.logger.warning(f"跳过格式不正确的 YAML 代理配置: {p_data!r}")
                continue
            proxies.append(Proxy.from_clash_dict(p_data))
        return proxies

    def parse_raw_content(self, content: str, source: str = "") -> List[Proxy]:
        """
        将原始内容解析为 Proxy 对象的列表：Clash YAML、逐行链接，或 Base64 编码的链接列表。
        Args:
            content (str): 原始内容字符串。
            source (str): 内容来源（用于日志记录）。
        Returns:
            List[Proxy]: 解析出的 Proxy 对象列表。
        """
        # 通常 YAML 配置会包含 "proxies:" 这样的关键字
        if "proxies:" in content:
            self.logger.debug(f"尝试将 {source} 内容解析为 YAML。")
            proxies_from_yaml = self.parse_yaml_nodes(content)
            if proxies_from_yaml:
                return proxies_from_yaml

        parsed_proxies: List[Proxy] = []
        for line in content.strip().splitlines():
            line = line.strip()
            if not line:
                continue

            # 看起来像 Base64 的行，解码后递归处理
            if '://' not in line and re.fullmatch(r'[A-Za-z0-9+/=_-]+', line):
                try:
                    decoded = b64decode_text(line)
                except (binascii.Error, UnicodeDecodeError) as e:
                    self.logger.debug(f"Base64 解码 {line[:20]}... 失败: {e}")
                else:
                    parsed_proxies.extend(self.parse_raw_content(decoded, f"decoded_from_{source}"))
                    continue

            proxy = self.parse_link(line)
            if proxy:
                parsed_proxies.append(proxy)
            else:
                self.logger.debug(f"未能解析行: {line[:50]}... (来自 {source})")

        return parsed_proxies

    def load_proxies_file(self, path: str) -> List[Proxy]:
        """
        从文件读取代理节点。
        Raises:
            OSError: 文件无法读取。
            EmptyProxyListError: 文件中没有任何可用节点。
        """
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
        proxies = self.parse_raw_content(content, path)
        if not proxies:
            raise EmptyProxyListError(f"{path} 中未找到任何代理节点", path=path)
        self.logger.info(f"从 {path} 解析到 {len(proxies)} 个代理。")
        return proxies

    def deduplicate_proxies(self, proxies: List[Proxy]) -> List[Proxy]:
        """
        根据代理的唯一键对 Proxy 对象列表进行去重。
        Args:
            proxies (List[Proxy]): 包含 Proxy 对象的列表。
        Returns:
            List[Proxy]: 去重后的 Proxy 对象列表。
        """
        seen_keys = set()  # 用于存储已见过的代理的唯一键
        deduplicated = []
        for proxy in proxies:
            key = proxy.generate_key()
            if key not in seen_keys:
                deduplicated.append(proxy)
                seen_keys.add(key)
        self.logger.info(f"去重前共有 {len(proxies)} 个代理，去重后剩下 {len(deduplicated)} 个。")
        return deduplicated
