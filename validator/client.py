# validator/client.py

import logging
from typing import NamedTuple, Optional
from urllib.parse import urlparse

import aiohttp
from aiohttp_socks import ProxyConnector

import config
from errors import UnsupportedTransportError

logger = logging.getLogger(__name__)

# aiohttp 原生支持 http/https 代理，SOCKS 通过 aiohttp_socks 的 ProxyConnector 接入。
# Shadowsocks、VMess、Trojan 等协议需要专门的客户端转换，无法直接作为代理传输。
HTTP_PROXY_SCHEMES = ('http', 'https')
SOCKS_PROXY_SCHEMES = ('socks4', 'socks5', 'socks5h')


class ProbeResponse(NamedTuple):
    status: int
    body: bytes = b""

    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class ProxiedClient:
    """
    绑定到单个代理节点的 HTTP 客户端。每个节点独占一个会话，不与其他节点共享连接池。
    用法:
        async with ProxiedClient(proxy_url, timeout) as client:
            response = await client.head(url)
    """

    def __init__(self, proxy_url: str, timeout: float, user_agent: str = config.USER_AGENT):
        scheme = urlparse(proxy_url).scheme.lower()
        if scheme not in HTTP_PROXY_SCHEMES + SOCKS_PROXY_SCHEMES:
            raise UnsupportedTransportError(scheme)
        self.proxy_url = proxy_url
        self.scheme = scheme
        self.timeout = timeout
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ProxiedClient":
        connector = None
        if self.scheme in SOCKS_PROXY_SCHEMES:
            connector = ProxyConnector.from_url(self.proxy_url)
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={'User-Agent': self.user_agent},
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _request_kwargs(self):
        # 没有使用自定义连接器时（HTTP/HTTPS 代理），通过 'proxy' 参数指定代理
        if self.scheme in HTTP_PROXY_SCHEMES:
            return {'proxy': self.proxy_url}
        return {}

    async def _request(self, method: str, url: str) -> ProbeResponse:
        if self._session is None:
            raise RuntimeError("ProxiedClient 必须在 async with 中使用")
        async with self._session.request(
            method, url, allow_redirects=True, **self._request_kwargs()
        ) as response:
            body = await response.read() if method != 'HEAD' else b""
            return ProbeResponse(status=response.status, body=body)

    async def head(self, url: str) -> ProbeResponse:
        return await self._request('HEAD', url)

    async def get(self, url: str) -> ProbeResponse:
        return await self._request('GET', url)


def create_http_client(proxy_url: str, timeout: float) -> ProxiedClient:
    """
    为节点创建 HTTP 客户端。
    Raises:
        UnsupportedTransportError: 连接字符串无法作为 HTTP 客户端的代理传输。
    """
    return ProxiedClient(proxy_url, timeout)
