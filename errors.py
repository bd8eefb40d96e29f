# errors.py

from typing import Any, Optional


class ProxyCheckError(Exception):
    """所有代理检测相关错误的基类。"""

    message: str = "代理检测错误"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ProxyBuildError(ProxyCheckError):
    """无法为节点构建代理连接字符串。只影响该节点，不重试。"""

    message = "构建代理 URL 失败"


class UnsupportedProtocolError(ProxyBuildError):
    """协议类型不在支持的固定集合内。"""

    def __init__(self, protocol: str):
        self.protocol = protocol
        super().__init__(f"不支持的代理协议: {protocol}", protocol=protocol)


class MissingParameterError(ProxyBuildError):
    """缺少构建连接字符串所必需的参数（如 Shadowsocks 的密码）。"""

    def __init__(self, protocol: str, field: str):
        self.protocol = protocol
        self.field = field
        super().__init__(f"{protocol} 代理缺少参数: {field}", protocol=protocol, field=field)


class UnsupportedTransportError(ProxyBuildError):
    """HTTP 客户端无法把该 scheme 的连接字符串当作代理使用。"""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"HTTP 客户端不支持的代理传输: {scheme}", scheme=scheme)


class ConfigError(ProxyCheckError):
    """配置文件无法读取或格式错误。"""

    message = "配置文件无效"


class EmptyProxyListError(ProxyCheckError):
    """没有任何可检测的代理节点。"""

    message = "代理列表为空"
