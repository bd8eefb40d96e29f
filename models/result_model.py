# models/result_model.py

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import config
from models.proxy_model import Proxy


@dataclass
class UnlockResult:
    """各服务的解锁情况，默认全部为 False。"""
    youtube: bool = False
    netflix: bool = False
    disney: bool = False
    openai: bool = False
    google: bool = False
    cloudflare: bool = False
    tiktok: bool = False
    gemini: bool = False

    @classmethod
    def services(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def unlocked(self) -> List[str]:
        return [name for name in self.services() if getattr(self, name)]

    def to_dict(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in self.services()}


@dataclass
class CheckResult:
    """
    单个节点的检测结果。
    is_alive 为 False 时，测速、解锁和 Cloudflare 相关字段都保持默认值。
    """
    proxy: Proxy
    is_alive: bool = False
    latency: Optional[float] = None  # 秒
    speed: Optional[float] = None  # KB/s
    media_unlock: UnlockResult = field(default_factory=UnlockResult)
    country: Optional[str] = None
    country_code: Optional[str] = None
    ip: Optional[str] = None
    ip_risk: Optional[str] = None
    is_cf_accessible: bool = False
    cf_location: Optional[str] = None
    cf_ip: Optional[str] = None
    # 节点无法构建客户端时记录原因
    error: Optional[str] = None

    @classmethod
    def dead(cls, proxy: Proxy, error: Optional[str] = None) -> "CheckResult":
        return cls(proxy=proxy, is_alive=False, error=error)

    @property
    def latency_ms(self) -> Optional[float]:
        if self.latency is None:
            return None
        return self.latency * 1000

    @property
    def is_available(self) -> bool:
        """存活且延迟低于阈值的节点才会进入生成的代理组。"""
        return (
            self.is_alive
            and self.latency_ms is not None
            and self.latency_ms < config.AVAILABLE_LATENCY_MS
        )

    def to_dict(self) -> Dict[str, Any]:
        latency_ms = self.latency_ms
        return {
            'proxy': self.proxy.to_dict(),
            'is_alive': self.is_alive,
            'latency_ms': round(latency_ms, 2) if latency_ms is not None else None,
            'speed': round(self.speed, 2) if self.speed is not None else None,
            'media_unlock': self.media_unlock.to_dict(),
            'country': self.country,
            'country_code': self.country_code,
            'ip': self.ip,
            'ip_risk': self.ip_risk,
            'is_cf_accessible': self.is_cf_accessible,
            'cf_location': self.cf_location,
            'cf_ip': self.cf_ip,
            'error': self.error,
        }
