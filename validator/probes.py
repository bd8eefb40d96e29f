# validator/probes.py

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import aiohttp

import config
from models.result_model import UnlockResult
from models.stats import Stats

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class TraceResult:
    """Cloudflare trace 检测结果，loc 和 ip 仅用于展示，不影响是否通过。"""
    accessible: bool = False
    location: Optional[str] = None
    ip: Optional[str] = None


@dataclass(frozen=True)
class UnlockProbe:
    """
    单个服务的解锁检测。
    rule 为 'success' 时要求 2xx；为 'status' 时要求状态码等于 expected_status；
    为 'body' 时要求响应体不包含 reject_phrase。
    """
    service: str
    url: str
    method: str = 'GET'
    rule: str = 'success'
    expected_status: int = 204
    reject_phrase: str = ""


UNLOCK_PROBES = (
    UnlockProbe('youtube', "https://www.youtube.com/premium", rule='body',
                reject_phrase="YouTube Premium is not available in your country"),
    UnlockProbe('netflix', "https://www.netflix.com/title/81280792"),
    UnlockProbe('disney', "https://www.disneyplus.com"),
    UnlockProbe('openai', "https://chat.openai.com"),
    UnlockProbe('google', "https://www.google.com/generate_204", method='HEAD', rule='status'),
    UnlockProbe('tiktok', "https://www.tiktok.com"),
    UnlockProbe('gemini', "https://gemini.google.com"),
)


async def run_probe(name: str, probe: Callable[[], Awaitable[T]], default: T) -> T:
    """
    执行一个探测，任何错误都降级为 default，只记录日志，不向上抛出。
    """
    try:
        return await probe()
    except asyncio.TimeoutError:
        logger.debug(f"{name} 检测超时。")
    except aiohttp.ClientError as e:
        logger.debug(f"{name} 检测发生客户端错误: {e}")
    except Exception as e:
        logger.debug(f"{name} 检测失败: {e!r}")
    return default


async def check_alive(client) -> bool:
    """存活检测：HEAD 请求，状态码必须正好是 204。"""
    response = await client.head(config.ALIVE_CHECK_URL)
    return response.status == 204


def parse_trace(body: str) -> Tuple[Optional[str], Optional[str]]:
    """
    解析 Cloudflare trace 返回的 key=value 行。
    Returns:
        Tuple[Optional[str], Optional[str]]: (loc, ip)
    """
    loc = None
    ip = None
    for line in body.splitlines():
        if line.startswith('loc='):
            loc = line[len('loc='):]
        elif line.startswith('ip='):
            ip = line[len('ip='):]
    return loc, ip


async def check_cloudflare(client) -> TraceResult:
    response = await client.get(config.CLOUDFLARE_TRACE_URL)
    loc, ip = parse_trace(response.text())
    return TraceResult(accessible=response.is_success, location=loc, ip=ip)


async def check_speed(client, test_url: str, stats: Stats) -> float:
    """
    下载测速文件，返回速度（KB/s）。下载的字节数计入全局流量统计。
    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    response = await client.get(test_url)
    elapsed = loop.time() - start

    stats.add_bytes(len(response.body))

    if elapsed <= 0:
        return 0.0
    return len(response.body) / 1024.0 / elapsed


async def check_unlock(client, probe: UnlockProbe) -> bool:
    if probe.method == 'HEAD':
        response = await client.head(probe.url)
    else:
        response = await client.get(probe.url)

    if probe.rule == 'status':
        return response.status == probe.expected_status
    if probe.rule == 'body':
        return probe.reject_phrase not in response.text()
    return response.is_success


async def check_media_unlock(client, cf_accessible: bool) -> UnlockResult:
    """
    依次执行所有解锁检测。cloudflare 一项直接复用 trace 检测的结果。
    """
    result = UnlockResult(cloudflare=cf_accessible)
    for probe in UNLOCK_PROBES:
        unlocked = await run_probe(probe.service, lambda p=probe: check_unlock(client, p), False)
        setattr(result, probe.service, unlocked)
    return result
