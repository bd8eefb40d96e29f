# validator/validator.py

import asyncio
import logging
from typing import Callable, List, Optional, Set

import config
from config import CheckConfig
from errors import ProxyBuildError
from models.proxy_model import Proxy
from models.result_model import CheckResult, UnlockResult
from models.stats import Stats
from validator.client import create_http_client
from validator.probes import (
    TraceResult,
    check_alive,
    check_cloudflare,
    check_media_unlock,
    check_speed,
    run_probe,
)
from validator.url_builder import build_proxy_url

# 获取当前模块的日志记录器
logger = logging.getLogger(__name__)

# 通道关闭标记：所有 worker 都结束后由关闭任务放入
_CLOSED = object()


class ProxyValidator:
    """
    并发检测代理节点。

    每个节点一个 worker，worker 数量受 Semaphore 限制；结果通过有界队列汇总。
    设置了 success_limit 时，收集到足够的存活节点即停止收集并立即返回，
    但不会取消仍在检测中的 worker：它们会继续跑完，结果被丢弃。
    需要等待或取消这些 worker 时，显式调用 wait_pending() 或 cancel_pending()。
    """

    def __init__(self, check_config: Optional[CheckConfig] = None, stats: Optional[Stats] = None,
                 client_factory: Callable = create_http_client):
        # 实例化时初始化日志记录器
        self.logger = logging.getLogger(__name__)
        self.config = check_config or CheckConfig()
        self.stats = stats or Stats()
        self.client_factory = client_factory
        self._pending: Set[asyncio.Task] = set()

    def get_stats(self) -> Stats:
        return self.stats

    def _finish(self, result: CheckResult) -> CheckResult:
        """节点检测结束，无论结果如何 checked 只加一次；失败节点额外计入 failed。"""
        if not result.is_alive:
            self.stats.increment_failed()
        self.stats.increment_checked()
        return result

    async def validate_proxy(self, proxy: Proxy) -> CheckResult:
        """
        异步函数：对单个节点执行完整的检测流程。
        存活 -> Cloudflare -> (可选丢弃) -> 测速 -> 解锁检测。
        Args:
            proxy (Proxy): 代理节点。
        Returns:
            CheckResult: 检测结果，失败节点 is_alive 为 False 且其余字段为默认值。
        """
        try:
            proxy_url = build_proxy_url(proxy)
            client = self.client_factory(proxy_url, self.config.timeout_seconds)
        except ProxyBuildError as e:
            self.logger.warning(f"跳过代理 {proxy.name} ({proxy.server}:{proxy.port}): {e}")
            return self._finish(CheckResult.dead(proxy, error=str(e)))

        async with client:
            return await self._run_probes(proxy, client)

    async def _run_probes(self, proxy: Proxy, client) -> CheckResult:
        cfg = self.config
        label = f"{proxy.name} ({proxy.server}:{proxy.port})"

        # --- 步骤 1: 存活检测 ---
        loop = asyncio.get_running_loop()
        start = loop.time()
        is_alive = await run_probe(f"{label} 存活", lambda: check_alive(client), False)
        latency = loop.time() - start

        if not is_alive:
            self.logger.debug(f"代理 {label} 存活检测失败。")
            return self._finish(CheckResult.dead(proxy))

        # 存活即计数，不等整个流程结束
        self.stats.increment_alive()

        # --- 步骤 2: Cloudflare 可达性 ---
        trace = await run_probe(f"{label} Cloudflare", lambda: check_cloudflare(client), TraceResult())

        if cfg.drop_bad_cf_nodes and not trace.accessible:
            self.logger.debug(f"代理 {label} 无法访问 Cloudflare，丢弃。")
            return self._finish(CheckResult.dead(proxy))

        # --- 步骤 3: 测速 ---
        speed = None
        if cfg.is_speed_test_enabled():
            measured = await run_probe(
                f"{label} 测速", lambda: check_speed(client, cfg.speed_test_url, self.stats), None
            )
            # 低于最低速度视为没有合格速度，不算失败
            if measured is not None and measured >= cfg.min_speed:
                speed = measured

        # --- 步骤 4: 解锁检测 ---
        if cfg.is_media_check_enabled():
            media_unlock = await check_media_unlock(client, trace.accessible)
        else:
            media_unlock = UnlockResult()

        self.logger.info(f"代理 {label} 验证成功。延迟: {latency * 1000:.2f}ms")
        return self._finish(CheckResult(
            proxy=proxy,
            is_alive=True,
            latency=latency,
            speed=speed,
            media_unlock=media_unlock,
            country=trace.location,
            ip=trace.ip,
            is_cf_accessible=trace.accessible,
            cf_location=trace.location,
            cf_ip=trace.ip,
        ))

    async def _send(self, queue: asyncio.Queue, stopped: asyncio.Event, item) -> bool:
        """
        向结果通道发送一项。收集已停止时直接丢弃；通道已满时等待空位或停止信号。
        Returns:
            bool: 是否发送成功。
        """
        if stopped.is_set():
            return False
        put = asyncio.ensure_future(queue.put(item))
        stop = asyncio.ensure_future(stopped.wait())
        done, pending = await asyncio.wait({put, stop}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return put in done

    async def _worker(self, proxy: Proxy, semaphore: asyncio.Semaphore,
                      queue: asyncio.Queue, stopped: asyncio.Event):
        """带有并发限制的检测 worker。"""
        async with semaphore:
            try:
                result = await self.validate_proxy(proxy)
            except Exception:
                self.logger.exception(f"检测代理 {proxy.name} 时发生未预期的错误")
                result = self._finish(CheckResult.dead(proxy, error="internal error"))
        if not await self._send(queue, stopped, result):
            self.logger.debug(f"收集已停止，丢弃代理 {proxy.name} 的结果。")

    async def _close_when_done(self, workers: List[asyncio.Task],
                               queue: asyncio.Queue, stopped: asyncio.Event):
        await asyncio.gather(*workers, return_exceptions=True)
        await self._send(queue, stopped, _CLOSED)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def validate_proxies_concurrently(self, proxies: List[Proxy]) -> List[CheckResult]:
        """
        异步函数：并发检测节点列表。
        Args:
            proxies (List[Proxy]): 节点列表（通常已经过智能乱序）。
        Returns:
            List[CheckResult]: 按完成顺序排列的检测结果；提前停止时只包含已收集到的部分。
        """
        self.stats.set_total(len(proxies))

        queue: asyncio.Queue = asyncio.Queue(maxsize=config.RESULT_CHANNEL_CAPACITY)
        stopped = asyncio.Event()
        semaphore = asyncio.Semaphore(max(1, self.config.concurrent))

        workers = [
            self._track(asyncio.ensure_future(self._worker(proxy, semaphore, queue, stopped)))
            for proxy in proxies
        ]
        self._track(asyncio.ensure_future(self._close_when_done(workers, queue, stopped)))

        # 收集结果
        results: List[CheckResult] = []
        alive_count = 0
        limit = self.config.success_limit
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                results.append(item)
                if item.is_alive:
                    alive_count += 1
                # 如果达到成功限制，停止收集
                if limit > 0 and alive_count >= limit:
                    self.logger.info(
                        f"已收集到 {alive_count} 个存活节点，达到成功限制，停止收集。"
                        f"仍有 {sum(not w.done() for w in workers)} 个节点在后台检测。"
                    )
                    break
        finally:
            # 收集方无论以何种方式退出（包括被取消），都要放行阻塞在满队列上的 worker
            stopped.set()

        self.logger.info(f"完成代理的并发验证。共收集 {len(results)} 个结果，其中存活 {alive_count} 个。")
        return results

    async def wait_pending(self):
        """等待提前停止后仍在运行的 worker 全部结束。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_pending(self):
        """显式取消提前停止后仍在运行的 worker。"""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
