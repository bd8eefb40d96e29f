# output/writer.py

import json  # 用于处理 JSON 格式
import logging
import os
from typing import Any, Dict, List, Set

import yaml  # 用于处理 YAML 格式（如 Clash 配置）

import config
from config import CheckConfig
from errors import ProxyBuildError
from models.result_model import CheckResult
from models.stats import Stats
from validator.url_builder import build_proxy_url

# 获取当前模块的日志记录器
logger = logging.getLogger(__name__)

JSON_OUTPUT_FILENAME = "results.json"
YAML_OUTPUT_FILENAME = "results.yaml"
LINKS_OUTPUT_FILENAME = "proxies.txt"
CLASH_OUTPUT_FILENAME = "clash_config.yaml"

AUTO_GROUP_NAME = "自动选择"
MANUAL_GROUP_NAME = "手动选择"


def _ensure_output_dir_exists(output_dir: str):
    """确保输出目录存在，如果不存在则创建。"""
    os.makedirs(output_dir, exist_ok=True)


def write_results_json(results: List[CheckResult], output_path: str):
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump([r.to_dict() for r in results], f, ensure_ascii=False, indent=2)
    logger.info(f"成功将 {len(results)} 个检测结果写入 JSON 文件: {output_path}")


def write_results_yaml(results: List[CheckResult], output_path: str):
    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump([r.to_dict() for r in results], f, allow_unicode=True, sort_keys=False)
    logger.info(f"成功将 {len(results)} 个检测结果写入 YAML 文件: {output_path}")


def write_results(results: List[CheckResult], check_config: CheckConfig) -> List[str]:
    """
    按配置的输出格式写出检测结果，必要时同时生成 Clash 配置。
    Returns:
        List[str]: 写出的文件路径。
    """
    output_dir = check_config.output_dir
    _ensure_output_dir_exists(output_dir)
    fmt = check_config.output_format
    written = []

    if fmt in ('json', 'both'):
        path = os.path.join(output_dir, JSON_OUTPUT_FILENAME)
        write_results_json(results, path)
        written.append(path)
    if fmt in ('yaml', 'both'):
        path = os.path.join(output_dir, YAML_OUTPUT_FILENAME)
        write_results_yaml(results, path)
        written.append(path)

    path = os.path.join(output_dir, LINKS_OUTPUT_FILENAME)
    write_proxy_links(results, path)
    written.append(path)

    if check_config.generate_clash_config:
        path = os.path.join(output_dir, CLASH_OUTPUT_FILENAME)
        write_clash_config(results, path)
        written.append(path)
    return written


def write_proxy_links(results: List[CheckResult], output_path: str):
    """
    将存活节点的连接字符串写入明文文件，每行一个。
    """
    count = 0
    with open(output_path, 'w', encoding='utf-8') as f:
        for result in results:
            if not result.is_alive:
                continue
            try:
                f.write(build_proxy_url(result.proxy) + '\n')
                count += 1
            except ProxyBuildError as e:
                logger.warning(f"跳过无法构建链接的代理 {result.proxy.name}: {e}")
    logger.info(f"成功将 {count} 个代理写入明文文件: {output_path}")


def _unique_names(results: List[CheckResult]) -> List[str]:
    """节点名称只用于展示，可能重复；Clash 要求唯一，重复的加上序号。"""
    emitted: Set[str] = set()
    counters: Dict[str, int] = {}
    names = []
    for result in results:
        base = result.proxy.name
        name = base
        # 加序号后的名字也可能与原有名字冲突，继续递增直到唯一
        while name in emitted:
            counters[base] = counters.get(base, 1) + 1
            name = f"{base} {counters[base]}"
        emitted.add(name)
        names.append(name)
    return names


def build_clash_config(results: List[CheckResult]) -> Dict[str, Any]:
    """
    构建 Clash 配置：proxies 包含全部节点，两个代理组只包含可用节点。
    """
    clash_proxies = []
    available_names = []
    for result, name in zip(results, _unique_names(results)):
        proxy_map = result.proxy.to_dict()
        proxy_map['name'] = name
        clash_proxies.append(proxy_map)
        if result.is_available:
            available_names.append(name)

    return {
        'proxies': clash_proxies,
        'proxy-groups': [
            {
                'name': AUTO_GROUP_NAME,
                'type': 'url-test',  # 基于延迟自动选择
                'proxies': list(available_names),
                'url': config.CLASH_URL_TEST_URL,
                'interval': config.CLASH_URL_TEST_INTERVAL,
            },
            {
                'name': MANUAL_GROUP_NAME,
                'type': 'select',  # 用户手动选择
                'proxies': list(available_names),
            },
        ],
    }


def write_clash_config(results: List[CheckResult], output_path: str):
    """
    将检测结果写入 Clash YAML 配置文件。
    """
    clash_config = build_clash_config(results)
    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(clash_config, f, allow_unicode=True, sort_keys=False)
    logger.info(f"成功将 {len(clash_config['proxies'])} 个代理写入 Clash YAML 文件: {output_path}")


def format_stats(stats: Stats) -> str:
    snapshot = stats.snapshot()
    lines = [
        "检测统计:",
        f"  总节点数: {snapshot['total']}",
        f"  已检测数: {snapshot['checked']}",
        f"  存活节点: {snapshot['alive']}",
        f"  失败节点: {snapshot['failed']}",
        f"  总消耗流量: {snapshot['bytes'] / 1024 / 1024 / 1024:.3f} GB",
    ]
    if snapshot['total'] > 0:
        lines.append(f"  成功率: {snapshot['success_rate']:.2f}%")
    return '\n'.join(lines)


def format_results(results: List[CheckResult]) -> str:
    lines = ["检测结果:", "=" * 80]
    for i, result in enumerate(results, 1):
        lines.append(f"{i}. {result.proxy.name}: {'✅ 存活' if result.is_alive else '❌ 死亡'}")
        if result.is_alive:
            if result.latency_ms is not None:
                lines.append(f"   延迟: {result.latency_ms:.2f}ms")
            if result.speed is not None:
                lines.append(f"   速度: {result.speed:.2f} KB/s")
            if result.country:
                lines.append(f"   位置: {result.country}")
            if result.ip:
                lines.append(f"   IP: {result.ip}")
            lines.append(f"   Cloudflare: {'✅ 可访问' if result.is_cf_accessible else '❌ 不可访问'}")
            unlocked = result.media_unlock.unlocked()
            if unlocked:
                lines.append(f"   媒体解锁: {', '.join(unlocked)}")
        lines.append("-" * 80)
    return '\n'.join(lines)


def format_summary(results: List[CheckResult]) -> str:
    total = len(results)
    alive = [r for r in results if r.is_alive]
    dead = total - len(alive)
    lines = ["检测摘要:", "=" * 80, f"总节点数: {total}"]
    if total:
        lines.append(f"存活节点: {len(alive)} ({len(alive) / total * 100:.1f}%)")
        lines.append(f"死亡节点: {dead} ({dead / total * 100:.1f}%)")

    if alive:
        fast_nodes = sorted((r for r in alive if r.speed is not None), key=lambda r: r.speed, reverse=True)
        if fast_nodes:
            lines.append("最快节点:")
            for i, node in enumerate(fast_nodes[:3], 1):
                lines.append(f"  {i}. {node.proxy.name}: {node.speed:.2f} KB/s")

        lines.append("媒体解锁统计:")
        for service in ('youtube', 'netflix', 'disney', 'openai'):
            count = sum(1 for r in alive if getattr(r.media_unlock, service))
            lines.append(f"  {service}: {count}/{len(alive)}")
    return '\n'.join(lines)
