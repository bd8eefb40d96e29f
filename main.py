# main.py

import asyncio
import logging
import sys
from typing import List

import config  # 导入 config.py
from errors import ProxyCheckError
from models.proxy_model import Proxy
from models.result_model import CheckResult
from output.writer import format_results, format_stats, format_summary, write_results
from parser.parser import ProxyParser
from validator.shuffle import smart_shuffle_proxies
from validator.validator import ProxyValidator


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


async def run(check_config: config.CheckConfig) -> List[CheckResult]:
    """
    运行完整流程：读取节点、去重、智能乱序、并发检测、输出。
    """
    parser = ProxyParser()

    # --- 步骤 1: 读取并去重代理节点 ---
    logging.info(f"正在从 {check_config.input_file} 读取代理节点...")
    proxies: List[Proxy] = parser.deduplicate_proxies(parser.load_proxies_file(check_config.input_file))

    # --- 步骤 2: 智能乱序 ---
    if check_config.threshold > 0:
        logging.info("对代理节点进行智能乱序...")
        smart_shuffle_proxies(proxies, check_config.threshold, check_config.effective_spacing)

    # --- 步骤 3: 并发检测 ---
    logging.info(f"正在并发检测 {len(proxies)} 个代理...")
    validator = ProxyValidator(check_config)
    results = await validator.validate_proxies_concurrently(proxies)
    # 提前停止时后台仍有 worker，等它们结束后统计才完整
    await validator.wait_pending()

    print(format_stats(validator.get_stats()))
    print(format_results(results))
    print(format_summary(results))

    # --- 步骤 4: 写入输出文件 ---
    logging.info(f"正在写入输出文件到 {check_config.output_dir}...")
    write_results(results, check_config)
    return results


def main() -> int:
    try:
        check_config = config.load_config(sys.argv[1] if len(sys.argv) > 1 else None)
    except ProxyCheckError as e:
        setup_logging("info")
        logging.error(f"加载配置失败: {e}")
        return 1

    setup_logging(check_config.log_level)
    logging.info("程序开始运行...")
    try:
        asyncio.run(run(check_config))
    except (ProxyCheckError, OSError) as e:
        logging.error(f"运行失败: {e}")
        return 1
    logging.info("程序运行结束。")
    return 0


if __name__ == "__main__":
    sys.exit(main())
