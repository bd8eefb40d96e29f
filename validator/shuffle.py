# validator/shuffle.py

import logging
import random
from typing import List, Optional

import config
from models.proxy_model import Proxy

logger = logging.getLogger(__name__)


def smart_shuffle_proxies(proxies: List[Proxy], threshold: float, min_spacing: int,
                          rng: Optional[random.Random] = None,
                          rounds: int = config.SHUFFLE_ROUNDS) -> None:
    """
    原地打乱节点顺序，尽量让同一地址段的节点在 min_spacing 个位置内不相邻，
    避免并发检测时集中访问同一网段。

    这是有限轮次的启发式方法：每轮先整体随机打乱，再扫描窗口内的同段节点对，
    向后寻找与两者都不同段的节点交换。后面的交换可能重新引入冲突，不保证最优。

    Args:
        proxies (List[Proxy]): 节点列表，会被原地修改。
        threshold (float): 地址段判定阈值，见 Proxy.is_same_cidr。
        min_spacing (int): 期望的最小间距。
        rng (Optional[random.Random]): 随机数生成器，便于测试时固定种子。
        rounds (int): 迭代轮数。
    """
    if len(proxies) <= min_spacing:
        return

    rng = rng or random.Random()
    n = len(proxies)
    swaps = 0

    for _ in range(rounds):
        rng.shuffle(proxies)

        for i in range(n):
            for j in range(i + 1, min(n, i + min_spacing)):
                if not proxies[i].is_same_cidr(proxies[j], threshold):
                    continue
                # 找到可以交换的位置
                for k in range(j + 1, n):
                    if (not proxies[i].is_same_cidr(proxies[k], threshold)
                            and not proxies[j].is_same_cidr(proxies[k], threshold)):
                        proxies[j], proxies[k] = proxies[k], proxies[j]
                        swaps += 1
                        break

    logger.debug(f"智能乱序完成，共 {n} 个节点，交换 {swaps} 次。")
