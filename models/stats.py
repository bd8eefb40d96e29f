# models/stats.py

import threading
from typing import Dict


class Stats:
    """
    一次检测运行的计数器，被所有 worker 共享。

    每个计数器的自增都是原子的；snapshot() 逐个读取字段，不保证字段之间一致
    （例如 checked 可能落后于 alive），只适合用于进度展示。
    """

    def __init__(self, total: int = 0):
        self._lock = threading.Lock()
        self.total_nodes = total
        self.alive_nodes = 0
        self.checked_nodes = 0
        self.failed_nodes = 0
        self.total_bytes = 0

    def set_total(self, total: int):
        with self._lock:
            self.total_nodes = total

    def increment_alive(self):
        with self._lock:
            self.alive_nodes += 1

    def increment_checked(self):
        with self._lock:
            self.checked_nodes += 1

    def increment_failed(self):
        with self._lock:
            self.failed_nodes += 1

    def add_bytes(self, count: int):
        with self._lock:
            self.total_bytes += count

    def get_success_rate(self) -> float:
        total = self.total_nodes
        alive = self.alive_nodes
        if total > 0:
            return alive / total * 100.0
        return 0.0

    def snapshot(self) -> Dict[str, float]:
        return {
            'total': self.total_nodes,
            'checked': self.checked_nodes,
            'alive': self.alive_nodes,
            'failed': self.failed_nodes,
            'bytes': self.total_bytes,
            'success_rate': self.get_success_rate(),
        }

    def __repr__(self):
        return (f"Stats(total={self.total_nodes}, checked={self.checked_nodes}, "
                f"alive={self.alive_nodes}, failed={self.failed_nodes}, bytes={self.total_bytes})")
