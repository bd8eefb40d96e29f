# config.py

import logging
import os
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import ConfigError

logger = logging.getLogger(__name__)

# --- Probe Endpoints ---
# 存活检测：低开销的 204 端点
ALIVE_CHECK_URL = "https://gstatic.com/generate_204"

# Cloudflare trace 端点，返回 key=value 行（包含 loc 和 ip）
CLOUDFLARE_TRACE_URL = "https://cloudflare.com/cdn-cgi/trace"

# Clash 自动选择组使用的测速 URL
CLASH_URL_TEST_URL = "http://www.gstatic.com/generate_204"
CLASH_URL_TEST_INTERVAL = 300

# 所有探测请求使用的 User-Agent
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# --- Validator Configuration ---
# 结果通道容量
RESULT_CHANNEL_CAPACITY = 100

# 智能乱序的迭代轮数
SHUFFLE_ROUNDS = 3

# 延迟低于该值（毫秒）的存活节点视为可用
AVAILABLE_LATENCY_MS = 5000

# 默认测速文件（约数十 MB）
DEFAULT_SPEED_TEST_URL = (
    "https://github.com/2dust/v2rayN/releases/download/7.16.2/v2rayN-windows-64-SelfContained.zip"
)

# --- Config File ---
DEFAULT_CONFIG_PATH = os.environ.get("PROXY_CHECK_CONFIG", "config.yaml")


def _dashed(name: str) -> str:
    """配置文件中的键使用短横线，例如 success-limit。"""
    return name.replace('_', '-')


class CheckConfig(BaseModel):
    """
    一次检测运行的配置。默认值与 config.yaml 中的示例保持一致。
    字段名和短横线形式的键都可以使用；未知键在 from_dict 中记录警告后忽略。
    """

    model_config = ConfigDict(alias_generator=_dashed, populate_by_name=True, extra="ignore")

    # 检测参数
    concurrent: int = Field(default=20, ge=1)
    timeout: int = Field(default=6000, ge=1)  # 毫秒
    success_limit: int = Field(default=200, ge=0)  # 0 表示不提前停止
    min_speed: float = Field(default=128.0, ge=0)  # KB/s
    speed_test_url: Optional[str] = DEFAULT_SPEED_TEST_URL  # None 关闭测速
    media_check: bool = True
    drop_bad_cf_nodes: bool = False

    # 智能乱序
    threshold: float = Field(default=0.75, ge=0, le=1)  # 0 时关闭
    shuffle_spacing: Optional[int] = Field(default=None, ge=0)  # 未设置时使用 concurrent * 5

    # 输入输出
    input_file: str = "sample.yaml"
    output_dir: str = "./output"
    output_format: Literal["json", "yaml", "both"] = "both"
    generate_clash_config: bool = True

    # 日志
    log_level: str = "info"

    def is_speed_test_enabled(self) -> bool:
        return bool(self.speed_test_url)

    def is_media_check_enabled(self) -> bool:
        return self.media_check

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    @property
    def effective_spacing(self) -> int:
        if self.shuffle_spacing is not None:
            return self.shuffle_spacing
        return self.concurrent * 5

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckConfig":
        """
        从字典构建并校验配置，未知键会被忽略并记录警告。
        Args:
            data (Dict[str, Any]): 从 YAML 读取到的映射。
        Returns:
            CheckConfig: 配置对象。
        Raises:
            ConfigError: 某个配置项的值无效。
        """
        known = set(cls.model_fields) | {_dashed(name) for name in cls.model_fields}
        for key in data:
            if key not in known:
                logger.warning(f"忽略未知配置项: {key}")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            error = e.errors()[0]
            name = str(error['loc'][0]).replace('-', '_') if error['loc'] else ""
            raise ConfigError(
                f"配置项 {name} 的值无效: {error['msg']}", field=name, errors=e.errors()
            ) from e


def load_config(path: Optional[str] = None) -> CheckConfig:
    """
    从 YAML 文件加载检测配置。
    Args:
        path (Optional[str]): 配置文件路径，默认使用 DEFAULT_CONFIG_PATH。
    Returns:
        CheckConfig: 配置对象；文件不存在时返回默认配置。
    Raises:
        ConfigError: 文件无法读取、无法解析、顶层不是映射或配置项的值无效。
    """
    path = path or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        logger.info(f"配置文件不存在: {path}，使用默认配置")
        return CheckConfig()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"读取配置文件失败: {path}: {e}", path=path) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"解析配置文件失败: {path}: {e}", path=path) from e

    if data is None:
        return CheckConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"配置文件顶层必须是映射: {path}", path=path)

    logger.info(f"从配置文件加载设置: {path}")
    return CheckConfig.from_dict(data)
