"""
Configuration Manager for Leap.

集中管理系统常量和配置参数。
所有经验值显式声明，可通过 config/runtime.yaml 覆盖。

使用方式:
    from leap.config_manager import config
    timeout = config.REQUEST_TIMEOUT_SECONDS
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from leap.paths import CONFIG_DIR

RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"


@dataclass
class SystemConfig:
    """
    系统运行时常量配置。

    所有值均为经验值，可根据实际情况调整。
    """

    # === 行程生成 ===

    # 每个目标的挑战数量（软目标：远程模型可能返回其他数量）
    TARGET_CHALLENGE_COUNT: int = 7

    # 远程调用超时（秒）
    # 调整建议：网络较慢时可增至 60
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # 远程调用尝试次数：1 = 失败即降级；最多允许 2（一次有界重试）
    MAX_REMOTE_ATTEMPTS: int = 1

    # 单次生成的 token 上限
    MAX_TOKENS: int = 1500

    # === 权益 ===

    # 免费用户可同时拥有的活跃目标数
    FREE_GOAL_LIMIT: int = 1

    # === 连续打卡 ===

    # 触发 "7 天连胜" 庆祝文案的阈值
    SEVEN_DAY_STREAK: int = 7

    # 连胜里程碑；超过最后一个之后每 MILESTONE_STEP 天一个
    STREAK_MILESTONES: List[int] = field(default_factory=lambda: [2, 7, 30])
    MILESTONE_STEP: int = 7

    # 日历时区 (IANA 名称)，None 表示使用本机时区
    TIMEZONE: Optional[str] = None


def _load_runtime_config(path: Path = RUNTIME_CONFIG_PATH) -> dict:
    """加载运行时配置覆盖（如果存在）。"""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}


def get_config(path: Path = RUNTIME_CONFIG_PATH) -> SystemConfig:
    """
    获取系统配置实例。

    优先级：runtime.yaml > 默认值
    """
    base = SystemConfig()
    overrides = _load_runtime_config(path)

    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, value)

    base.MAX_REMOTE_ATTEMPTS = max(1, min(int(base.MAX_REMOTE_ATTEMPTS), 2))
    return base


# 全局配置实例（只读默认值；组件通过构造参数接收配置）
config = get_config()
