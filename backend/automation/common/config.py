"""
管道自动化引擎 — 配置加载

支持 YAML 配置文件和环境变量替换。
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from .logging import get_logger

logger = get_logger(__name__)


class SchedulerConfig(BaseModel):
    """调度配置"""

    interval_seconds: float = Field(default=300.0, gt=0)
    # 调度后是否立即触发一次
    run_on_schedule: bool = Field(default=False)


class ExecutionConfig(BaseModel):
    """执行配置"""

    call_timeout: float = Field(default=30.0, gt=0, description="单次外部调用超时（秒）")
    max_parallel_actions: int = Field(default=4, ge=1, le=32)
    lease_ttl: float = Field(default=600.0, gt=0, description="单次运行最长持有租约（秒）")


class TriggerConfig(BaseModel):
    """触发条件配置"""

    time_window_minutes: int = Field(default=5, ge=1, le=60)
    price_history_retention: float = Field(default=86400.0, gt=0)


class StorageConfig(BaseModel):
    """存储配置"""

    backend: Literal["memory", "json"] = Field(default="memory")
    data_dir: str = Field(default="data/pipelines")


class AgentConfig(BaseModel):
    """执行代理配置"""

    base_url: str = Field(default="http://localhost:8700")
    api_key: str = Field(default="")
    timeout: float = Field(default=30.0, gt=0)


class MarketDataConfig(BaseModel):
    """行情服务配置"""

    base_url: str = Field(default="http://localhost:8710")
    timeout: float = Field(default=5.0, gt=0, description="单次请求超时（秒）")
    # 含重试的总时限，超时按行情不可用处理；实际取值不超过动作超时的一半
    deadline: float = Field(default=10.0, gt=0)
    quote_token: str = Field(default="USDC")


class AuthConfig(BaseModel):
    """认证配置"""

    jwt_secret: str = Field(default="automation-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")


class Settings(BaseModel):
    """系统配置"""

    env: str = Field(default="development")
    debug: bool = Field(default=False)

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)


def _substitute_env_vars(value: Any) -> Any:
    """替换环境变量占位符 ${VAR_NAME}"""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replacer, value)

    if isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]

    return value


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """
    加载 YAML 配置文件

    Args:
        path: 配置文件路径

    Returns:
        配置字典（文件不存在时为空）
    """
    path = Path(path)

    if not path.exists():
        logger.warning(f"配置文件不存在: {path}")
        return {}

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return _substitute_env_vars(data)


# 环境变量覆盖：AUTOMATION_<SECTION>__<FIELD>
_ENV_PREFIX = "AUTOMATION_"


def _env_overrides() -> dict[str, Any]:
    """收集 AUTOMATION_SECTION__FIELD 形式的环境变量"""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX) or "__" not in key:
            continue
        section, _, field_name = key[len(_ENV_PREFIX):].lower().partition("__")
        overrides.setdefault(section, {})[field_name] = value
    return overrides


def load_settings(config_dir: str | Path | None = None) -> Settings:
    """
    加载系统配置

    优先级：环境变量 > config/*.yaml > 默认值

    Args:
        config_dir: 配置目录路径

    Returns:
        Settings 实例
    """
    config_data: dict[str, Any] = {}

    if config_dir:
        main_config = Path(config_dir) / "config.yaml"
        if main_config.exists():
            config_data.update(load_yaml_config(main_config))

    for section, values in _env_overrides().items():
        if section in Settings.model_fields:
            existing = config_data.get(section) or {}
            config_data[section] = {**existing, **values}

    return Settings(**config_data)


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = load_settings(os.environ.get("AUTOMATION_CONFIG_DIR", "config"))
    return _settings
