"""
管道自动化引擎 — 工具函数

提供 UTC 时间处理、ID 生成等通用工具。
"""

import uuid
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """
    获取当前 UTC 时间

    Returns:
        带时区信息的 UTC datetime
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    将 datetime 转换为 UTC 时间

    Args:
        dt: 输入的 datetime（可带或不带时区）

    Returns:
        UTC 时间
    """
    if dt.tzinfo is None:
        # 假设无时区的时间为 UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_id(prefix: str) -> str:
    """
    生成唯一 ID

    Args:
        prefix: ID 前缀（PIPE / JOB / LEASE ...）

    Returns:
        唯一 ID，格式: {prefix}_{timestamp}_{random}
    """
    ts = int(utc_now().timestamp() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"{prefix}_{ts}_{rand}"


def parse_amount(value: object, field_name: str = "amount") -> float:
    """
    解析金额字段（前端可能传字符串）

    Raises:
        ValueError: 无法解析或非正数
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name} 必须是数字")
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} 必须是数字: {value!r}")
    if amount <= 0:
        raise ValueError(f"{field_name} 必须大于 0: {amount}")
    return amount


def summarize_validation_error(error: Any) -> list[dict[str, Any]]:
    """将 pydantic ValidationError 压缩为字段 / 消息列表"""
    return [
        {"field": ".".join(str(p) for p in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]
