"""
管道自动化引擎 — 结构化日志

提供 JSON 格式日志输出，便于按管道聚合运行日志。
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "extra_data", "taskName"}


class JSONFormatter(logging.Formatter):
    """JSON 格式日志格式化器"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={...}) 传入的字段
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        # 管道上下文（LoggerAdapter 注入）
        context.update(getattr(record, "extra_data", None) or {})
        if context:
            log_data["extra"] = context

        return json.dumps(log_data, ensure_ascii=False, default=str)


def get_logger(
    name: str,
    level: int | None = None,
    use_json: bool | None = None,
) -> logging.Logger:
    """
    获取结构化日志记录器

    Args:
        name: 日志记录器名称
        level: 日志级别，默认读取 AUTOMATION_LOG_LEVEL
        use_json: 是否使用 JSON 格式，默认读取 AUTOMATION_LOG_JSON

    Returns:
        配置好的 Logger 实例
    """
    logger = logging.getLogger(name)

    # 避免重复添加 handler
    if logger.handlers:
        return logger

    if level is None:
        level_name = os.environ.get("AUTOMATION_LOG_LEVEL", "INFO").upper()
        level = getattr(logging, level_name, logging.INFO)
    if use_json is None:
        use_json = os.environ.get("AUTOMATION_LOG_JSON", "true").lower() != "false"

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logger.addHandler(handler)
    logger.propagate = False

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """支持额外字段的日志适配器"""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})
        extra["extra_data"] = self.extra
        kwargs["extra"] = extra
        return msg, kwargs


def pipeline_logger(logger: logging.Logger, pipeline_id: str, **context: Any) -> LoggerAdapter:
    """为单个管道运行绑定上下文"""
    return LoggerAdapter(logger, {"pipeline_id": pipeline_id, **context})
