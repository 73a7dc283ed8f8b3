"""
管道自动化引擎 — 重试装饰器

仅用于只读查询（价格、余额、行情）。转账、兑换、质押等有副作用的调用
不重试。
"""

import asyncio
import functools
import inspect
import random
import time
from collections.abc import Callable, Iterator
from typing import Any, ParamSpec, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def backoff_delays(
    max_retries: int,
    base_delay: float,
    max_delay: float,
    jitter: bool,
) -> Iterator[float]:
    """生成每次重试前的等待时间（指数退避）"""
    for attempt in range(max_retries):
        delay = min(base_delay * (2 ** attempt), max_delay)
        if jitter:
            delay = delay * (0.5 + random.random())
        yield delay


def retry_with_backoff(
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    重试装饰器（支持同步和异步函数）

    Args:
        max_retries: 最大重试次数（不含首次调用）
        base_delay: 基础延迟（秒）
        max_delay: 最大延迟（秒）
        jitter: 是否添加随机抖动
        exceptions: 需要重试的异常类型

    Returns:
        装饰器函数
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
            delays = backoff_delays(max_retries, base_delay, max_delay, jitter)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)  # type: ignore[misc]
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.warning(
                            f"重试耗尽: {func.__name__}, 共尝试 {attempt} 次",
                            extra={"error": str(e)},
                        )
                        raise
                    logger.info(
                        f"重试: {func.__name__}, 第 {attempt} 次失败, 延迟 {delay:.2f}s",
                        extra={"error": str(e)},
                    )
                    await asyncio.sleep(delay)

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delays = backoff_delays(max_retries, base_delay, max_delay, jitter)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.warning(
                            f"重试耗尽: {func.__name__}, 共尝试 {attempt} 次",
                            extra={"error": str(e)},
                        )
                        raise
                    time.sleep(delay)

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    return decorator
