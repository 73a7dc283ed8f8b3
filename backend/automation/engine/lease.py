"""
管道自动化引擎 — 执行租约

同一管道同一时刻至多一个运行持有租约。运行时长超过调度间隔时，
后续触发因拿不到租约而跳过。持有者崩溃未释放时，租约过期后可被接管。
"""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from automation.common.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Lease:
    """运行租约"""
    pipeline_id: str
    token: str
    acquired_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class LeaseManager:
    """
    租约管理器

    acquire / release 不含 await，在单个事件循环内是原子的。
    """

    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl 必须大于 0")
        self.ttl = ttl
        self._clock = clock
        self._leases: dict[str, Lease] = {}

    def acquire(self, pipeline_id: str, ttl: float | None = None) -> Lease | None:
        """
        获取租约

        Returns:
            Lease，已被占用时返回 None
        """
        now = self._clock()
        current = self._leases.get(pipeline_id)
        if current is not None:
            if not current.expired(now):
                return None
            logger.warning(
                f"租约已过期，被新运行接管: {pipeline_id}",
                extra={"pipeline_id": pipeline_id},
            )

        lease = Lease(
            pipeline_id=pipeline_id,
            token=uuid.uuid4().hex,
            acquired_at=now,
            expires_at=now + (ttl or self.ttl),
        )
        self._leases[pipeline_id] = lease
        return lease

    def release(self, lease: Lease) -> bool:
        """
        释放租约（只释放自己持有的）

        Returns:
            是否释放成功
        """
        current = self._leases.get(lease.pipeline_id)
        if current is None or current.token != lease.token:
            return False
        del self._leases[lease.pipeline_id]
        return True

    def is_held(self, pipeline_id: str) -> bool:
        current = self._leases.get(pipeline_id)
        return current is not None and not current.expired(self._clock())
