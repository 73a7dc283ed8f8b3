"""管道运行与调度"""

from .lease import Lease, LeaseManager
from .runner import PipelineRunner, RunReport
from .scheduler import PipelineScheduler, ScheduledJob

__all__ = [
    "Lease",
    "LeaseManager",
    "PipelineRunner",
    "PipelineScheduler",
    "RunReport",
    "ScheduledJob",
]
