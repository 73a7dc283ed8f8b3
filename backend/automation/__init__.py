"""
管道自动化引擎

按用户定义的"事件 → 动作"管道周期性评估触发条件，
条件满足时通过执行代理完成链上操作，并记录执行历史。
"""

__version__ = "0.1.0"
