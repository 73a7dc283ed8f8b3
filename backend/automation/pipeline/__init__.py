"""管道定义、存储与执行历史"""

from .history import HistoryRecorder
from .models import (
    ActionDefinition,
    Connection,
    EventDefinition,
    ExecutionHistoryEntry,
    Pipeline,
    PipelineMetadata,
)
from .price_history import PriceHistoryStore, PriceSample
from .storage import InMemoryPipelineStore, JsonFilePipelineStore, PipelineStore, create_store

__all__ = [
    "ActionDefinition",
    "Connection",
    "EventDefinition",
    "ExecutionHistoryEntry",
    "HistoryRecorder",
    "InMemoryPipelineStore",
    "JsonFilePipelineStore",
    "Pipeline",
    "PipelineMetadata",
    "PipelineStore",
    "PriceHistoryStore",
    "PriceSample",
    "create_store",
]
