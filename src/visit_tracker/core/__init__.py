"""
Core visit tracking module.

Contains the store abstraction, the key schema, the visit recorder and the
stats aggregator.
"""

from .counters import CounterStore
from .keys import Dimension, Period, VisitKeys, visit_keys
from .models import (
    BrowserCount,
    CountryCount,
    GraphData,
    IPCount,
    ReferrerCount,
    RepoCount,
    StatsDimension,
    StatsResult,
    UserAgentCount,
    UserAgentDetail,
    VisitEvent,
    VisitMeta,
)
from .recorder import VisitRecorder
from .stats import StatsAggregator
from .store import CloudflareKVStore, KVStore, MemoryKVStore, StoreError, TrackerError

__all__ = [
    "KVStore", "MemoryKVStore", "CloudflareKVStore", "StoreError", "TrackerError",
    "CounterStore", "VisitKeys", "visit_keys", "Period", "Dimension",
    "VisitEvent", "VisitMeta", "UserAgentDetail",
    "RepoCount", "ReferrerCount", "CountryCount", "BrowserCount", "IPCount", "UserAgentCount",
    "StatsDimension", "StatsResult", "GraphData",
    "VisitRecorder", "StatsAggregator",
]
