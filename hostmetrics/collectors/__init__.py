"""Collection cycle: metrics sources, the sampler and process attribution."""

from .attributor import Dimension, rank
from .network_state import NetworkStateStore
from .psutil_source import PsutilMetricsSource
from .sampler import CycleResult, Sampler, compute_rate
from .source import MetricsSource

__all__ = [
    "CycleResult",
    "Dimension",
    "MetricsSource",
    "NetworkStateStore",
    "PsutilMetricsSource",
    "Sampler",
    "compute_rate",
    "rank",
]
