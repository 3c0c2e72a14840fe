"""
Controllers for the tiled matmul pipeline.

- TileScheduler: Top-level FSM sequencing loads, compute, drain and writes
- ResultDrainer: Result bank array -> element stream
"""

from .drainer import ResultDrainer
from .scheduler import SchedulerError, SchedulerState, TileScheduler

__all__ = ["ResultDrainer", "SchedulerError", "SchedulerState", "TileScheduler"]
