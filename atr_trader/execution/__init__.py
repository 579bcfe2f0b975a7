"""
Execution module for sizing and partitioned order entry.

This module handles:
- Risk-based position sizing from a volatility reading
- Volume normalization to venue lot steps
- Splitting the size into weighted partitions and dispatching them
"""

from .sizing import compute_sizing, round_half_away, SizeCalculator
from .partitioning import (
    build_partition_orders,
    execute_partitions,
    PartitionExecutor,
)
from .volume import VolumeNormalizer, round_to_step

__all__ = [
    "compute_sizing",
    "round_half_away",
    "SizeCalculator",
    "build_partition_orders",
    "execute_partitions",
    "PartitionExecutor",
    "VolumeNormalizer",
    "round_to_step",
]
