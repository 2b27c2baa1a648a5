"""Core data structures for partitioned tree growth."""

from .dataset import group_rows_by_partition, round_robin_partition_ids
from .shards import PartitionShard, split_shard

__all__ = [
    "PartitionShard",
    "group_rows_by_partition",
    "round_robin_partition_ids",
    "split_shard",
]
