"""Mutable buffers, shard levels, tombstone-cancelling merges and reconstruction planning."""

__version__ = "0.1.0"

__all__ = [
    "bloom",
    "bsm_triespline",
    "bsm_vptree",
    "buffer",
    "cursor",
    "fileio",
    "level",
    "merge",
    "points",
    "structure",
    "types",
]