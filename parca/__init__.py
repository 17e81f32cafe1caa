"""Continuous profiling building blocks: configuration, metastore, debug information, hashing and logging."""

__version__ = "0.1.0"