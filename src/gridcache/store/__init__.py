"""
Durable key-value store used by the storage worker.
"""

from gridcache.store.adapter import DurableStore

__all__ = ["DurableStore"]
