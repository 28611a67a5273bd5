"""
Storage worker answering GET/SET requests against the durable store.
"""

from gridcache.worker.storage_worker import StorageWorker

__all__ = ["StorageWorker"]
