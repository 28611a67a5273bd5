"""
Wiring for a cache, its transport, a storage worker and the durable store.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator

from gridcache.cache import GridCache
from gridcache.channel import create_channel
from gridcache.config import Settings, get_settings
from gridcache.dataset import DatasetBuilder, SampleDatasetBuilder
from gridcache.exceptions import ConfigurationError
from gridcache.logging import get_logger
from gridcache.store.adapter import DurableStore
from gridcache.transport import RpcTransport
from gridcache.types import CacheOptions
from gridcache.worker.storage_worker import StorageWorker

logger = get_logger(__name__)


@dataclass
class CacheRuntime:
    """Everything ``open_cache`` started, for inspection and shutdown."""

    cache: GridCache
    transport: RpcTransport
    worker: StorageWorker
    store: DurableStore
    bootstrap_result: str | None = None


@asynccontextmanager
async def open_cache(
    options: CacheOptions,
    settings: Settings | None = None,
    builder: DatasetBuilder | None = None,
    store: DurableStore | None = None,
) -> AsyncGenerator[CacheRuntime, None]:
    """Start a storage worker and a cache connected to it.

    Waits for the bootstrap hydrate (seeding the store if needed) before
    yielding. On exit, waits for outstanding writes, then stops both loops
    and closes the store.

    Args:
        options: Schema and dataset size for the cache.
        settings: Defaults to ``get_settings()``.
        builder: Seed dataset builder. Defaults to a SampleDatasetBuilder.
        store: Durable store. Defaults to one at ``settings.STORE_PATH``.
    """
    settings = settings or get_settings()
    if store is None:
        settings.ensure_directories()
        store = DurableStore(settings.STORE_PATH, settings.STORE_COLLECTION)
    builder = builder or SampleDatasetBuilder(options.schema)

    caller_end, worker_end = create_channel()
    worker = StorageWorker(worker_end, store)
    transport = RpcTransport(caller_end, timeout=settings.RPC_TIMEOUT_SECONDS)
    worker.start()
    transport.start()

    cache = GridCache(
        options,
        transport,
        builder,
        sequenced_writes=settings.SEQUENCED_WRITES,
    )
    runtime = CacheRuntime(cache=cache, transport=transport, worker=worker, store=store)
    try:
        if cache.bootstrap_task is None:
            raise ConfigurationError(
                "Cache was created without a bootstrap task",
                context={"store_key": cache.store_key},
            )
        runtime.bootstrap_result = await cache.bootstrap_task
        logger.info(
            "Cache ready",
            store_key=cache.store_key,
            records=len(cache),
            result=runtime.bootstrap_result,
        )
        yield runtime
    finally:
        await cache.drain()
        await transport.stop()
        await worker.stop()
        await store.close()
