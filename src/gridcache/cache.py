"""
GridCache: a persisted in-memory row cache.

Rows live in an insertion-ordered dict for synchronous reads by UI code.
Every mutation serializes the whole working set into one blob and sends it
to the storage worker, then re-hydrates from the stored copy. Startup
hydrates from the store and seeds a dataset when nothing is stored yet.

Persisting and hydrating go through the RPC transport, so the caller never
waits on storage: ``set`` and ``delete`` return as soon as memory changed.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Coroutine

import orjson

from gridcache.columns import build_columns
from gridcache.dataset import DatasetBuilder
from gridcache.exceptions import ConfigurationError, GridCacheError, SerializationError
from gridcache.logging import get_logger, log_context
from gridcache.transport import RpcTransport
from gridcache.types import (
    ERROR_PREFIX,
    NOT_FOUND,
    CacheOptions,
    ColumnDescriptor,
    HydrationStats,
    Procedure,
    Record,
    RequestPayload,
    WorkingSet,
)

logger = get_logger(__name__)

HydrationListener = Callable[["GridCache"], None]

_MISSING = object()


def encode_working_set(working_set: WorkingSet) -> str:
    """Serialize a working set as a JSON array of ``[key, record]`` pairs."""
    try:
        return orjson.dumps(list(working_set.items())).decode("utf-8")
    except TypeError as e:
        raise SerializationError(
            "Working set is not serializable", context={"error": str(e)}
        ) from e


def decode_working_set(blob: str) -> WorkingSet:
    """Rebuild a working set from a blob written by ``encode_working_set``."""
    try:
        pairs = orjson.loads(blob)
    except orjson.JSONDecodeError as e:
        raise SerializationError("Stored blob is not valid JSON", context={"error": str(e)}) from e

    if not isinstance(pairs, list):
        raise SerializationError("Stored blob must be an array of pairs")

    working_set: WorkingSet = {}
    for pair in pairs:
        if (
            not isinstance(pair, list)
            or len(pair) != 2
            or not isinstance(pair[0], int)
            or not isinstance(pair[1], dict)
        ):
            raise SerializationError(
                "Stored blob holds a malformed entry", context={"entry": repr(pair)[:100]}
            )
        working_set[pair[0]] = pair[1]
    return working_set


def _error_marker(error: Exception) -> str:
    message = error.message if isinstance(error, GridCacheError) else str(error)
    return f"{ERROR_PREFIX}{message}"


class GridCache:
    """In-memory working set persisted through a storage worker.

    Attributes:
        store_key: The single durable-store key, ``"{schema}-{size}"``.
        columns: Column descriptors computed once from the schema sample.
        working_set: Identity key -> record, in canonical row order.
        raw: Rows as of the last successful hydrate.
        query_set: Working projection of ``raw`` (filtered by collaborators).
        ready: Set after the first successful hydrate.
    """

    def __init__(
        self,
        options: CacheOptions,
        transport: RpcTransport,
        builder: DatasetBuilder,
        *,
        sequenced_writes: bool = True,
        autostart: bool = True,
    ) -> None:
        """Initialize the cache and schedule the bootstrap hydrate.

        Args:
            options: Schema and dataset size.
            transport: RPC transport connected to a storage worker.
            builder: Seeds the store when nothing is persisted under store_key.
            sequenced_writes: Re-hydrate only after the persist completed.
                False fires both requests at once, so the hydrate may read the older blob.
            autostart: Schedule ``bootstrap()`` immediately. Requires a running loop.
        """
        self.options = options
        self.schema = options.schema
        self.size = options.size
        self.store_key = options.store_key
        self.transport = transport
        self.builder = builder
        self.sequenced_writes = sequenced_writes

        self.columns: list[ColumnDescriptor] = build_columns(self.schema)
        self.working_set: WorkingSet = {}
        self.raw: list[Record] = []
        self.query_set: list[Record] = []
        self.stats = HydrationStats()
        self.ready = asyncio.Event()

        self._listeners: list[HydrationListener] = []
        self._background: set[asyncio.Task[Any]] = set()
        self.bootstrap_task: asyncio.Task[Any] | None = None

        if autostart:
            self.bootstrap_task = self._spawn(self.bootstrap())

    def __len__(self) -> int:
        return len(self.working_set)

    def __contains__(self, key: object) -> bool:
        return key in self.working_set

    @property
    def pending_writes(self) -> int:
        """Background persist/hydrate tasks not finished yet."""
        return len(self._background)

    def add_listener(self, listener: HydrationListener) -> None:
        """Register a callback run after every successful hydrate."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            coro.close()
            raise ConfigurationError(
                "GridCache needs a running event loop", context={"store_key": self.store_key}
            ) from e
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background cache task failed",
                store_key=self.store_key,
                error=repr(error),
            )

    async def drain(self) -> None:
        """Wait for every scheduled persist/hydrate, including ones they schedule."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the first successful hydrate."""
        await asyncio.wait_for(self.ready.wait(), timeout)

    # ------------------------------------------------------------------
    # Bootstrap, persist, hydrate
    # ------------------------------------------------------------------

    async def bootstrap(self) -> str | None:
        """Hydrate from the store, seeding a dataset when none is stored.

        Returns:
            "ok", None if the store stayed empty, or an error marker.
        """
        with log_context(store_key=self.store_key):
            result = await self.hydrate()
            if result is not None:
                return result

            logger.info("Creating test dataset", size=self.size)
            try:
                records = await self.builder(self.size)
            except (GridCacheError, OSError) as e:
                logger.error("Dataset builder failed", error=str(e))
                return _error_marker(e)

            if self.sequenced_writes:
                await self.persist(records)
                return await self.hydrate()

            _, result = await asyncio.gather(self.persist(records), self.hydrate())
            return result

    async def persist(self, working_set: WorkingSet | None = None) -> str:
        """Write the entire working set to the store as one blob.

        Args:
            working_set: Set to persist. Defaults to the cache's own.

        Returns:
            The worker's acknowledgement, or an error marker.
        """
        if working_set is None:
            working_set = self.working_set
        try:
            blob = encode_working_set(working_set)
        except SerializationError as e:
            logger.error("Persist failed", store_key=self.store_key, error=str(e))
            return _error_marker(e)
        return await self._send_blob(blob, len(working_set))

    async def _send_blob(self, blob: str, count: int) -> str:
        start = time.perf_counter()
        try:
            ack = await self.transport.call(
                RequestPayload(procedure=Procedure.SET.value, key=self.store_key, value=blob)
            )
        except GridCacheError as e:
            logger.error("Persist failed", store_key=self.store_key, error=e.message)
            return _error_marker(e)

        elapsed = (time.perf_counter() - start) * 1000
        logger.info(
            "Persisted working set",
            store_key=self.store_key,
            records=count,
            elapsed_ms=round(elapsed, 2),
        )
        return str(ack)

    async def hydrate(self) -> str | None:
        """Replace the working set with the stored blob.

        Returns:
            "ok" after a successful load, None when nothing is stored,
            or an error marker when the fetch or decode failed.
        """
        fetch_start = time.perf_counter()
        try:
            result = await self.transport.call(
                RequestPayload(procedure=Procedure.GET.value, key=self.store_key)
            )
        except GridCacheError as e:
            logger.error("Hydrate failed", store_key=self.store_key, error=e.message)
            return _error_marker(e)
        fetch_ms = (time.perf_counter() - fetch_start) * 1000

        if result == NOT_FOUND:
            logger.info("Nothing stored yet", store_key=self.store_key)
            return None

        if not isinstance(result, str):
            logger.error("Hydrate got a non-text blob", store_key=self.store_key)
            return f"{ERROR_PREFIX}stored blob for {self.store_key} is not text"

        parse_start = time.perf_counter()
        try:
            working_set = decode_working_set(result)
        except SerializationError as e:
            logger.error("Hydrate failed", store_key=self.store_key, error=str(e))
            return _error_marker(e)
        parse_ms = (time.perf_counter() - parse_start) * 1000

        build_start = time.perf_counter()
        self.working_set = working_set
        self.raw = list(working_set.values())
        self.query_set = list(self.raw)
        build_ms = (time.perf_counter() - build_start) * 1000

        self.stats = HydrationStats(
            fetch_ms=fetch_ms, parse_ms=parse_ms, build_ms=build_ms, records=len(working_set)
        )
        logger.debug(
            "Hydrated working set",
            store_key=self.store_key,
            records=len(working_set),
            fetch_ms=round(fetch_ms, 2),
            parse_ms=round(parse_ms, 2),
            build_ms=round(build_ms, 2),
        )

        self.ready.set()
        self._notify()
        return "ok"

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Hydration listener failed", store_key=self.store_key)

    def reset_projection(self) -> None:
        """Restore the working projection to the rows of the last hydrate."""
        self.query_set = list(self.raw)

    # ------------------------------------------------------------------
    # Synchronous row operations
    # ------------------------------------------------------------------

    def _schedule_write(self) -> None:
        # Encode now so the blob is the set as of this mutation
        blob = encode_working_set(self.working_set)
        count = len(self.working_set)
        if self.sequenced_writes:
            self._spawn(self._persist_then_hydrate(blob, count))
        else:
            self._spawn(self._send_blob(blob, count))
            self._spawn(self.hydrate())

    async def _persist_then_hydrate(self, blob: str, count: int) -> None:
        await self._send_blob(blob, count)
        await self.hydrate()

    def get(self, key: int) -> Record | str | None:
        """Read a record without side effects.

        Returns:
            The record, None if absent, or an error marker on a fault.
        """
        try:
            return self.working_set.get(key)
        except TypeError as e:
            return _error_marker(e)

    def set(self, key: int, record: Record) -> str:
        """Insert or overwrite a record, then persist and re-hydrate in the background.

        Returns:
            The key as a string, or an error marker on a fault.
        """
        try:
            previous = self.working_set.get(key, _MISSING)
        except TypeError as e:
            logger.error("error putting", store_key=self.store_key, key=repr(key), error=str(e))
            return _error_marker(e)

        self.working_set[key] = record
        try:
            self._schedule_write()
        except GridCacheError as e:
            # Nothing was sent, so memory goes back to what is stored
            if previous is _MISSING:
                del self.working_set[key]
            else:
                self.working_set[key] = previous
            logger.error("error putting", store_key=self.store_key, key=repr(key), error=str(e))
            return _error_marker(e)
        return str(key)

    def delete(self, key: int) -> bool | str:
        """Remove a record; persist and re-hydrate only if one was removed.

        Returns:
            Whether a record was removed, or an error marker on a fault.
        """
        try:
            if key not in self.working_set:
                return False
        except TypeError as e:
            logger.error("error deleting", store_key=self.store_key, key=repr(key), error=str(e))
            return _error_marker(e)

        snapshot = dict(self.working_set)
        del self.working_set[key]
        try:
            self._schedule_write()
        except GridCacheError as e:
            self.working_set = snapshot
            logger.error("error deleting", store_key=self.store_key, key=repr(key), error=str(e))
            return _error_marker(e)
        return True
