"""
Pytest configuration and fixtures for gridcache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from gridcache.channel import Endpoint, create_channel
from gridcache.config import Settings, clear_settings_cache
from gridcache.store.adapter import DurableStore
from gridcache.transport import RequestSequence, RpcTransport
from gridcache.types import CacheOptions, Schema, WorkingSet
from gridcache.worker.storage_worker import StorageWorker


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide environment variables pointing the store at temp_dir."""
    env_vars = {
        "STORE_PATH": str(temp_dir / "store" / "gridcache.db"),
        "STORE_COLLECTION": "TestStore",
        "SEQUENCED_WRITES": "true",
        "DEFAULT_DATASET_SIZE": "5",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    clear_settings_cache()
    from gridcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def schema() -> Schema:
    """A small schema with a read-only identity column."""
    return Schema(
        name="X",
        sample={"ID": -1, "Name": " ", "Score": 0},
        read_only=("ID",),
    )


@pytest.fixture
def options(schema: Schema) -> CacheOptions:
    return CacheOptions(schema=schema, size=5)


@pytest.fixture
async def store(temp_dir: Path) -> AsyncGenerator[DurableStore, None]:
    """A durable store in temp_dir, closed after the test."""
    durable = DurableStore(temp_dir / "store.db")
    yield durable
    await durable.close()


@pytest.fixture
def channel() -> tuple[Endpoint, Endpoint]:
    """(caller_end, worker_end) of a fresh channel."""
    return create_channel()


@pytest.fixture
async def worker(
    channel: tuple[Endpoint, Endpoint], store: DurableStore
) -> AsyncGenerator[StorageWorker, None]:
    """A running storage worker on the worker end of ``channel``."""
    _, worker_end = channel
    storage_worker = StorageWorker(worker_end, store)
    storage_worker.start()
    yield storage_worker
    await storage_worker.stop()


@pytest.fixture
async def transport(
    channel: tuple[Endpoint, Endpoint], worker: StorageWorker
) -> AsyncGenerator[RpcTransport, None]:
    """A running transport connected to ``worker``, with its own id sequence."""
    caller_end, _ = channel
    rpc = RpcTransport(caller_end, sequence=RequestSequence())
    rpc.start()
    yield rpc
    await rpc.stop()


class SpyBuilder:
    """Dataset builder recording how often it was asked for data."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self.calls: list[int] = []

    async def __call__(self, size: int) -> WorkingSet:
        self.calls.append(size)
        return {
            index: {"ID": index, "Name": f"Name-{index}", "Score": index * 10}
            for index in range(size)
        }


@pytest.fixture
def builder(schema: Schema) -> SpyBuilder:
    return SpyBuilder(schema)
