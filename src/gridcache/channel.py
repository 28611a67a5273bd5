"""
Message channel between the caller and the storage worker.

The two sides share nothing but a pair of byte queues. Every envelope is
encoded with orjson on send and decoded on receive, so each side always works
on its own copy of the data.
"""

from __future__ import annotations

import asyncio
from typing import Any

import orjson

from gridcache.exceptions import ProtocolError


class Endpoint:
    """One end of a channel: sends on ``outbox`` and receives on ``inbox``."""

    def __init__(self, inbox: asyncio.Queue[bytes], outbox: asyncio.Queue[bytes]) -> None:
        self._inbox = inbox
        self._outbox = outbox

    async def send(self, envelope: dict[str, Any]) -> None:
        """Serialize and enqueue an envelope for the other side."""
        try:
            data = orjson.dumps(envelope)
        except TypeError as e:
            raise ProtocolError(
                "Envelope is not serializable", context={"error": str(e)}
            ) from e
        await self._outbox.put(data)

    def send_nowait(self, envelope: dict[str, Any]) -> None:
        """Serialize and enqueue an envelope without suspending."""
        try:
            data = orjson.dumps(envelope)
        except TypeError as e:
            raise ProtocolError(
                "Envelope is not serializable", context={"error": str(e)}
            ) from e
        self._outbox.put_nowait(data)

    async def receive(self) -> Any:
        """Wait for the next envelope from the other side.

        Raises:
            ProtocolError: If the bytes received are not valid JSON.
        """
        data = await self._inbox.get()
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise ProtocolError(
                "Received malformed envelope", context={"error": str(e)}
            ) from e

    async def send_raw(self, data: bytes) -> None:
        """Enqueue pre-encoded bytes. Only used to exercise malformed input."""
        await self._outbox.put(data)


def create_channel() -> tuple[Endpoint, Endpoint]:
    """Create a connected pair of endpoints.

    Returns:
        (caller_end, worker_end). What one sends, the other receives.
    """
    requests: asyncio.Queue[bytes] = asyncio.Queue()
    responses: asyncio.Queue[bytes] = asyncio.Queue()
    caller_end = Endpoint(inbox=responses, outbox=requests)
    worker_end = Endpoint(inbox=requests, outbox=responses)
    return caller_end, worker_end
