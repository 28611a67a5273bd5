"""
RPC transport between the cache and the storage worker.

Every outbound request gets a fresh id from a process-wide sequence and a
future in the pending table. The receive loop matches each response to its
future by id, removes the entry, and resolves it exactly once. Responses for
ids that are not pending are dropped.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

from gridcache.channel import Endpoint
from gridcache.exceptions import (
    ProtocolError,
    TransportClosedError,
    TransportError,
    TransportTimeoutError,
)
from gridcache.logging import get_logger, log_context
from gridcache.types import RequestEnvelope, RequestPayload, ResponseEnvelope

logger = get_logger(__name__)


class RequestSequence:
    """Monotonic request ids, starting at 0 and never reused."""

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start)
        self._last: int | None = None

    def next(self) -> int:
        self._last = next(self._counter)
        return self._last

    @property
    def last(self) -> int | None:
        """The most recently issued id, or None if none was issued yet."""
        return self._last


# Shared by every transport in the process
REQUEST_IDS = RequestSequence()


class RpcTransport:
    """Correlates request/response pairs over a channel endpoint."""

    def __init__(
        self,
        endpoint: Endpoint,
        sequence: RequestSequence = REQUEST_IDS,
        timeout: float | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            endpoint: Caller end of the channel.
            sequence: Id source. Defaults to the process-wide sequence.
            timeout: Seconds before an unanswered request is evicted.
                None keeps requests pending until answered.
        """
        self.endpoint = endpoint
        self.sequence = sequence
        self.timeout = timeout
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def start(self) -> None:
        """Start the response loop on the running event loop."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run(), name="gridcache-transport"
        )

    async def stop(self) -> None:
        """Stop the response loop and fail every request still pending."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        for request_id in list(self._pending):
            future = self._pending.pop(request_id)
            self._cancel_timer(request_id)
            if not future.done():
                future.set_exception(
                    TransportClosedError(
                        "Transport stopped before a response arrived",
                        context={"id": request_id},
                    )
                )
                # Mark retrieved so an unawaited future does not warn
                future.exception()

    async def _run(self) -> None:
        while True:
            try:
                message = await self.endpoint.receive()
            except ProtocolError as e:
                logger.error("Dropping undecodable response", error=str(e))
                continue
            self.dispatch(message)

    def request(self, payload: RequestPayload) -> asyncio.Future[Any]:
        """Send a request and return its pending future immediately.

        Args:
            payload: The procedure call to send.

        Returns:
            Future resolved with the result, or failed with TransportError.
        """
        loop = asyncio.get_running_loop()
        request_id = self.sequence.next()
        future: asyncio.Future[Any] = loop.create_future()
        self._pending[request_id] = future

        if self.timeout is not None:
            self._timers[request_id] = loop.call_later(
                self.timeout, self._evict, request_id
            )

        envelope = RequestEnvelope(id=request_id, payload=payload)
        try:
            self.endpoint.send_nowait(envelope.to_dict())
        except ProtocolError:
            self._pending.pop(request_id, None)
            self._cancel_timer(request_id)
            raise

        with log_context(request_id=request_id, procedure=payload.procedure):
            logger.debug("Request sent", key=payload.key)
        return future

    async def call(self, payload: RequestPayload) -> Any:
        """Send a request and wait for its result."""
        return await self.request(payload)

    def dispatch(self, message: Any) -> bool:
        """Deliver one response envelope to its pending future.

        Args:
            message: Decoded ``{id, error, result}`` envelope.

        Returns:
            True if a pending request was resolved, False if dropped.
        """
        try:
            response = ResponseEnvelope.from_dict(message)
        except (KeyError, TypeError):
            logger.error("Dropping malformed response", message=repr(message)[:200])
            return False

        future = self._pending.pop(response.id, None)
        if future is None:
            logger.debug("Dropping response for unknown request", id=response.id)
            return False
        self._cancel_timer(response.id)

        if future.done():
            # Caller cancelled while waiting
            return False

        if response.error is not None:
            error_message = (
                response.error.get("message", str(response.error))
                if isinstance(response.error, dict)
                else str(response.error)
            )
            future.set_exception(
                TransportError(error_message, context={"id": response.id})
            )
        else:
            future.set_result(response.result)
        return True

    def _evict(self, request_id: int) -> None:
        self._timers.pop(request_id, None)
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return
        logger.warning("Request timed out", id=request_id, timeout=self.timeout)
        future.set_exception(
            TransportTimeoutError(
                "No response within timeout",
                context={"id": request_id, "timeout": self.timeout},
            )
        )

    def _cancel_timer(self, request_id: int) -> None:
        timer = self._timers.pop(request_id, None)
        if timer is not None:
            timer.cancel()
