"""
Storage Worker.

Runs as its own task, owns the durable store and answers requests arriving
on its channel endpoint. Every request is handled independently:

    RECEIVED -> EXECUTING -> SUCCEEDED | FAILED

A failing request only fails itself; the receive loop keeps running.
"""

from __future__ import annotations

import asyncio
from typing import Any

from gridcache.channel import Endpoint
from gridcache.exceptions import ProtocolError, StoreError
from gridcache.logging import get_logger, log_context
from gridcache.store.adapter import DurableStore
from gridcache.types import (
    NOT_FOUND,
    Procedure,
    RequestPayload,
    RequestState,
    ResponseEnvelope,
)

logger = get_logger(__name__)


class StorageWorker:
    """Executes GET/SET requests against a DurableStore."""

    def __init__(self, endpoint: Endpoint, store: DurableStore) -> None:
        """Initialize the worker.

        Args:
            endpoint: Worker end of the channel.
            store: Durable store owned by this worker.
        """
        self.endpoint = endpoint
        self.store = store
        self._loop_task: asyncio.Task[None] | None = None
        self._handlers: set[asyncio.Task[None]] = set()
        self.states: dict[int, RequestState] = {}

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the receive loop on the running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run(), name="gridcache-storage-worker"
        )
        logger.debug("Storage worker started")

    async def stop(self) -> None:
        """Cancel the receive loop and any in-flight handlers."""
        tasks = list(self._handlers)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._handlers.clear()
        self._loop_task = None
        logger.debug("Storage worker stopped")

    async def _run(self) -> None:
        while True:
            try:
                message = await self.endpoint.receive()
            except ProtocolError as e:
                logger.error("Dropping undecodable request", error=str(e))
                continue

            task = asyncio.create_task(self._serve(message))
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def _serve(self, message: Any) -> None:
        request_id = message.get("id") if isinstance(message, dict) else None
        if not isinstance(request_id, int) or isinstance(request_id, bool):
            # No id means nobody is waiting for an answer
            logger.error("Dropping request without an integer id", message=repr(message)[:200])
            return

        try:
            response = await self.handle(message)
        except Exception as e:
            logger.exception("Request handler crashed", error=repr(e))
            self.states.pop(request_id, None)
            response = ResponseEnvelope.failure(request_id, f"storage worker failed: {e}")
        await self.endpoint.send(response.to_dict())

    def _transition(self, request_id: int, state: RequestState) -> None:
        self.states[request_id] = state
        logger.debug("Request state", state=state.value)
        if state in (RequestState.SUCCEEDED, RequestState.FAILED):
            self.states.pop(request_id, None)

    async def handle(self, message: dict[str, Any]) -> ResponseEnvelope:
        """Execute one request envelope and build its response.

        Args:
            message: Decoded ``{id, payload}`` envelope.

        Returns:
            The ``{id, error, result}`` response for this request.
        """
        request_id: int = message["id"]
        raw_payload = message.get("payload")
        procedure = raw_payload.get("procedure") if isinstance(raw_payload, dict) else None

        with log_context(request_id=request_id, procedure=str(procedure)):
            self._transition(request_id, RequestState.RECEIVED)
            try:
                payload = RequestPayload.from_dict(raw_payload)  # type: ignore[arg-type]
            except (KeyError, TypeError, AttributeError):
                self._transition(request_id, RequestState.FAILED)
                message_text = f"malformed request payload: {raw_payload!r}"
                logger.error("Worker caught an error", error=message_text)
                return ResponseEnvelope.failure(request_id, message_text)

            self._transition(request_id, RequestState.EXECUTING)
            try:
                response = await self._execute(request_id, payload)
            except Exception as e:
                logger.exception("Request handler crashed", error=repr(e))
                response = ResponseEnvelope.failure(
                    request_id, f"storage worker failed - {payload.key}: {e}"
                )
            self._transition(
                request_id,
                RequestState.SUCCEEDED if response.ok else RequestState.FAILED,
            )
            return response

    async def _execute(self, request_id: int, payload: RequestPayload) -> ResponseEnvelope:
        if payload.procedure == Procedure.SET.value:
            if payload.value is None:
                return self._fail(request_id, f"error saving - {payload.key}: missing value")
            try:
                await self.store.put(payload.key, payload.value)
            except StoreError as e:
                logger.error("Store write failed", key=payload.key, error=str(e))
                return self._fail(request_id, f"error saving - {payload.key}")
            return ResponseEnvelope.success(request_id, f"saved - {payload.key}")

        if payload.procedure == Procedure.GET.value:
            try:
                value = await self.store.get(payload.key)
            except StoreError as e:
                logger.error("Store read failed", key=payload.key, error=str(e))
                return self._fail(request_id, f"error getting - {payload.key}")
            if value is None:
                logger.info("Not found", key=payload.key)
                return ResponseEnvelope.success(request_id, NOT_FOUND)
            return ResponseEnvelope.success(request_id, value)

        return self._fail(
            request_id,
            f'storage worker got an unknown procedure call - "{payload.procedure}"',
        )

    @staticmethod
    def _fail(request_id: int, message: str) -> ResponseEnvelope:
        logger.error("Worker caught an error", error=message)
        return ResponseEnvelope.failure(request_id, message)
