"""
Interview Proctor - Transport Base

Shared plumbing for every Transport adapter: one subscriber, and inbound
batches delivered as tasks so the receiving loop never waits on a settle delay.
Outbound methods are left to the concrete transport.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from ..core.interfaces import BatchHandler, Unsubscribe
from ..core.models import AgentConfig, FunctionResponse, ToolCallBatch

logger = logging.getLogger("proctor.transport")


class BaseTransport:

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        self._handler: Optional[BatchHandler] = None
        self._tasks: Set[asyncio.Task] = set()
        self.batches_received = 0

    @property
    def has_subscriber(self) -> bool:
        return self._handler is not None

    def subscribe(self, handler: BatchHandler) -> Unsubscribe:
        if self._handler is not None:
            raise RuntimeError(f"[{self.session_id}] Transport already has a subscriber")
        self._handler = handler

        def _unsubscribe() -> None:
            if self._handler is handler:
                self._handler = None

        return _unsubscribe

    def deliver(self, batch: ToolCallBatch) -> Optional[asyncio.Task]:
        """Hand an inbound batch to the subscriber without awaiting it."""
        if self._handler is None:
            logger.warning(f"[{self.session_id}] Tool call batch dropped: no subscriber")
            return None

        self.batches_received += 1
        task = asyncio.get_running_loop().create_task(
            self._run(self._handler, batch), name=f"toolcall-{self.session_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, handler: BatchHandler, batch: ToolCallBatch) -> None:
        try:
            await handler(batch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.session_id}] Tool call batch failed: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every in-flight batch."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> None:
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass

    # ── Outbound (concrete transports) ──────────────────────────────────

    def send_tool_response(self, responses: List[FunctionResponse]) -> None:
        raise NotImplementedError

    def reconfigure(self, config: AgentConfig) -> None:
        raise NotImplementedError
