"""
Interview Proctor - WebSocket Transport

The browser runs the Gemini Live connection and relays its tool calls over
/ws/interview. This transport turns those messages into ToolCallBatches and
queues every outbound message (tool responses, reconfiguration, charts, audit
entries) for a single writer task, so callers never await the socket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.models import AgentConfig, FunctionResponse, ToolCallBatch
from .base import BaseTransport

logger = logging.getLogger("proctor.transport.ws")

SendJSON = Callable[[Dict[str, Any]], Awaitable[None]]


class WebSocketTransport(BaseTransport):
    """
    Lifecycle:
        transport = WebSocketTransport(session_id, send=ws.send_json)
        transport.start()
        transport.handle_message({"type": "tool_call", "functionCalls": [...]})
        await transport.close()
    """

    def __init__(self, session_id: str, send: SendJSON) -> None:
        super().__init__(session_id)
        self._send = send
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task] = None
        self.messages_sent = 0

    # ── Inbound ─────────────────────────────────────────────────────────

    def handle_tool_call(self, message: Dict[str, Any]) -> Optional[asyncio.Task]:
        batch = ToolCallBatch.from_dict(message)
        if not batch.function_calls:
            logger.debug(f"[{self.session_id}] Empty tool_call message ignored")
            return None
        return self.deliver(batch)

    # ── Outbound ────────────────────────────────────────────────────────

    def post(self, message: Dict[str, Any]) -> None:
        self._outbox.put_nowait(message)

    def send_tool_response(self, responses: List[FunctionResponse]) -> None:
        self.post({
            "type": "tool_response",
            "functionResponses": [r.to_dict() for r in responses],
        })

    def reconfigure(self, config: AgentConfig) -> None:
        logger.info(f"[{self.session_id}] Reconfiguring agent over WebSocket")
        self.post({"type": "reconfigure", "config": config.to_dict()})

    # ── Writer ──────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._writer_task is None or self._writer_task.done():
            self._writer_task = asyncio.get_running_loop().create_task(
                self._writer(), name=f"ws-writer-{self.session_id}"
            )

    async def _writer(self) -> None:
        while True:
            try:
                message = await self._outbox.get()
                await self._send(message)
                self.messages_sent += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug(f"[{self.session_id}] WebSocket send failed: {e}")

    async def close(self) -> None:
        await self.cancel_pending()
        if self._writer_task and not self._writer_task.done():
            self._writer_task.cancel()
            try:
                await self._writer_task
            except (asyncio.CancelledError, Exception):
                pass
        self._writer_task = None
