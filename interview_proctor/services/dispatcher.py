"""
Interview Proctor - Tool-Call Dispatcher

Routes each call of a batch to its handler and answers every call exactly once.

  1. Handlers run in batch order, so effects land in the order the agent
     sent them.
  2. Unknown names and IMMEDIATE handlers are answered on the spot, one send
     each; DEFERRED handlers only mutate the store and hand back an extras
     builder.
  3. Wait the settle delay, take ONE snapshot, and send every deferred
     response in a single transport call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Tuple

from ..core.config import tool_cfg
from ..core.models import FunctionCall, FunctionResponse, SessionRecord, ToolCallBatch
from ..core.store import SessionStore
from .handlers import Extras, HandlerResult, ResponseStyle, ToolRoute

logger = logging.getLogger("proctor.dispatcher")

SendResponses = Callable[[List[FunctionResponse]], None]


def session_state(snap: SessionRecord) -> Dict[str, Any]:
    """The `state` block every deferred response carries."""
    return {
        "candidate": snap.candidate.to_dict(),
        "session_info": {
            "qa_count": len(snap.qa_history),
            "current_category": snap.progress.current_category,
            "questions_remaining": snap.progress.questions_remaining,
        },
    }


class ToolCallDispatcher:
    """
    Usage:
        dispatcher = ToolCallDispatcher(session_id, store, handlers.routes(), transport.send_tool_response)
        await dispatcher.handle(batch)
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        routes: Dict[str, ToolRoute],
        send: SendResponses,
        settle_delay: float = tool_cfg.settle_delay,
    ) -> None:
        self.session_id = session_id
        self._store = store
        self._routes = routes
        self._send = send
        self._settle_delay = settle_delay
        self.batches_handled = 0

    @property
    def tool_names(self) -> List[str]:
        return list(self._routes)

    async def handle(self, batch: ToolCallBatch) -> List[FunctionResponse]:
        """Dispatch one batch. Returns every response sent for it, in send order."""
        logger.info(f"[{self.session_id}] Tool call batch: {batch.names}")
        sent: List[FunctionResponse] = []
        pending: List[Tuple[FunctionCall, Extras]] = []

        # Effects apply in batch order; only deferred answers wait for the flush
        for call in batch.function_calls:
            route = self._routes.get(call.name)
            if route is None:
                logger.warning(f"[{self.session_id}] Unknown tool: {call.name}")
                sent.append(self._respond(call, {
                    "success": False,
                    "message": f"Unknown action: {call.name}",
                }))
                continue

            result = self._invoke(call, route)
            if route.style == ResponseStyle.DEFERRED and callable(result):
                pending.append((call, result))
            else:
                sent.append(self._respond(call, result))

        if pending:
            sent.extend(await self._flush(pending))

        self.batches_handled += 1
        return sent

    def _invoke(self, call: FunctionCall, route: ToolRoute) -> HandlerResult:
        try:
            return route.handler(call.args)
        except Exception as e:
            logger.error(f"[{self.session_id}] Tool {call.name} failed: {e}", exc_info=True)
            return {"success": False, "message": str(e)}

    def _respond(self, call: FunctionCall, output: Dict[str, Any]) -> FunctionResponse:
        response = FunctionResponse(id=call.id, name=call.name, output=output)
        self._send([response])
        return response

    async def _flush(self, pending: List[Tuple[FunctionCall, Extras]]) -> List[FunctionResponse]:
        await asyncio.sleep(self._settle_delay)

        snap = self._store.snapshot()
        state = session_state(snap)

        responses: List[FunctionResponse] = []
        for call, extras in pending:
            output: Dict[str, Any] = {"success": True, "state": state}
            try:
                output.update(extras(snap))
            except Exception as e:
                logger.error(f"[{self.session_id}] Building {call.name} response failed: {e}", exc_info=True)
                output = {"success": False, "message": str(e)}
            responses.append(FunctionResponse(id=call.id, name=call.name, output=output))

        self._send(responses)
        logger.debug(f"[{self.session_id}] Flushed {len(responses)} deferred response(s)")
        return responses
