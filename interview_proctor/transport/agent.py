"""
Interview Proctor - Vision Agents Transport

Server-side alternative to the browser relay: a Vision Agent joins the
candidate's Stream Video call with Gemini Realtime, and its function calls
are routed into the session.

  1. Each declared tool is registered on `agent.llm` as an async function.
  2. A call becomes a one-call ToolCallBatch delivered to the session; the
     function awaits the matching FunctionResponse and returns its output.
  3. reconfigure() swaps the agent's instructions and prompts it to act on
     them (used for the termination announcement).
  4. TrackAdded / TrackRemoved events from the edge feed a ReportedMediaSource.

The SDK is imported lazily so the rest of the server runs without it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..core.config import sdk_cfg
from ..core.models import AgentConfig, FunctionCall, FunctionResponse, ToolCallBatch
from ..core.tools import FUNCTION_DECLARATIONS
from ..media.reported import ReportedMediaSource, ReportedTrack
from .base import BaseTransport

logger = logging.getLogger("proctor.transport.agent")

_JSON_TYPES = {
    "STRING": str,
    "NUMBER": float,
    "INTEGER": int,
    "BOOLEAN": bool,
    "OBJECT": dict,
    "ARRAY": list,
}

# SDK event types (imported lazily at runtime)
_sdk_event_types_loaded = False
_TrackAddedEvent = None
_TrackRemovedEvent = None


def _load_sdk_event_types() -> None:
    """Lazy-load SDK event types to avoid import errors."""
    global _sdk_event_types_loaded, _TrackAddedEvent, _TrackRemovedEvent

    if _sdk_event_types_loaded:
        return

    try:
        from vision_agents.core.edge.events import TrackAddedEvent, TrackRemovedEvent
        _TrackAddedEvent = TrackAddedEvent
        _TrackRemovedEvent = TrackRemovedEvent
    except ImportError:
        logger.warning("Vision Agents edge events unavailable; camera state will not be tracked")

    _sdk_event_types_loaded = True


def tool_signature(declaration: Dict[str, Any]) -> inspect.Signature:
    """Keyword-only signature mirroring a function declaration's parameters."""
    schema = declaration.get("parameters") or {}
    required = set(schema.get("required") or [])
    params = []
    for name, prop in (schema.get("properties") or {}).items():
        annotation = _JSON_TYPES.get(str(prop.get("type", "STRING")).upper(), str)
        default = inspect.Parameter.empty if name in required else None
        if default is None:
            annotation = Optional[annotation]
        params.append(inspect.Parameter(
            name, inspect.Parameter.KEYWORD_ONLY, default=default, annotation=annotation,
        ))
    return inspect.Signature(params, return_annotation=dict)


class AgentTransport(BaseTransport):
    """
    Lifecycle:
        transport = AgentTransport(session_id, media)
        session.attach(transport)
        await transport.start(call_id)      # agent joins the call
        await transport.close()
    """

    def __init__(
        self,
        session_id: str,
        media: ReportedMediaSource,
        instructions: str = "",
        response_timeout: float = 30.0,
    ) -> None:
        super().__init__(session_id)
        self._media = media
        self._instructions = instructions
        self._response_timeout = response_timeout

        self._agent: Any = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._join_task: Optional[asyncio.Task] = None
        self._join_ready = asyncio.Event()
        self._join_error: Optional[str] = None
        self._background: set = set()

    @property
    def is_joined(self) -> bool:
        return self._agent is not None

    # ── Tool bridge ─────────────────────────────────────────────────────

    def register_tools(self, llm: Any) -> List[str]:
        registered: List[str] = []
        for declaration in FUNCTION_DECLARATIONS:
            name = declaration["name"]
            fn = self._make_tool(name, declaration)
            try:
                llm.register_function(name=name, description=declaration.get("description", ""))(fn)
                registered.append(name)
            except Exception as e:
                logger.warning(f"[{self.session_id}] Could not register tool {name}: {e}")
        logger.info(f"[{self.session_id}] Registered agent tools: {registered}")
        return registered

    def _make_tool(self, name: str, declaration: Dict[str, Any]):
        async def tool(**kwargs: Any) -> Dict[str, Any]:
            args = {k: v for k, v in kwargs.items() if v is not None}
            return await self.call_tool(name, args)

        tool.__name__ = name
        tool.__doc__ = declaration.get("description", "")
        tool.__signature__ = tool_signature(declaration)
        return tool

    async def call_tool(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver one call to the session and wait for its response output."""
        call = FunctionCall(id=uuid.uuid4().hex[:12], name=name, args=args)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[call.id] = future

        if self.deliver(ToolCallBatch(function_calls=[call])) is None:
            self._pending.pop(call.id, None)
            return {"success": False, "message": "Interview session not available"}

        try:
            return await asyncio.wait_for(future, timeout=self._response_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.session_id}] Tool {name} timed out")
            return {"success": False, "message": f"Tool {name} timed out"}
        finally:
            self._pending.pop(call.id, None)

    def send_tool_response(self, responses: List[FunctionResponse]) -> None:
        for response in responses:
            future = self._pending.get(response.id)
            if future is None or future.done():
                logger.debug(f"[{self.session_id}] Unmatched tool response: {response.name}")
                continue
            future.set_result(response.output)

    # ── Reconfiguration ─────────────────────────────────────────────────

    def reconfigure(self, config: AgentConfig) -> None:
        if self._agent is None:
            logger.warning(f"[{self.session_id}] Agent not joined; reconfigure skipped")
            return
        task = asyncio.get_running_loop().create_task(self._apply_config(config))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _apply_config(self, config: AgentConfig) -> None:
        agent = self._agent
        if agent is None:
            return
        try:
            llm = agent.llm
            if hasattr(llm, "set_instructions"):
                llm.set_instructions(config.system_instruction)
            else:
                agent.instructions = config.system_instruction
            await asyncio.wait_for(
                llm.simple_response("Follow your updated instructions now."),
                timeout=15.0,
            )
            logger.info(f"[{self.session_id}] Agent reconfigured")
        except Exception as e:
            logger.error(f"[{self.session_id}] Agent reconfigure failed: {e}", exc_info=True)

    # ── SDK events → media ──────────────────────────────────────────────

    async def _on_sdk_event(self, event: Any) -> None:
        try:
            if _TrackAddedEvent and isinstance(event, _TrackAddedEvent):
                track_type = str(getattr(event, "track_type", "")).lower()
                if "video" in track_type:
                    logger.info(f"[{self.session_id}] Candidate video track added")
                    self._media.update(True, True, [ReportedTrack()])

            elif _TrackRemovedEvent and isinstance(event, _TrackRemovedEvent):
                track_type = str(getattr(event, "track_type", "")).lower()
                if "video" in track_type or not track_type:
                    logger.info(f"[{self.session_id}] Candidate video track removed")
                    self._media.mark_track_ended()
        except Exception as e:
            logger.debug(f"[{self.session_id}] SDK event handler error: {e}")

    # ── Join / leave ────────────────────────────────────────────────────

    async def start(self, call_id: str, call_type: str = "default", timeout: float = 15.0) -> Dict[str, Any]:
        """Create the agent and join the call. Returns once the agent is in."""
        from vision_agents.core import Agent, User
        from vision_agents.plugins import gemini, getstream

        _load_sdk_event_types()
        self._join_ready = asyncio.Event()
        self._join_error = None

        agent = Agent(
            edge=getstream.Edge(),
            agent_user=User(name="Interview Proctor", id=f"proctor-{self.session_id[:8]}"),
            instructions=self._instructions,
            llm=gemini.Realtime(fps=sdk_cfg.llm_fps),
        )
        self.register_tools(agent.llm)

        async def _join() -> None:
            try:
                await agent.create_user()
                call = await agent.create_call(call_type, call_id)
                logger.info(f"[{self.session_id}] Agent joining call {call_id}...")

                async with agent.join(call, participant_wait_timeout=0):
                    self._agent = agent
                    try:
                        agent.subscribe(self._on_sdk_event)
                    except Exception as e:
                        logger.warning(f"[{self.session_id}] Agent event subscription failed: {e}")
                    self._join_ready.set()
                    await agent.finish()  # Block until call ends
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._join_error = str(e)
                logger.error(f"[{self.session_id}] Agent join failed: {e}", exc_info=True)
            finally:
                self._agent = None
                self._join_ready.set()

        self._join_task = asyncio.get_running_loop().create_task(
            _join(), name=f"agent-{self.session_id}"
        )
        try:
            await asyncio.wait_for(self._join_ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise RuntimeError("Agent join timed out")
        if self._join_error:
            raise RuntimeError(self._join_error)

        return {
            "session_id": self.session_id,
            "call_id": call_id,
            "agent_id": f"proctor-{self.session_id[:8]}",
            "model": sdk_cfg.llm_model,
        }

    async def close(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        await self.cancel_pending()

        for task in [self._join_task, *self._background]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass
        self._join_task = None
        self._agent = None
