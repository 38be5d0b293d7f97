"""
Interview Proctor - Interview Session

One live interview. Owns everything that must not be shared across sessions:

  • SessionStore            the canonical record
  • InterviewStateMachine   awaiting_camera → in_progress → completed | terminated
  • ProctorState            warnings, attempt counter, terminated flag
  • ComplianceMonitor       the 1 s camera audit task
  • TerminationController   the one-way exit
  • ToolCallDispatcher      routes the agent's tool calls to InterviewToolHandlers

Collaborators come in through the Protocols in core/interfaces.py: a media
source (plus optional capture sink) at construction, a transport via attach().
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.config import proctor_cfg, tool_cfg
from ..core.interfaces import (
    CaptureSink,
    ChartCallback,
    MediaEvent,
    MediaSource,
    Transport,
    Unsubscribe,
)
from ..core.models import AgentConfig, FunctionResponse, ProctorLogEntry, ProctorState, ToolCallBatch
from ..core.state_machine import InterviewState, InterviewStateMachine
from ..core.store import SessionStore
from ..core.tools import interview_config
from .camera import check_camera
from .dispatcher import ToolCallDispatcher
from .handlers import InterviewToolHandlers
from .monitor import ComplianceMonitor
from .termination import TerminationController

logger = logging.getLogger("proctor.session")

CAMERA_TURNED_OFF = "Camera turned off"


class InterviewSession:
    """
    Lifecycle:
        session = InterviewSession(media=source, sink=sink, on_log=...)
        session.attach(transport)       # tool calls now flow
        ...
        await session.close()
    """

    def __init__(
        self,
        media: MediaSource,
        sink: Optional[CaptureSink] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        monitor_interval: float = proctor_cfg.monitor_interval,
        settle_delay: float = tool_cfg.settle_delay,
        auto_terminate: bool = proctor_cfg.auto_terminate_on_track_ended,
        on_chart: Optional[ChartCallback] = None,
        on_log: Optional[Callable[[ProctorLogEntry], Any]] = None,
        on_status: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_warning: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.media = media
        self._clock = clock
        self._auto_terminate = auto_terminate
        self.started_at = clock()

        self._on_chart = on_chart
        self._on_log = on_log
        self._on_status = on_status
        self._on_warning = on_warning
        self._callback_tasks: Set[asyncio.Task] = set()

        self._transport: Optional[Transport] = None
        self._unsubscribe_transport: Optional[Unsubscribe] = None
        self._closed = False

        self.proctor = ProctorState()
        self.lifecycle = InterviewStateMachine(
            session_id=self.session_id,
            on_transition=self._on_state_transition,
        )
        self.store = SessionStore(self.session_id, clock=clock, on_log=self._handle_log)
        self.monitor = ComplianceMonitor(
            self.session_id, self.store, media, sink=sink, interval=monitor_interval,
        )
        self.termination = TerminationController(
            session_id=self.session_id,
            store=self.store,
            monitor=self.monitor,
            proctor=self.proctor,
            lifecycle=self.lifecycle,
            reconfigure=self._reconfigure,
            started_at=self.started_at,
            clock=clock,
        )
        self.handlers = InterviewToolHandlers(
            session_id=self.session_id,
            store=self.store,
            media=media,
            monitor=self.monitor,
            termination=self.termination,
            proctor=self.proctor,
            lifecycle=self.lifecycle,
            activate_proctoring=self.activate_proctoring,
            started_at=self.started_at,
            clock=clock,
            on_chart=self._handle_chart,
            on_warning=self._handle_warning,
        )
        self.dispatcher = ToolCallDispatcher(
            self.session_id,
            self.store,
            self.handlers.routes(),
            send=self._send_tool_response,
            settle_delay=settle_delay,
        )

        self._unsubscribe_media: Optional[Unsubscribe] = media.subscribe(self._on_media_event)
        logger.info(f"[{self.session_id}] Interview session created")

    @property
    def state(self) -> InterviewState:
        return self.lifecycle.state

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    # ── Transport ───────────────────────────────────────────────────────

    def attach(self, transport: Transport) -> None:
        """Subscribe to the transport's tool calls. One transport per session."""
        if self._transport is not None:
            raise RuntimeError(f"Session {self.session_id} already has a transport attached")

        self._transport = transport
        self._unsubscribe_transport = transport.subscribe(self.handle_tool_call)
        logger.info(f"[{self.session_id}] Transport attached: {type(transport).__name__}")

    def detach(self) -> None:
        if self._unsubscribe_transport is not None:
            self._unsubscribe_transport()
        self._unsubscribe_transport = None
        self._transport = None

    async def handle_tool_call(self, batch: ToolCallBatch) -> List[FunctionResponse]:
        return await self.dispatcher.handle(batch)

    def initial_config(self) -> AgentConfig:
        return interview_config()

    def _send_tool_response(self, responses: List[FunctionResponse]) -> None:
        if self._transport is None:
            logger.warning(
                f"[{self.session_id}] No transport; dropping {len(responses)} tool response(s)"
            )
            return
        self._transport.send_tool_response(responses)

    def _reconfigure(self, config: AgentConfig) -> None:
        if self._transport is None:
            logger.warning(f"[{self.session_id}] No transport; agent not reconfigured")
            return
        self._transport.reconfigure(config)

    # ── Proctoring activation ───────────────────────────────────────────

    def activate_proctoring(self, source: str) -> bool:
        """
        Start the monitor through either activation path (verify_camera or the
        first live stream). Only the first successful call starts it.
        """
        if self.proctor.session_active or self.monitor.is_active:
            return False
        if self.proctor.is_terminated or self.lifecycle.is_terminal:
            return False

        started = self.monitor.start()
        if started:
            self.proctor.session_active = True
            logger.info(f"[{self.session_id}] Proctoring activated by {source}")
        return started

    def _on_media_event(self, event: MediaEvent) -> None:
        logger.info(f"[{self.session_id}] Media event: {event.value}")

        if event in (MediaEvent.STREAM_STARTED, MediaEvent.TRACK_UNMUTED):
            if check_camera(self.media).ok and not self.proctor.session_active:
                self.activate_proctoring("stream_started")

        elif event == MediaEvent.TRACK_ENDED:
            if not self.proctor.session_active or self.proctor.is_terminated:
                return
            self.store.log("Camera disabled or disconnected")
            if self._auto_terminate:
                self.termination.terminate(CAMERA_TURNED_OFF)

    # ── Callbacks to the server layer ───────────────────────────────────

    def _emit(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        result = callback(*args)
        if asyncio.iscoroutine(result):
            try:
                task = asyncio.get_running_loop().create_task(result)
            except RuntimeError:
                result.close()  # No event loop
                return
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)

    def _handle_log(self, entry: ProctorLogEntry) -> None:
        self._emit(self._on_log, entry)

    def _handle_chart(self, chart: Any) -> None:
        self._emit(self._on_chart, chart)

    def _handle_warning(self, reason: str) -> None:
        self._emit(self._on_warning, {
            "reason": reason,
            "warnings_count": len(self.proctor.warnings),
        })

    def _on_state_transition(
        self, prev: InterviewState, new: InterviewState, reason: str
    ) -> None:
        self._emit(self._on_status, {
            "type": "state_transition",
            "session_state": new.value,
            "previous_state": prev.value,
            "reason": reason,
        })

    # ── Status / teardown ───────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        camera = check_camera(self.media)
        return {
            "session_id": self.session_id,
            "state": self.lifecycle.state.value,
            "monitor": self.monitor.state.value,
            "camera": camera.details(),
            "proctor": self.proctor.to_dict(),
            "has_transport": self._transport is not None,
            "uptime_seconds": round(self._clock() - self.started_at, 1),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.status(),
            "record": self.store.snapshot().to_dict(),
            "history": self.lifecycle.history,
        }

    async def close(self) -> Dict[str, Any]:
        """Stop the monitor, drop subscriptions, and return a final summary."""
        if self._closed:
            return self.status()
        self._closed = True

        await self.monitor.aclose()
        self.detach()
        if self._unsubscribe_media is not None:
            self._unsubscribe_media()
            self._unsubscribe_media = None

        for task in list(self._callback_tasks):
            if not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass

        summary = self.status()
        logger.info(f"[{self.session_id}] Interview session closed: {summary}")
        return summary
