"""
Interview Proctor - Compliance Monitor

A repeating audit of the candidate's camera while the interview runs.

  inactive ──start()──▶ active ──stop()──▶ inactive

While active, an asyncio task calls `tick()` every `monitor_interval` seconds.
A tick reads the media collaborator and appends an audit entry when the feed
develops a problem, changes problem, or recovers. The monitor never warns or
terminates on its own; that judgment stays with the agent through
proctor_interview.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..core.config import proctor_cfg
from ..core.interfaces import CaptureSink, MediaSource
from ..core.state_machine import MonitorState
from ..core.store import SessionStore
from .camera import has_live_video_track

logger = logging.getLogger("proctor.monitor")

ISSUE_FEED_UNAVAILABLE = "Video feed unavailable during active session"
ISSUE_TRACK_DISABLED = "Video track disabled during active session"
ISSUE_PLAYBACK_STOPPED = "Video playback stopped or ended"
FEED_RESTORED = "Video feed restored"


class ComplianceMonitor:
    """
    Owns the only cancellable resource of a session: the tick task.

    Lifecycle:
        monitor = ComplianceMonitor(session_id, store, media, sink)
        monitor.start()   # arms the 1 s timer, binds stream → sink
        monitor.stop()    # idempotent
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        media: MediaSource,
        sink: Optional[CaptureSink] = None,
        interval: float = proctor_cfg.monitor_interval,
    ) -> None:
        self.session_id = session_id
        self._store = store
        self._media = media
        self._sink = sink
        self._interval = interval

        self._state = MonitorState.INACTIVE
        self._task: Optional[asyncio.Task] = None
        self._last_issue: Optional[str] = None
        self.ticks = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == MonitorState.ACTIVE

    # ── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> bool:
        """
        inactive → active, only with a stream and a capture sink.
        Returns True if this call started the monitor.
        """
        if self.is_active:
            logger.debug(f"[{self.session_id}] Monitor already active")
            return False

        stream = self._media.get_stream()
        if stream is None or self._sink is None:
            logger.info(f"[{self.session_id}] Cannot start proctoring: camera not available")
            self._store.log("Proctoring failed to start - No camera available")
            return False

        self._state = MonitorState.ACTIVE
        self._last_issue = None
        self._sink.attach(stream)
        self._store.log("Proctoring started - Camera connected")

        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"monitor-{self.session_id}"
        )
        logger.info(
            f"[{self.session_id}] Proctoring started with active camera checking "
            f"(every {self._interval}s)"
        )
        return True

    def stop(self) -> bool:
        """active → inactive. Safe to call when nothing is running."""
        if not self.is_active:
            return False

        self._state = MonitorState.INACTIVE
        if self._task and not self._task.done():
            self._task.cancel()
        if self._sink is not None:
            self._sink.detach()

        self._store.log("Proctoring stopped")
        logger.info(f"[{self.session_id}] Proctoring stopped after {self.ticks} ticks")
        return True

    async def aclose(self) -> None:
        """stop() and wait for the tick task to unwind."""
        task = self._task
        self.stop()
        if task and not task.done():
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        self._task = None

    # ── Tick ────────────────────────────────────────────────────────────

    def detect_issue(self) -> Optional[str]:
        stream = self._media.get_stream()
        if stream is None or not self._media.is_streaming():
            return ISSUE_FEED_UNAVAILABLE
        if not has_live_video_track(stream):
            return ISSUE_TRACK_DISABLED
        if self._sink is not None and (self._sink.paused or self._sink.ended):
            return ISSUE_PLAYBACK_STOPPED
        return None

    def tick(self) -> Optional[str]:
        """
        One audit pass. Returns the current issue (None when healthy).
        Only records while active; repeated identical issues are recorded once.
        """
        issue = self.detect_issue()
        if not self.is_active:
            return issue

        self.ticks += 1
        if issue != self._last_issue:
            if issue is not None:
                logger.warning(f"[{self.session_id}] Compliance: {issue}")
                self._store.log(issue)
            else:
                self._store.log(FEED_RESTORED)
            self._last_issue = issue
        return issue

    async def _run(self) -> None:
        logger.info(f"[{self.session_id}] Monitor task started")

        while self.is_active:
            try:
                await asyncio.sleep(self._interval)
                if not self.is_active:
                    break
                self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.session_id}] Monitor tick error: {e}", exc_info=True)

        logger.info(f"[{self.session_id}] Monitor task stopped")
