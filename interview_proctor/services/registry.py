"""
Interview Proctor - Session Registry

Maps session_id → InterviewSession. Sessions share nothing through it;
the registry only holds and closes them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..core.interfaces import CaptureSink, ChartCallback, MediaSource
from .session import InterviewSession

logger = logging.getLogger("proctor.registry")


class SessionRegistry:
    """Maps session_id → InterviewSession. Single event loop, no locking."""

    def __init__(self) -> None:
        self._sessions: Dict[str, InterviewSession] = {}

    def create(
        self,
        media: MediaSource,
        sink: Optional[CaptureSink] = None,
        session_id: Optional[str] = None,
        on_chart: Optional[ChartCallback] = None,
        on_log: Optional[Callable] = None,
        on_status: Optional[Callable] = None,
        **kwargs: Any,
    ) -> InterviewSession:
        if session_id and session_id in self._sessions:
            raise ValueError(f"Session {session_id} already exists")

        session = InterviewSession(
            media=media,
            sink=sink,
            session_id=session_id,
            on_chart=on_chart,
            on_log=on_log,
            on_status=on_status,
            **kwargs,
        )
        self._sessions[session.session_id] = session
        logger.info(f"SessionRegistry: created {session.session_id} (total: {len(self._sessions)})")
        return session

    async def close_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.pop(session_id, None)
        if session:
            summary = await session.close()
            logger.info(f"SessionRegistry: removed {session_id} (total: {len(self._sessions)})")
            return summary
        return None

    async def close_all(self) -> None:
        for sid in list(self._sessions.keys()):
            await self.close_session(sid)

    def get(self, session_id: str) -> Optional[InterviewSession]:
        return self._sessions.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def all_sessions(self) -> Dict[str, InterviewSession]:
        return dict(self._sessions)
