"""
Interview Proctor - Termination Controller

The one-way exit of an interview. `terminate(reason)`:

  1. stops the compliance monitor
  2. marks the proctor state terminated and the lifecycle TERMINATED
  3. commits progress.is_complete / end_time / duration_seconds / termination_reason
  4. reconfigures the agent with the termination script for the rest of the call
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..core.models import AgentConfig, ProctorState, SessionRecord, iso_timestamp
from ..core.state_machine import InterviewState, InterviewStateMachine
from ..core.store import SessionStore
from ..core.tools import termination_config
from .monitor import ComplianceMonitor

logger = logging.getLogger("proctor.termination")


class TerminationController:

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        monitor: ComplianceMonitor,
        proctor: ProctorState,
        lifecycle: InterviewStateMachine,
        reconfigure: Callable[[AgentConfig], None],
        started_at: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_id = session_id
        self._store = store
        self._monitor = monitor
        self._proctor = proctor
        self._lifecycle = lifecycle
        self._reconfigure = reconfigure
        self._started_at = started_at
        self._clock = clock

    @property
    def is_terminated(self) -> bool:
        return self._proctor.is_terminated

    def terminate(self, reason: str) -> bool:
        """
        Returns False (and changes nothing) without a reason.
        A repeated call after termination is a no-op that reports True.
        """
        if not reason:
            logger.info(f"[{self.session_id}] Termination requested without a reason; ignored")
            return False

        if self._proctor.is_terminated:
            logger.info(f"[{self.session_id}] Interview already terminated")
            return True

        self._proctor.is_terminated = True
        self._monitor.stop()
        self._store.log(f"Interview terminated: {reason}")

        now = self._clock()

        def _mark_terminated(draft: SessionRecord) -> None:
            progress = draft.progress
            if progress.is_complete:
                return  # completed before termination: keep the final record
            progress.is_complete = True
            progress.end_time = iso_timestamp(now)
            progress.duration_seconds = now - self._started_at
            progress.termination_reason = reason

        self._store.apply(_mark_terminated)

        try:
            self._lifecycle.transition(InterviewState.TERMINATED, reason=reason)
        except ValueError as e:
            logger.warning(f"[{self.session_id}] {e}")

        logger.warning(f"[{self.session_id}] Interview terminated: {reason}")
        self._reconfigure(termination_config(reason))
        return True
