"""
Interview Proctor - Interview Lifecycle State Machine

Enforces the lifecycle: AWAITING_CAMERA → IN_PROGRESS → COMPLETED | TERMINATED.
COMPLETED and TERMINATED are terminal: nothing leaves them, so a terminated
interview can never be resumed. Every transition is logged.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

logger = logging.getLogger("proctor.state")


class InterviewState(str, Enum):
    """Strict interview lifecycle states."""
    AWAITING_CAMERA = "awaiting_camera"  # Session created, camera not verified yet
    IN_PROGRESS = "in_progress"          # Camera verified, interview running
    COMPLETED = "completed"              # complete_interview accepted
    TERMINATED = "terminated"            # Proctor terminated the interview


class MonitorState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


# Legal state transitions
_TRANSITIONS: Dict[InterviewState, Set[InterviewState]] = {
    InterviewState.AWAITING_CAMERA: {
        InterviewState.IN_PROGRESS, InterviewState.COMPLETED, InterviewState.TERMINATED,
    },
    InterviewState.IN_PROGRESS: {InterviewState.COMPLETED, InterviewState.TERMINATED},
    InterviewState.COMPLETED: set(),
    InterviewState.TERMINATED: set(),
}


class InterviewStateMachine:
    """
    Enforces legal state transitions and notifies a listener.

    Usage:
        sm = InterviewStateMachine(on_transition=my_callback)
        sm.transition(InterviewState.IN_PROGRESS)   # OK
        sm.transition(InterviewState.TERMINATED)    # OK
        sm.transition(InterviewState.IN_PROGRESS)   # illegal from TERMINATED → raises
    """

    def __init__(
        self,
        session_id: str = "",
        on_transition: Optional[Callable[[InterviewState, InterviewState, str], None]] = None,
    ) -> None:
        self._session_id = session_id
        self._state = InterviewState.AWAITING_CAMERA
        self._on_transition = on_transition
        self._history: List[Dict] = []
        self._entered_at = time.time()

    @property
    def state(self) -> InterviewState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self._state]

    @property
    def history(self) -> List[Dict]:
        return list(self._history)

    def can_transition(self, target: InterviewState) -> bool:
        return target == self._state or target in _TRANSITIONS[self._state]

    def transition(self, target: InterviewState, reason: str = "") -> None:
        """
        Attempt a state transition. Raises ValueError on illegal transitions.
        """
        if target == self._state:
            return  # Idempotent

        allowed = _TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise ValueError(
                f"Illegal state transition: {self._state.value} → {target.value}. "
                f"Allowed from {self._state.value}: {sorted(s.value for s in allowed)}. "
                f"Reason: {reason}"
            )

        prev = self._state
        now = time.time()
        self._history.append({
            "from": prev.value,
            "to": target.value,
            "reason": reason,
            "timestamp": now,
            "duration_in_prev_ms": round((now - self._entered_at) * 1000, 1),
        })
        self._state = target
        self._entered_at = now

        logger.info(
            f"[{self._session_id}] STATE: {prev.value} → {target.value}"
            + (f" ({reason})" if reason else "")
        )

        if self._on_transition:
            try:
                self._on_transition(prev, target, reason)
            except Exception as e:
                logger.error(f"[{self._session_id}] State transition callback error: {e}")
