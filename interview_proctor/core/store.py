"""
Interview Proctor - Session Store

Owns the canonical SessionRecord for one interview.
Every mutation goes through `apply()`:

    read (private copy) → mutator → validate → commit

The whole step is synchronous, so on a single event loop no two mutations
can interleave. Callers never hold a reference to the committed record;
`apply()` and `snapshot()` hand out validated copies.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .models import ProctorLogEntry, SessionRecord, iso_timestamp
from .validator import validate

logger = logging.getLogger("proctor.store")
audit_logger = logging.getLogger("proctor.audit")

Mutator = Callable[[SessionRecord], Optional[SessionRecord]]


class SessionStore:
    """
    Single owner of one session's record.

    Usage:
        store = SessionStore("abc123")
        store.apply(lambda r: replace(r, candidate=...))
        store.log("Camera verified successfully")
        current = store.snapshot()
    """

    def __init__(
        self,
        session_id: str = "",
        record: Optional[SessionRecord] = None,
        clock: Callable[[], float] = time.time,
        on_log: Optional[Callable[[ProctorLogEntry], None]] = None,
    ) -> None:
        self.session_id = session_id
        self._clock = clock
        self._on_log = on_log
        self._record = validate(record)
        self._revision = 0

    @property
    def revision(self) -> int:
        """Number of commits so far."""
        return self._revision

    def snapshot(self) -> SessionRecord:
        return validate(self._record)

    def apply(self, mutator: Mutator) -> SessionRecord:
        """
        Run `mutator` on a private copy of the record and commit the result.

        The mutator may return a new record or mutate the copy in place and
        return None.
        """
        draft = validate(self._record)
        result = mutator(draft)
        candidate = draft if result is None else result
        self._record = validate(candidate)
        self._revision += 1
        return validate(self._record)

    def reset(self, record: Optional[object] = None) -> SessionRecord:
        """Replace the record wholesale; partial input is healed by validate()."""
        logger.info(f"[{self.session_id}] Session record reset")
        return self.apply(lambda _draft: validate(record))

    def log(self, action: str) -> ProctorLogEntry:
        """Append an audit entry. Allowed after completion."""
        entry = ProctorLogEntry(timestamp=iso_timestamp(self._clock()), action=action)

        def _append(draft: SessionRecord) -> None:
            draft.proctor_log.append(entry)

        self.apply(_append)
        audit_logger.info(f"[{self.session_id}] {action}")

        if self._on_log:
            try:
                self._on_log(entry)
            except Exception as e:
                logger.error(f"[{self.session_id}] Audit listener error: {e}")
        return entry
