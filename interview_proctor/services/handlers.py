"""
Interview Proctor - Tool Handlers

One method per tool the agent can call. Two response styles:

  • IMMEDIATE (verify_camera, proctor_interview): compute the response from
    current media status + store and return it; the dispatcher sends it at once.
  • DEFERRED (set_candidate_info, store_qa, complete_interview, render_altair):
    only mutate state through the store and return an `extras` function; the
    dispatcher calls it later with the post-batch snapshot.

Handlers never raise on bad arguments. Missing fields fall back to defaults.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from statistics import mean
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.config import interview_cfg, proctor_cfg
from ..core.models import (
    CandidateProfile,
    FinalEvaluation,
    ProctorState,
    QARecord,
    SessionRecord,
    iso_timestamp,
)
from ..core.state_machine import InterviewState, InterviewStateMachine
from ..core.store import SessionStore
from ..core.validator import coerce_evaluation
from ..core.interfaces import ChartCallback, MediaSource
from .camera import check_camera
from .monitor import ComplianceMonitor
from .termination import TerminationController

logger = logging.getLogger("proctor.handlers")

Extras = Callable[[SessionRecord], Dict[str, Any]]
HandlerResult = Union[Dict[str, Any], Extras]


class ResponseStyle(str, Enum):
    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class ToolRoute:
    name: str
    handler: Callable[[Dict[str, Any]], HandlerResult]
    style: ResponseStyle


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _opt_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _recompute_scores(record: SessionRecord) -> None:
    """Average score over all answers; per-category means; overall tracks the average."""
    scores = [
        qa.evaluation.score for qa in record.qa_history
        if qa.evaluation is not None and qa.evaluation.score is not None
    ]
    if not scores:
        return

    record.progress.average_score = round(mean(scores), 2)
    record.technical_evaluation.overall_score = record.progress.average_score

    for category, items in record.qa_pairs.items():
        if category not in record.technical_evaluation.category_scores:
            continue
        cat_scores = [
            qa.evaluation.score for qa in items
            if qa.evaluation is not None and qa.evaluation.score is not None
        ]
        if cat_scores:
            record.technical_evaluation.category_scores[category] = round(mean(cat_scores), 2)


class InterviewToolHandlers:
    """
    Tool semantics for one session. Holds references to the session's
    collaborators; owns no state of its own.
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        media: MediaSource,
        monitor: ComplianceMonitor,
        termination: TerminationController,
        proctor: ProctorState,
        lifecycle: InterviewStateMachine,
        activate_proctoring: Callable[[str], bool],
        started_at: float,
        clock: Callable[[], float] = time.time,
        on_chart: Optional[ChartCallback] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.session_id = session_id
        self._store = store
        self._media = media
        self._monitor = monitor
        self._termination = termination
        self._proctor = proctor
        self._lifecycle = lifecycle
        self._activate_proctoring = activate_proctoring
        self._started_at = started_at
        self._clock = clock
        self._on_chart = on_chart
        self._on_warning = on_warning

    def routes(self) -> Dict[str, ToolRoute]:
        """The closed set of tool names this session answers."""
        table = [
            ToolRoute("render_altair", self.render_altair, ResponseStyle.DEFERRED),
            ToolRoute("set_candidate_info", self.set_candidate_info, ResponseStyle.DEFERRED),
            ToolRoute("store_qa", self.store_qa, ResponseStyle.DEFERRED),
            ToolRoute("complete_interview", self.complete_interview, ResponseStyle.DEFERRED),
            ToolRoute("verify_camera", self.verify_camera, ResponseStyle.IMMEDIATE),
            ToolRoute("proctor_interview", self.proctor_interview, ResponseStyle.IMMEDIATE),
        ]
        return {route.name: route for route in table}

    # ── Deferred handlers ───────────────────────────────────────────────

    def set_candidate_info(self, args: Dict[str, Any]) -> Extras:
        name = _text(args.get("name"))
        position = _text(args.get("position"))
        profile = CandidateProfile(
            name=name,
            position=position,
            years_of_experience=interview_cfg.default_years_of_experience,
        )

        def _set(draft: SessionRecord) -> None:
            draft.candidate = profile

        self._store.apply(_set)
        logger.info(f"[{self.session_id}] Candidate info: {name!r} for {position!r}")

        return lambda snap: {"candidate_info": snap.candidate.to_dict()}

    def store_qa(self, args: Dict[str, Any]) -> Extras:
        question = _text(args.get("question"))
        answer = _text(args.get("answer"))
        evaluation = coerce_evaluation(args.get("evaluation"))
        timestamp = iso_timestamp(self._clock())
        stored_in: List[str] = []

        def _append(draft: SessionRecord) -> None:
            progress = draft.progress
            if progress.is_complete:
                return
            category = progress.current_category
            entry = QARecord(
                category=category,
                question=question,
                answer=answer,
                timestamp=timestamp,
                evaluation=evaluation,
            )
            draft.qa_pairs.setdefault(category, []).append(entry)
            draft.qa_history.append(entry)
            progress.questions_remaining = max(0, progress.questions_remaining - 1)
            _recompute_scores(draft)
            stored_in.append(category)

        self._store.apply(_append)

        if stored_in:
            logger.info(f"[{self.session_id}] Stored Q&A for category: {stored_in[0]}")
        else:
            self._store.log("Q&A ignored: interview already complete")

        def _extras(snap: SessionRecord) -> Dict[str, Any]:
            latest = snap.qa_history[-1].evaluation if snap.qa_history else None
            return {
                "stored": bool(stored_in),
                "qa_count": len(snap.qa_history),
                "latest_evaluation": latest.to_dict() if latest is not None else None,
            }

        return _extras

    def complete_interview(self, args: Dict[str, Any]) -> Extras:
        technical_score = _opt_number(args.get("technical_score"))
        sentiment = args.get("sentiment_analysis")
        recommendation = args.get("recommendation")
        sentiment = dict(sentiment) if isinstance(sentiment, dict) else {}
        recommendation = dict(recommendation) if isinstance(recommendation, dict) else {}
        now = self._clock()
        accepted: List[bool] = []

        def _complete(draft: SessionRecord) -> None:
            progress = draft.progress
            if progress.is_complete:
                return
            if progress.current_category not in progress.completed_categories:
                progress.completed_categories.append(progress.current_category)
            progress.is_complete = True
            progress.end_time = iso_timestamp(now)
            progress.duration_seconds = now - self._started_at

            evaluation = draft.technical_evaluation
            if technical_score is not None:
                evaluation.overall_score = technical_score
            evaluation.sentiment_analysis = sentiment
            evaluation.recommendation = recommendation

            draft.final_evaluation = FinalEvaluation(
                technical_score=evaluation.overall_score,
                sentiment_analysis=sentiment,
                recommendation=recommendation,
            )
            draft.session.completed_categories = list(progress.completed_categories)
            draft.session.duration = progress.duration_seconds
            accepted.append(True)

        self._store.apply(_complete)

        if accepted:
            duration = now - self._started_at
            logger.info(
                f"[{self.session_id}] Completing interview. "
                f"Duration: {int(duration // 60)}m {int(duration % 60)}s"
            )
            self._store.log("Interview completed")
            if self._lifecycle.can_transition(InterviewState.COMPLETED):
                self._lifecycle.transition(InterviewState.COMPLETED, reason="complete_interview")
            else:
                logger.warning(
                    f"[{self.session_id}] Lifecycle stays {self._lifecycle.state.value} after completion"
                )
            self._monitor.stop()
        else:
            self._store.log("Completion ignored: interview already complete")

        def _extras(snap: SessionRecord) -> Dict[str, Any]:
            duration = snap.progress.duration_seconds
            if duration is None:
                duration = self._clock() - self._started_at
            return {
                "completed": snap.progress.is_complete is True,
                "duration": round(duration),
                "final_report": {
                    "candidate": snap.candidate.to_dict(),
                    "technical_evaluation": snap.technical_evaluation.to_dict(),
                    "final_evaluation": (
                        snap.final_evaluation.to_dict() if snap.final_evaluation else None
                    ),
                },
            }

        return _extras

    def render_altair(self, args: Dict[str, Any]) -> Extras:
        raw = args.get("json_graph")
        chart: Any = None
        try:
            chart = json.loads(raw) if isinstance(raw, str) else None
        except ValueError as e:
            logger.warning(f"[{self.session_id}] render_altair: invalid JSON ({e})")

        rendered = isinstance(chart, dict)
        if rendered and self._on_chart:
            try:
                self._on_chart(chart)
            except Exception as e:
                logger.error(f"[{self.session_id}] Chart callback error: {e}")
                rendered = False

        return lambda snap: {"rendered": rendered}

    # ── Immediate handlers ──────────────────────────────────────────────

    def verify_camera(self, args: Dict[str, Any]) -> Dict[str, Any]:
        # status/message supplied by the agent are ignored; recompute from media
        status = check_camera(self._media)

        if not status.ok:
            self._proctor.camera_attempts += 1
            attempts = self._proctor.camera_attempts
            if attempts >= proctor_cfg.max_camera_attempts:
                self._store.log(f"Multiple camera verification failures ({attempts} attempts)")
        else:
            self._proctor.camera_attempts = 0
            self._activate_proctoring("verify_camera")
            if self._lifecycle.can_transition(InterviewState.IN_PROGRESS):
                self._lifecycle.transition(InterviewState.IN_PROGRESS, reason="camera_verified")

        self._store.log(status.audit_action)
        logger.info(
            f"[{self.session_id}] Camera status: {'OK' if status.ok else 'Issue detected'} "
            f"{status.details()} attempts={self._proctor.camera_attempts}"
        )

        return {
            "status": status.ok,
            "message": status.message,
            "details": status.details(),
        }

    def proctor_interview(self, args: Dict[str, Any]) -> Dict[str, Any]:
        action = _text(args.get("action"))
        reason = _text(args.get("reason"))
        logger.info(
            f"[{self.session_id}] Proctor action: {action}"
            + (f", reason: {reason}" if reason else "")
        )

        if action == "check_status":
            return self._check_status()
        if action == "issue_warning":
            return self._issue_warning(reason)
        if action == "terminate":
            return self._terminate(reason)

        return {"success": False, "message": f"Unknown action: {action}"}

    def _check_status(self) -> Dict[str, Any]:
        status = check_camera(self._media)
        self._store.log("Proctor status check performed")
        return {
            "status": status.ok,
            "is_proctor_active": self._monitor.is_active,
            "has_stream": status.has_active_stream,
            "is_streaming": status.is_streaming,
            "video_enabled": status.has_video_tracks,
            "warnings_count": len(self._proctor.warnings),
            "is_terminated": self._proctor.is_terminated,
        }

    def _issue_warning(self, reason: str) -> Dict[str, Any]:
        # Reports success even without a reason; see DESIGN.md open questions
        if reason:
            self._proctor.warnings.append(reason)
            self._store.log(f"Warning issued to candidate: {reason}")
            logger.warning(f"[{self.session_id}] Warning issued: {reason}")
            if self._on_warning:
                try:
                    self._on_warning(reason)
                except Exception as e:
                    logger.error(f"[{self.session_id}] Warning callback error: {e}")

        return {
            "success": True,
            "message": "Warning issued" if reason else "No warning reason provided",
            "warnings_count": len(self._proctor.warnings),
        }

    def _terminate(self, reason: str) -> Dict[str, Any]:
        if reason:
            self._termination.terminate(reason)
        return {
            "success": bool(reason),
            "message": "Interview terminated" if reason else "Termination requires a reason",
        }
