"""
Interview Proctor - Session Record Validator

`validate()` turns whatever the store is about to commit (a SessionRecord, a
partial dict left behind by an external reset, or nothing at all) into a
complete SessionRecord:

  • every top-level substructure exists with its documented default
  • scalar fields carry the right type, malformed values fall back to defaults
  • the result shares no mutable object with the input

It is idempotent: validate(validate(s)) == validate(s).
"""

from __future__ import annotations

import copy
import math
from typing import Any, Dict, List, Optional

from .models import (
    CandidateProfile,
    Category,
    Evaluation,
    FinalEvaluation,
    ProctorLogEntry,
    ProgressState,
    QARecord,
    SessionMeta,
    SessionRecord,
    TechnicalEvaluation,
    iso_timestamp,
)
from .config import interview_cfg

_CATEGORY_NAMES = frozenset(Category.names())


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------

def _get(value: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a dataclass instance or a plain dict."""
    if isinstance(value, dict):
        return value.get(key, default)
    return getattr(value, key, default)


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _num(value: Any, default: float = 0) -> float:
    return value if _is_number(value) else default


def _opt_num(value: Any) -> Optional[float]:
    return value if _is_number(value) else None


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def _opt_dict(value: Any) -> Optional[Dict[str, Any]]:
    return copy.deepcopy(value) if isinstance(value, dict) else None


def _category_list(value: Any) -> List[str]:
    """Known category names, deduplicated, first-seen order."""
    seen: List[str] = []
    for name in _str_list(value):
        if name in _CATEGORY_NAMES and name not in seen:
            seen.append(name)
    return seen


# ---------------------------------------------------------------------------
# Substructure normalizers
# ---------------------------------------------------------------------------

def _candidate(value: Any) -> CandidateProfile:
    if not isinstance(value, (CandidateProfile, dict)):
        return CandidateProfile()
    return CandidateProfile(
        name=_str(_get(value, "name")),
        position=_str(_get(value, "position")),
        years_of_experience=int(_num(_get(value, "years_of_experience"))),
    )


def _session_meta(value: Any) -> SessionMeta:
    if not isinstance(value, (SessionMeta, dict)):
        return SessionMeta()
    return SessionMeta(
        timestamp=_str(_get(value, "timestamp")) or iso_timestamp(),
        duration=_num(_get(value, "duration")),
        completed_categories=_category_list(_get(value, "completed_categories")),
    )


def coerce_evaluation(value: Any) -> Optional[Evaluation]:
    """Evaluation from a dict or instance; None when absent or malformed."""
    if not isinstance(value, (Evaluation, dict)):
        return None
    return Evaluation(
        score=_opt_num(_get(value, "score")),
        feedback=_str(_get(value, "feedback")),
        key_points_covered=_str_list(_get(value, "key_points_covered")),
        missing_points=_str_list(_get(value, "missing_points")),
        strengths=_str_list(_get(value, "strengths")),
        areas_for_improvement=_str_list(_get(value, "areas_for_improvement")),
    )


def _qa_record(value: Any) -> Optional[QARecord]:
    if not isinstance(value, (QARecord, dict)):
        return None
    return QARecord(
        category=_str(_get(value, "category")),
        question=_str(_get(value, "question")),
        answer=_str(_get(value, "answer")),
        timestamp=_str(_get(value, "timestamp")) or iso_timestamp(),
        evaluation=coerce_evaluation(_get(value, "evaluation")),
    )


def _qa_list(value: Any) -> List[QARecord]:
    if not isinstance(value, (list, tuple)):
        return []
    records = (_qa_record(item) for item in value)
    return [r for r in records if r is not None]


def _qa_pairs(value: Any) -> Dict[str, List[QARecord]]:
    if not isinstance(value, dict):
        return {}
    return {
        key: _qa_list(items)
        for key, items in value.items()
        if isinstance(key, str)
    }


def _progress(value: Any) -> ProgressState:
    if not isinstance(value, (ProgressState, dict)):
        return ProgressState(questions_remaining=interview_cfg.total_questions)

    current = _get(value, "current_category")
    if isinstance(current, Category):
        current = current.value
    if current not in _CATEGORY_NAMES:
        current = Category.first().value

    remaining = _num(_get(value, "questions_remaining"), interview_cfg.total_questions)
    is_complete = _get(value, "is_complete")

    return ProgressState(
        completed_categories=_category_list(_get(value, "completed_categories")),
        current_category=current,
        questions_remaining=max(0, int(remaining)),
        average_score=_num(_get(value, "average_score")),
        is_complete=is_complete if isinstance(is_complete, bool) else None,
        end_time=_opt_str(_get(value, "end_time")),
        duration_seconds=_opt_num(_get(value, "duration_seconds")),
        termination_reason=_opt_str(_get(value, "termination_reason")),
    )


def _technical_evaluation(value: Any) -> TechnicalEvaluation:
    if not isinstance(value, (TechnicalEvaluation, dict)):
        return TechnicalEvaluation()

    raw_scores = _get(value, "category_scores")
    if not isinstance(raw_scores, dict):
        raw_scores = {}
    scores = {name: _num(raw_scores.get(name)) for name in Category.names()}

    return TechnicalEvaluation(
        category_scores=scores,
        overall_score=_num(_get(value, "overall_score")),
        sentiment_analysis=_opt_dict(_get(value, "sentiment_analysis")),
        recommendation=_opt_dict(_get(value, "recommendation")),
    )


def _proctor_log(value: Any) -> List[ProctorLogEntry]:
    if not isinstance(value, (list, tuple)):
        return []
    entries: List[ProctorLogEntry] = []
    for item in value:
        if not isinstance(item, (ProctorLogEntry, dict)):
            continue
        entries.append(ProctorLogEntry(
            timestamp=_str(_get(item, "timestamp")) or iso_timestamp(),
            action=_str(_get(item, "action")),
        ))
    return entries


def _final_evaluation(value: Any) -> Optional[FinalEvaluation]:
    if not isinstance(value, (FinalEvaluation, dict)):
        return None
    return FinalEvaluation(
        technical_score=_opt_num(_get(value, "technical_score")),
        sentiment_analysis=_opt_dict(_get(value, "sentiment_analysis")) or {},
        recommendation=_opt_dict(_get(value, "recommendation")) or {},
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def validate(record: Any) -> SessionRecord:
    """Return a complete, independent SessionRecord built from `record`."""
    if not isinstance(record, (SessionRecord, dict)):
        record = {}

    return SessionRecord(
        candidate=_candidate(_get(record, "candidate")),
        session=_session_meta(_get(record, "session")),
        qa_history=_qa_list(_get(record, "qa_history")),
        qa_pairs=_qa_pairs(_get(record, "qa_pairs")),
        progress=_progress(_get(record, "progress")),
        technical_evaluation=_technical_evaluation(_get(record, "technical_evaluation")),
        proctor_log=_proctor_log(_get(record, "proctor_log", _get(record, "proctorLog"))),
        final_evaluation=_final_evaluation(_get(record, "final_evaluation")),
    )
