"""
Interview Proctor - Data Models

Dataclasses for every piece of data flowing through the system.
Single source of truth for the session record and the tool-call wire shapes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def iso_timestamp(epoch: Optional[float] = None) -> str:
    """ISO-8601 UTC string for an epoch time (now by default)."""
    if epoch is None:
        epoch = time.time()
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat(timespec="milliseconds")


# ---------------------------------------------------------------------------
# Interview categories
# ---------------------------------------------------------------------------

class Category(str, Enum):
    """The five technical areas, in interview order."""
    PYTHON_FUNDAMENTALS = "Python_Fundamentals"
    WEB_DEVELOPMENT = "Web_Development"
    DATABASE = "Database"
    TESTING = "Testing"
    PYTHON_ECOSYSTEM = "Python_Ecosystem"

    @classmethod
    def first(cls) -> "Category":
        return next(iter(cls))

    @classmethod
    def names(cls) -> List[str]:
        return [c.value for c in cls]


# ---------------------------------------------------------------------------
# Session record substructures
# ---------------------------------------------------------------------------

@dataclass
class CandidateProfile:
    name: str = ""
    position: str = ""
    years_of_experience: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionMeta:
    timestamp: str = field(default_factory=iso_timestamp)
    duration: float = 0
    completed_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Evaluation:
    """Per-answer evaluation as produced by the agent."""
    score: Optional[float] = None    # 1-10
    feedback: str = ""
    key_points_covered: List[str] = field(default_factory=list)
    missing_points: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    areas_for_improvement: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QARecord:
    category: str = ""
    question: str = ""
    answer: str = ""
    timestamp: str = field(default_factory=iso_timestamp)
    evaluation: Optional[Evaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_PROGRESS_OPTIONAL = ("is_complete", "end_time", "duration_seconds", "termination_reason")


@dataclass
class ProgressState:
    completed_categories: List[str] = field(default_factory=list)
    current_category: str = Category.first().value
    questions_remaining: int = 15
    average_score: float = 0
    is_complete: Optional[bool] = None
    end_time: Optional[str] = None
    duration_seconds: Optional[float] = None
    termination_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        # Completion fields only appear once they are set
        for key in _PROGRESS_OPTIONAL:
            if d[key] is None:
                del d[key]
        return d


def _zero_scores() -> Dict[str, float]:
    return {name: 0 for name in Category.names()}


@dataclass
class TechnicalEvaluation:
    category_scores: Dict[str, float] = field(default_factory=_zero_scores)
    overall_score: float = 0
    # Overlaid by complete_interview
    sentiment_analysis: Optional[Dict[str, Any]] = None
    recommendation: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for key in ("sentiment_analysis", "recommendation"):
            if d[key] is None:
                del d[key]
        return d


@dataclass
class ProctorLogEntry:
    timestamp: str = field(default_factory=iso_timestamp)
    action: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FinalEvaluation:
    technical_score: Optional[float] = None
    sentiment_analysis: Dict[str, Any] = field(default_factory=dict)
    recommendation: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionRecord:
    """The canonical interview record. Mutated only through SessionStore.apply()."""
    candidate: CandidateProfile = field(default_factory=CandidateProfile)
    session: SessionMeta = field(default_factory=SessionMeta)
    qa_history: List[QARecord] = field(default_factory=list)
    qa_pairs: Dict[str, List[QARecord]] = field(default_factory=dict)
    progress: ProgressState = field(default_factory=ProgressState)
    technical_evaluation: TechnicalEvaluation = field(default_factory=TechnicalEvaluation)
    proctor_log: List[ProctorLogEntry] = field(default_factory=list)
    final_evaluation: Optional[FinalEvaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "candidate": self.candidate.to_dict(),
            "session": self.session.to_dict(),
            "qa_history": [qa.to_dict() for qa in self.qa_history],
            "qa_pairs": {
                cat: [qa.to_dict() for qa in items]
                for cat, items in self.qa_pairs.items()
            },
            "progress": self.progress.to_dict(),
            "technical_evaluation": self.technical_evaluation.to_dict(),
            "proctor_log": [entry.to_dict() for entry in self.proctor_log],
        }
        if self.final_evaluation is not None:
            d["final_evaluation"] = self.final_evaluation.to_dict()
        return d


# ---------------------------------------------------------------------------
# Proctor counters (per session, outside the record)
# ---------------------------------------------------------------------------

@dataclass
class ProctorState:
    warnings: List[str] = field(default_factory=list)
    is_terminated: bool = False
    camera_attempts: int = 0
    # Set the first time the monitor is started by either activation path
    session_active: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Tool-call wire types (Gemini Live shape)
# ---------------------------------------------------------------------------

@dataclass
class FunctionCall:
    id: str = ""
    name: str = ""
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionCall":
        args = data.get("args") or {}
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            args=dict(args) if isinstance(args, dict) else {},
        )


@dataclass
class ToolCallBatch:
    function_calls: List[FunctionCall] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCallBatch":
        raw = data.get("functionCalls", data.get("function_calls")) or []
        return cls(function_calls=[
            FunctionCall.from_dict(fc) for fc in raw if isinstance(fc, dict)
        ])

    @property
    def names(self) -> List[str]:
        return [fc.name for fc in self.function_calls]


@dataclass
class FunctionResponse:
    id: str = ""
    name: str = ""
    output: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "response": {"output": self.output}}


@dataclass
class AgentConfig:
    """New system instructions + tool declarations for the agent's next turns."""
    model: str = ""
    system_instruction: str = ""
    function_declarations: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "systemInstruction": {"parts": [{"text": self.system_instruction}]},
            "tools": [
                {"googleSearch": {}},
                {"functionDeclarations": list(self.function_declarations)},
            ],
        }
