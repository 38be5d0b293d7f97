"""
Interview Proctor - Tool Declarations

JSON-schema function declarations for every tool the agent may call.
Sent with each AgentConfig; the dispatcher handles exactly these names.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .config import sdk_cfg
from .models import AgentConfig
from .prompts import interview_instruction, termination_instruction


def _string(description: str) -> Dict[str, Any]:
    return {"type": "STRING", "description": description}


def _number(description: str) -> Dict[str, Any]:
    return {"type": "NUMBER", "description": description}


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "ARRAY", "items": {"type": "STRING"}, "description": description}


RENDER_ALTAIR = {
    "name": "render_altair",
    "description": "Displays an altair graph in json format.",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "json_graph": _string(
                "JSON STRING representation of the graph to render. "
                "Must be a string, not a json object"
            ),
        },
        "required": ["json_graph"],
    },
}

PROCTOR_INTERVIEW = {
    "name": "proctor_interview",
    "description": "Monitors the candidate during the interview for compliance with proctoring rules",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "action": {
                "type": "STRING",
                "description": "The action to take: 'check_status', 'issue_warning', or 'terminate'",
                "enum": ["check_status", "issue_warning", "terminate"],
            },
            "reason": _string("The reason for issuing a warning or terminating the interview"),
        },
        "required": ["action"],
    },
}

SET_CANDIDATE_INFO = {
    "name": "set_candidate_info",
    "description": "Sets the candidate's basic information",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "name": _string("Candidate's name"),
            "position": _string("Position being interviewed for"),
        },
        "required": ["name", "position"],
    },
}

_EVALUATION_FIELDS = [
    "score", "feedback", "key_points_covered",
    "missing_points", "strengths", "areas_for_improvement",
]

STORE_QA = {
    "name": "store_qa",
    "description": "Stores a question and answer pair with detailed evaluation",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "question": _string("Technical question asked to the candidate"),
            "answer": _string("Candidate's detailed response"),
            "evaluation": {
                "type": "OBJECT",
                "properties": {
                    "score": _number("Technical accuracy score (1-10)"),
                    "feedback": _string("Detailed evaluation feedback"),
                    "key_points_covered": _string_list("Key technical points correctly addressed"),
                    "missing_points": _string_list("Important points that were missed"),
                    "strengths": _string_list("Strong aspects of the answer"),
                    "areas_for_improvement": _string_list("Areas needing improvement"),
                },
                "required": _EVALUATION_FIELDS,
            },
        },
        "required": ["question", "answer", "evaluation"],
    },
}

VERIFY_CAMERA = {
    "name": "verify_camera",
    "description": "Verifies if camera is enabled and video feed is visible",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "status": {"type": "BOOLEAN", "description": "Current camera status"},
            "message": _string("Status message or instructions"),
        },
        "required": ["status", "message"],
    },
}

COMPLETE_INTERVIEW = {
    "name": "complete_interview",
    "description": "Generates comprehensive final evaluation",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "technical_score": _number("Overall technical proficiency score (1-10)"),
            "sentiment_analysis": {
                "type": "OBJECT",
                "properties": {
                    "confidence": _number("Confidence level in assessment (0-1)"),
                    "overall_sentiment": _string("Overall sentiment analysis (positive/neutral/negative)"),
                    "key_indicators": _string_list("Key behavioral and communication indicators"),
                    "communication_score": _number("Communication effectiveness score (1-10)"),
                    "technical_confidence": _number("Confidence in technical responses (1-10)"),
                },
                "required": [
                    "confidence", "overall_sentiment", "key_indicators",
                    "communication_score", "technical_confidence",
                ],
            },
            "recommendation": {
                "type": "OBJECT",
                "properties": {
                    "hire_recommendation": {"type": "BOOLEAN", "description": "Whether to hire the candidate"},
                    "justification": _string("Detailed justification for the recommendation"),
                    "strengths": _string_list("Key strengths demonstrated"),
                    "areas_for_improvement": _string_list("Areas needing improvement"),
                    "suggested_role_level": _string("Suggested role level (Junior/Mid-Level/Senior)"),
                },
                "required": [
                    "hire_recommendation", "justification", "strengths",
                    "areas_for_improvement", "suggested_role_level",
                ],
            },
        },
        "required": ["technical_score", "sentiment_analysis", "recommendation"],
    },
}

FUNCTION_DECLARATIONS: List[Dict[str, Any]] = [
    RENDER_ALTAIR,
    PROCTOR_INTERVIEW,
    SET_CANDIDATE_INFO,
    STORE_QA,
    VERIFY_CAMERA,
    COMPLETE_INTERVIEW,
]

TOOL_NAMES = frozenset(decl["name"] for decl in FUNCTION_DECLARATIONS)


def interview_config() -> AgentConfig:
    """Initial agent configuration for a fresh interview."""
    return AgentConfig(
        model=sdk_cfg.llm_model,
        system_instruction=interview_instruction(),
        function_declarations=list(FUNCTION_DECLARATIONS),
    )


def termination_config(reason: str) -> AgentConfig:
    """Agent configuration after termination: announce, keep the same tools."""
    return AgentConfig(
        model=sdk_cfg.llm_model,
        system_instruction=termination_instruction(reason),
        function_declarations=list(FUNCTION_DECLARATIONS),
    )
