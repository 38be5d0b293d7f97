"""
Interview Proctor - Configuration

Centralised settings from environment variables.
All tuneable constants live here; other modules import the singletons.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()

# Gemini SDK reads GOOGLE_API_KEY
_gemini_key = os.getenv("GEMINI_API_KEY", "")
if _gemini_key and not os.getenv("GOOGLE_API_KEY"):
    os.environ["GOOGLE_API_KEY"] = _gemini_key


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    )


# ---------------------------------------------------------------------------
# Stream + Gemini keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SDKConfig:
    """API keys and agent model settings."""
    stream_api_key: str = os.getenv("STREAM_API_KEY", "")
    stream_api_secret: str = os.getenv("STREAM_API_SECRET", "")
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")

    # Model named in every AgentConfig sent to the transport
    llm_model: str = os.getenv("GEMINI_MODEL", "models/gemini-2.0-flash-exp")
    # FPS sent to Gemini Realtime when the server-side agent is used
    llm_fps: int = 1

    @property
    def has_all_keys(self) -> bool:
        return all([
            self.stream_api_key,
            self.stream_api_secret,
            self.gemini_api_key,
        ])


# ---------------------------------------------------------------------------
# Proctoring tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProctorConfig:
    # Compliance monitor tick period (seconds)
    monitor_interval: float = float(os.getenv("PROCTOR_INTERVAL_S", "1.0"))
    # Failed verify_camera calls before the audit line escalates (never blocks)
    max_camera_attempts: int = int(os.getenv("PROCTOR_MAX_CAMERA_ATTEMPTS", "3"))
    # A capture sink with no frame for this long reports playback paused
    playback_stall_timeout: float = float(os.getenv("PROCTOR_PLAYBACK_STALL_S", "3.0"))
    # Terminate on track-ended without waiting for the agent (off: agent decides)
    auto_terminate_on_track_ended: bool = _env_bool("PROCTOR_AUTO_TERMINATE", False)


# ---------------------------------------------------------------------------
# Tool-call dispatch tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolConfig:
    # Wait after a batch before reading the snapshot for deferred responses
    settle_delay: float = float(os.getenv("TOOL_SETTLE_DELAY_S", "0.2"))


# ---------------------------------------------------------------------------
# Interview shape
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InterviewConfig:
    # 3 questions for each of the 5 categories
    total_questions: int = 15
    # Experience is not elicited from the agent yet
    default_years_of_experience: int = 2


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
sdk_cfg = SDKConfig()
proctor_cfg = ProctorConfig()
tool_cfg = ToolConfig()
interview_cfg = InterviewConfig()
