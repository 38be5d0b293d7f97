"""
Interview Proctor - Collaborator Interfaces

Protocol definitions for the two external collaborators the core consumes:
  1. Media      - camera stream, video track state, capture sink
  2. Transport  - inbound tool-call batches, outbound responses, reconfiguration

The core never reaches past these protocols into a concrete adapter.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, runtime_checkable

from .models import AgentConfig, FunctionResponse, ToolCallBatch


class MediaEvent(str, Enum):
    """Lifecycle notifications pushed by the media collaborator."""
    STREAM_STARTED = "stream_started"
    TRACK_ENDED = "track_ended"
    TRACK_MUTED = "track_muted"
    TRACK_UNMUTED = "track_unmuted"


MediaListener = Callable[[MediaEvent], None]
Unsubscribe = Callable[[], None]
BatchHandler = Callable[[ToolCallBatch], Awaitable[None]]


# ═══════════════════════════════════════════════════════════════════════════
# Media
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class VideoTrackLike(Protocol):
    enabled: bool
    ready_state: str  # "live" | "ended"


@runtime_checkable
class MediaStreamLike(Protocol):
    @property
    def video_tracks(self) -> Sequence[VideoTrackLike]:
        ...


@runtime_checkable
class MediaSource(Protocol):
    """Host camera API: current stream, streaming flag, lifecycle events."""

    def get_stream(self) -> Optional[MediaStreamLike]:
        ...

    def is_streaming(self) -> bool:
        ...

    def subscribe(self, listener: MediaListener) -> Unsubscribe:
        """Register for MediaEvents. The returned callable unsubscribes."""
        ...


@runtime_checkable
class CaptureSink(Protocol):
    """Consumes the bound stream and reports whether playback is flowing."""

    def attach(self, stream: MediaStreamLike) -> None:
        ...

    def detach(self) -> None:
        ...

    @property
    def paused(self) -> bool:
        ...

    @property
    def ended(self) -> bool:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Transport
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class Transport(Protocol):
    """Carries tool calls to the session and responses back to the agent."""

    def subscribe(self, handler: BatchHandler) -> Unsubscribe:
        """Route inbound batches to `handler`. One subscriber at a time."""
        ...

    def send_tool_response(self, responses: List[FunctionResponse]) -> None:
        """Fire-and-forget: never blocks the caller."""
        ...

    def reconfigure(self, config: AgentConfig) -> None:
        """Apply new instructions + tools to the agent's subsequent turns."""
        ...


ChartCallback = Callable[[Any], None]
