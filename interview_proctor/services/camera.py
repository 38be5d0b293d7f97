"""
Interview Proctor - Camera Status

One predicate, used by verify_camera, check_status and the compliance monitor:

    ok := stream present ∧ streaming ∧ ∃ video track (enabled ∧ readyState == "live")

Nothing here looks at the picture itself; gaze and attention are not detected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.interfaces import MediaSource, MediaStreamLike

LIVE = "live"


def track_is_live(track: Any) -> bool:
    return bool(getattr(track, "enabled", False)) and getattr(track, "ready_state", None) == LIVE


def has_live_video_track(stream: Optional[MediaStreamLike]) -> bool:
    if stream is None:
        return False
    return any(track_is_live(t) for t in stream.video_tracks)


@dataclass(frozen=True)
class CameraStatus:
    has_stream: bool = False
    is_streaming: bool = False
    has_video_tracks: bool = False

    @property
    def ok(self) -> bool:
        return self.has_stream and self.is_streaming and self.has_video_tracks

    @property
    def has_active_stream(self) -> bool:
        return self.has_stream and self.is_streaming

    @property
    def message(self) -> str:
        """Instruction for the agent to relay to the candidate."""
        if not self.has_stream:
            return "Camera access not granted. Please enable your camera in browser settings."
        if not self.is_streaming:
            return "Camera stream is not active. Please check your camera settings."
        if not self.has_video_tracks:
            return (
                "No active video tracks detected. Please ensure your camera "
                "is not being used by another application."
            )
        return "Camera is working properly."

    @property
    def audit_action(self) -> str:
        if not self.has_stream:
            return "Camera access not granted"
        if not self.is_streaming:
            return "Camera stream inactive"
        if not self.has_video_tracks:
            return "No active video tracks"
        return "Camera verified successfully"

    def details(self) -> Dict[str, Any]:
        return {
            "has_stream": self.has_stream,
            "is_streaming": self.is_streaming,
            "has_video_tracks": self.has_video_tracks,
        }


def check_camera(media: MediaSource) -> CameraStatus:
    """Read the media collaborator once and derive the camera status."""
    stream = media.get_stream()
    return CameraStatus(
        has_stream=stream is not None,
        is_streaming=bool(media.is_streaming()),
        has_video_tracks=has_live_video_track(stream),
    )
