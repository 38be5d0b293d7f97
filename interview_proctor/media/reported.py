"""
Interview Proctor - Reported Media Source

Camera state as reported by the candidate's browser over the WebSocket
(`media_state` / `track_ended` messages) or by the agent SDK's track events.
Nothing is decoded here; the source only mirrors what the client reports
and turns changes into MediaEvents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..core.interfaces import MediaEvent, MediaListener, Unsubscribe

logger = logging.getLogger("proctor.media")

PLAYING = "playing"
PAUSED = "paused"
ENDED = "ended"


@dataclass
class ReportedTrack:
    enabled: bool = True
    ready_state: str = "live"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportedTrack":
        return cls(
            enabled=bool(data.get("enabled", True)),
            ready_state=str(data.get("ready_state", data.get("readyState", "live"))),
        )


@dataclass
class ReportedStream:
    tracks: List[ReportedTrack] = field(default_factory=list)

    @property
    def video_tracks(self) -> List[ReportedTrack]:
        return self.tracks


class ReportedMediaSource:
    """
    MediaSource backed by client reports.

    Events:
        STREAM_STARTED  the stream starts flowing (streaming, with a live track)
        TRACK_ENDED     a live track went to "ended", or an explicit track_ended
        TRACK_MUTED / TRACK_UNMUTED  a track's enabled flag flipped
    """

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        self._stream: Optional[ReportedStream] = None
        self._streaming = False
        self._listeners: List[MediaListener] = []

    # ── MediaSource ─────────────────────────────────────────────────────

    def get_stream(self) -> Optional[ReportedStream]:
        return self._stream

    def is_streaming(self) -> bool:
        return self._stream is not None and self._streaming

    def subscribe(self, listener: MediaListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Updates ─────────────────────────────────────────────────────────

    def update(
        self,
        has_stream: bool,
        is_streaming: bool,
        video_tracks: Iterable[ReportedTrack] = (),
    ) -> None:
        before = self._stream.tracks if self._stream else []
        was_flowing = self._flowing(self.is_streaming(), before)

        tracks = list(video_tracks)
        self._stream = ReportedStream(tracks=tracks) if has_stream else None
        self._streaming = bool(is_streaming) and has_stream
        now_flowing = self._flowing(self._streaming, tracks)

        events: List[MediaEvent] = []
        if now_flowing and not was_flowing:
            events.append(MediaEvent.STREAM_STARTED)

        for old, new in zip(before, tracks):
            if old.ready_state == "live" and new.ready_state == ENDED:
                events.append(MediaEvent.TRACK_ENDED)
            elif old.enabled and not new.enabled:
                events.append(MediaEvent.TRACK_MUTED)
            elif not old.enabled and new.enabled:
                events.append(MediaEvent.TRACK_UNMUTED)

        if was_flowing and not has_stream:
            events.append(MediaEvent.TRACK_ENDED)

        for event in dict.fromkeys(events):
            self._emit(event)

    def update_from_message(self, data: Dict[str, Any]) -> None:
        """Apply a `media_state` WebSocket message."""
        raw_tracks = data.get("video_tracks") or []
        tracks = [ReportedTrack.from_dict(t) for t in raw_tracks if isinstance(t, dict)]
        self.update(
            has_stream=bool(data.get("has_stream", bool(tracks))),
            is_streaming=bool(data.get("is_streaming", bool(tracks))),
            video_tracks=tracks,
        )

    def mark_track_ended(self) -> None:
        """The client (or the SDK) reported that the camera track ended."""
        if self._stream is not None:
            for track in self._stream.tracks:
                track.ready_state = ENDED
        self._streaming = False
        self._emit(MediaEvent.TRACK_ENDED)

    @staticmethod
    def _flowing(streaming: bool, tracks: Iterable[ReportedTrack]) -> bool:
        return streaming and any(t.ready_state == "live" for t in tracks)

    def _emit(self, event: MediaEvent) -> None:
        logger.debug(f"[{self.session_id}] Media event: {event.value}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"[{self.session_id}] Media listener error: {e}", exc_info=True)


class ReportedCaptureSink:
    """
    CaptureSink whose playback state comes from the client's <video> element
    ("playing" | "paused" | "ended").
    """

    def __init__(self) -> None:
        self._stream: Optional[Any] = None
        self.playback = PLAYING

    @property
    def attached(self) -> bool:
        return self._stream is not None

    def attach(self, stream: Any) -> None:
        self._stream = stream
        self.playback = PLAYING

    def detach(self) -> None:
        self._stream = None

    def set_playback(self, state: Optional[str]) -> None:
        if state in (PLAYING, PAUSED, ENDED):
            self.playback = state

    @property
    def paused(self) -> bool:
        return self.playback == PAUSED

    @property
    def ended(self) -> bool:
        return self.playback == ENDED
