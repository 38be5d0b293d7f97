"""
Interview Proctor - WebRTC Media

Camera media received directly over WebRTC (aiortc) via POST /session/{id}/offer.

  WebRTCMediaSource  wraps the remote video MediaStreamTracks; aiortc has no
                     `enabled` flag, so the client's reported mute state is
                     mirrored onto the wrapper.
  FrameCaptureSink   pulls frames with `track.recv()` while the monitor is
                     active and reports playback paused when frames stall.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

import av
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from ..core.config import proctor_cfg
from ..core.interfaces import MediaEvent, MediaListener, Unsubscribe

logger = logging.getLogger("proctor.webrtc")

_RECV_TIMEOUT_S = 5.0


class WebRTCVideoTrack:
    """VideoTrackLike view of an aiortc track."""

    def __init__(self, track: MediaStreamTrack) -> None:
        self.track = track
        self.enabled = True

    @property
    def ready_state(self) -> str:
        return self.track.readyState

    @property
    def id(self) -> str:
        return self.track.id


class WebRTCMediaSource:
    """MediaSource over the remote peer's video tracks."""

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        self._tracks: List[WebRTCVideoTrack] = []
        self._listeners: List[MediaListener] = []

    @property
    def video_tracks(self) -> List[WebRTCVideoTrack]:
        return list(self._tracks)

    def get_stream(self) -> Optional["WebRTCMediaSource"]:
        return self if self._tracks else None

    def is_streaming(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def subscribe(self, listener: MediaListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def add_track(self, track: MediaStreamTrack) -> bool:
        """Register a remote track from RTCPeerConnection's "track" event."""
        if track.kind != "video":
            return False

        wrapped = WebRTCVideoTrack(track)
        self._tracks.append(wrapped)
        logger.info(f"[{self.session_id}] WebRTC video track added: {track.id}")

        @track.on("ended")
        def _on_ended() -> None:
            logger.info(f"[{self.session_id}] WebRTC video track ended: {track.id}")
            self._emit(MediaEvent.TRACK_ENDED)

        self._emit(MediaEvent.STREAM_STARTED)
        return True

    def set_enabled(self, enabled: bool) -> None:
        """Mirror the client's camera mute toggle onto every track."""
        changed = [t for t in self._tracks if t.enabled != enabled]
        for t in changed:
            t.enabled = enabled
        if changed:
            self._emit(MediaEvent.TRACK_UNMUTED if enabled else MediaEvent.TRACK_MUTED)

    def _emit(self, event: MediaEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"[{self.session_id}] Media listener error: {e}", exc_info=True)


class FrameCaptureSink:
    """
    CaptureSink that consumes the first live WebRTC track.

    Lifecycle:
        sink.attach(stream)   # starts the reader task
        sink.paused           # True once no frame arrived for `stall_timeout`
        sink.detach()
    """

    def __init__(
        self,
        session_id: str = "",
        stall_timeout: float = proctor_cfg.playback_stall_timeout,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self._stall_timeout = stall_timeout
        self._clock = clock

        self._track: Optional[MediaStreamTrack] = None
        self._task: Optional[asyncio.Task] = None
        self._attached_at = 0.0
        self._last_frame_at: Optional[float] = None
        self._ended = False

        self.frames_received = 0
        self.last_frame_size: Optional[Tuple[int, int]] = None

    def attach(self, stream: Any) -> None:
        self.detach()
        track = next(
            (t.track for t in stream.video_tracks
             if isinstance(t, WebRTCVideoTrack) and t.ready_state == "live"),
            None,
        )
        self._attached_at = self._clock()
        self._last_frame_at = None
        self._ended = track is None
        if track is None:
            logger.warning(f"[{self.session_id}] Capture sink: no live WebRTC track to read")
            return

        self._track = track
        self._task = asyncio.get_running_loop().create_task(
            self._reader(track), name=f"capture-{self.session_id}"
        )

    def detach(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
        self._track = None

    async def aclose(self) -> None:
        task = self._task
        self.detach()
        if task and not task.done():
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

    @property
    def paused(self) -> bool:
        if self._track is None or self._ended:
            return False
        since = self._last_frame_at if self._last_frame_at is not None else self._attached_at
        return self._clock() - since > self._stall_timeout

    @property
    def ended(self) -> bool:
        if self._ended:
            return True
        return self._track is not None and self._track.readyState == "ended"

    def _on_frame(self, frame: Any) -> None:
        self.frames_received += 1
        self._last_frame_at = self._clock()
        if isinstance(frame, av.VideoFrame):
            self.last_frame_size = (frame.width, frame.height)

    async def _reader(self, track: MediaStreamTrack) -> None:
        logger.info(f"[{self.session_id}] Capture reader started on track {track.id}")

        while True:
            try:
                frame = await asyncio.wait_for(track.recv(), timeout=_RECV_TIMEOUT_S)
                self._on_frame(frame)
            except asyncio.TimeoutError:
                continue  # stalled; `paused` reports it
            except MediaStreamError:
                self._ended = True
                break
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.session_id}] Capture reader error: {e}", exc_info=True)
                await asyncio.sleep(0.5)

        logger.info(
            f"[{self.session_id}] Capture reader stopped after {self.frames_received} frames"
        )
