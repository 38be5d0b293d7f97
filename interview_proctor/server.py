"""
Interview Proctor - FastAPI Server

================================================================================
Architecture:
  • One InterviewSession per WebSocket connection (browser relays Gemini Live
    tool calls) or per Vision Agents call (server-side agent joins the call)
  • Camera state reaches the session either as client reports (media_state)
    or as real WebRTC frames (POST /session/{id}/offer, ?media=webrtc)
  • Every tool response, reconfiguration, chart and audit entry goes back to
    the browser through the session's WebSocketTransport outbox
================================================================================

Endpoints:
  WS     /ws/interview             — interview session (?media=reported|webrtc)
  GET    /health                   — server health
  GET    /sessions                 — list active sessions
  GET    /session/{session_id}     — record snapshot, lifecycle, proctor state
  DELETE /session/{session_id}     — close a session
  POST   /session/{session_id}/offer — WebRTC offer → answer (aiortc)
  POST   /agent/sessions           — start a Vision Agents interviewer in a call
  GET    /token                    — Stream user token

Client → Server messages:
  { type: "tool_call", functionCalls: [{id, name, args}] }
  { type: "media_state", has_stream, is_streaming, video_tracks: [...], playback }
  { type: "track_ended" }
  { type: "ping" }

Server → Client messages:
  { type: "session_started", data: {session_id, media, config} }
  { type: "tool_response", functionResponses: [{id, name, response: {output}}] }
  { type: "reconfigure", config: {...} }
  { type: "chart", data: {...} }
  { type: "proctor_log", data: {timestamp, action} }
  { type: "system_status", payload: {...} }
  { type: "warning", data: {reason, warnings_count} }
  { type: "pong" }
  { type: "error", message: "..." }
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

import jwt
from aiortc import RTCPeerConnection, RTCSessionDescription
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import server_cfg, sdk_cfg
from .core.interfaces import CaptureSink, MediaSource
from .core.models import ProctorLogEntry
from .media.reported import ReportedCaptureSink, ReportedMediaSource
from .media.webrtc import FrameCaptureSink, WebRTCMediaSource
from .services.registry import SessionRegistry
from .transport.agent import AgentTransport
from .transport.websocket import WebSocketTransport

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("proctor")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Session Registry
# ---------------------------------------------------------------------------

registry = SessionRegistry()

_peer_connections: Dict[str, RTCPeerConnection] = {}
_agent_transports: Dict[str, AgentTransport] = {}


def _create_media(mode: str, session_id: str) -> Tuple[MediaSource, CaptureSink]:
    if mode == "webrtc":
        return WebRTCMediaSource(session_id), FrameCaptureSink(session_id)
    return ReportedMediaSource(session_id), ReportedCaptureSink()


async def _close_peer(session_id: str) -> None:
    pc = _peer_connections.pop(session_id, None)
    if pc is not None:
        try:
            await pc.close()
        except Exception as e:
            logger.debug(f"[{session_id}] Peer connection close: {e}")


async def _close_session(session_id: str) -> Optional[Dict[str, Any]]:
    transport = _agent_transports.pop(session_id, None)
    if transport is not None:
        await transport.close()
    await _close_peer(session_id)
    return await registry.close_session(session_id)


# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Interview Proctor backend starting...")
    logger.info(f"   Stream keys configured: {sdk_cfg.has_all_keys}")
    yield
    logger.info("Shutting down — closing all sessions...")
    for sid in list(registry.all_sessions.keys()):
        await _close_session(sid)
    logger.info("Interview Proctor backend stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Interview Proctor — AI Technical Interviews",
    version=VERSION,
    description=(
        "Tool-call backend for a live AI interviewer: session record, "
        "camera verification, compliance monitoring and termination."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": VERSION,
        "sdk_keys_configured": sdk_cfg.has_all_keys,
        "active_sessions": registry.active_count,
    }


@app.get("/token")
async def token(user_id: str):
    if not sdk_cfg.stream_api_key or not sdk_cfg.stream_api_secret:
        return {"error": "Stream API keys not configured"}

    now = int(time.time())
    payload = {
        "user_id": user_id,
        "iat": now,
        "exp": now + 3600,
    }
    stream_token = jwt.encode(payload, sdk_cfg.stream_api_secret, algorithm="HS256")

    return {
        "api_key": sdk_cfg.stream_api_key,
        "token": stream_token,
        "user_id": user_id,
    }


@app.get("/sessions")
async def list_sessions():
    return {sid: session.status() for sid, session in registry.all_sessions.items()}


@app.get("/session/{session_id}")
async def session_detail(session_id: str):
    session = registry.get(session_id)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "session not found"})
    return session.to_dict()


@app.delete("/session/{session_id}")
async def close_session(session_id: str):
    summary = await _close_session(session_id)
    if summary is None:
        return JSONResponse(status_code=404, content={"error": "session not found"})
    return {"session_id": session_id, "closed": True, "summary": summary}


@app.post("/session/{session_id}/offer")
async def webrtc_offer(session_id: str, offer: Dict[str, Any]):
    """Answer the candidate's WebRTC offer; their camera track feeds the session."""
    session = registry.get(session_id)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "session not found"})
    if not isinstance(session.media, WebRTCMediaSource):
        return JSONResponse(
            status_code=400,
            content={"error": "session was not opened with media=webrtc"},
        )
    if not isinstance(offer.get("sdp"), str) or not isinstance(offer.get("type"), str):
        return JSONResponse(status_code=400, content={"error": "offer needs sdp and type"})

    await _close_peer(session_id)
    pc = RTCPeerConnection()
    _peer_connections[session_id] = pc
    media: WebRTCMediaSource = session.media

    @pc.on("track")
    def on_track(track: Any) -> None:
        logger.info(f"[{session_id}] WebRTC track received: {track.kind}")
        media.add_track(track)

    @pc.on("connectionstatechange")
    async def on_connection_state() -> None:
        logger.info(f"[{session_id}] WebRTC connection state: {pc.connectionState}")
        if pc.connectionState == "failed":
            await _close_peer(session_id)

    try:
        await pc.setRemoteDescription(RTCSessionDescription(sdp=offer["sdp"], type=offer["type"]))
        answer = await pc.createAnswer()
        await pc.setLocalDescription(answer)
    except Exception as e:
        logger.error(f"[{session_id}] WebRTC negotiation failed: {e}", exc_info=True)
        await _close_peer(session_id)
        return JSONResponse(status_code=400, content={"error": f"Negotiation failed: {str(e)[:100]}"})

    return {"sdp": pc.localDescription.sdp, "type": pc.localDescription.type}


@app.post("/agent/sessions")
async def start_agent_session(call_id: str):
    """A Vision Agent joins `call_id` and interviews through a new session."""
    if not sdk_cfg.has_all_keys:
        return JSONResponse(
            status_code=503,
            content={
                "error": (
                    "Live agent unavailable. Set STREAM_API_KEY, STREAM_API_SECRET "
                    "and GEMINI_API_KEY."
                ),
            },
        )

    session_id = uuid.uuid4().hex[:12]
    media = ReportedMediaSource(session_id)
    session = registry.create(media=media, sink=ReportedCaptureSink(), session_id=session_id)
    transport = AgentTransport(
        session_id, media, instructions=session.initial_config().system_instruction,
    )
    session.attach(transport)
    _agent_transports[session_id] = transport

    try:
        info = await transport.start(call_id=call_id)
    except Exception as e:
        logger.error(f"[{session_id}] Failed to start interview agent: {e}")
        await _close_session(session_id)
        return JSONResponse(
            status_code=502,
            content={"error": f"Failed to start AI agent: {str(e)[:100]}"},
        )

    return {"type": "session_started", "data": info}


# ---------------------------------------------------------------------------
# WebSocket: Interview Session
# ---------------------------------------------------------------------------

@app.websocket("/ws/interview")
async def websocket_interview(ws: WebSocket, media: str = "reported"):
    """
    WebSocket endpoint — one InterviewSession per connection.
    The browser owns the Gemini Live connection and relays its tool calls here.
    """
    await ws.accept()

    session_id = uuid.uuid4().hex[:12]
    media_mode = "webrtc" if media == "webrtc" else "reported"

    async def send(data: Dict[str, Any]) -> None:
        await ws.send_text(json.dumps(data))

    transport = WebSocketTransport(session_id, send=send)
    transport.start()

    def on_log(entry: ProctorLogEntry) -> None:
        transport.post({"type": "proctor_log", "data": entry.to_dict()})

    def on_chart(chart: Any) -> None:
        transport.post({"type": "chart", "data": chart})

    def on_status(status: Dict[str, Any]) -> None:
        transport.post({"type": "system_status", "payload": status})

    def on_warning(warning: Dict[str, Any]) -> None:
        transport.post({"type": "warning", "data": warning})

    source, sink = _create_media(media_mode, session_id)
    session = registry.create(
        media=source,
        sink=sink,
        session_id=session_id,
        on_chart=on_chart,
        on_log=on_log,
        on_status=on_status,
        on_warning=on_warning,
    )
    session.attach(transport)
    transport.post({
        "type": "session_started",
        "data": {
            "session_id": session_id,
            "media": media_mode,
            "config": session.initial_config().to_dict(),
        },
    })

    try:
        while True:
            raw = await ws.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                transport.post({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                continue

            msg_type = message.get("type", "")

            # ── Agent tool calls ──
            if msg_type == "tool_call":
                transport.handle_tool_call(message)

            # ── Camera state reported by the browser ──
            elif msg_type == "media_state":
                if isinstance(source, ReportedMediaSource):
                    source.update_from_message(message)
                elif isinstance(source, WebRTCMediaSource):
                    tracks = message.get("video_tracks") or []
                    if tracks and isinstance(tracks[0], dict) and "enabled" in tracks[0]:
                        source.set_enabled(bool(tracks[0]["enabled"]))
                if isinstance(sink, ReportedCaptureSink):
                    sink.set_playback(message.get("playback"))

            elif msg_type == "track_ended":
                if isinstance(source, ReportedMediaSource):
                    source.mark_track_ended()

            # ── Keepalive ──
            elif msg_type == "ping":
                transport.post({"type": "pong"})

            else:
                transport.post({"type": "error", "message": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        logger.info(f"[{session_id}] WebSocket disconnected")
    except Exception as e:
        logger.error(f"[{session_id}] WebSocket error: {e}", exc_info=True)
    finally:
        await transport.close()
        await _close_session(session_id)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "interview_proctor.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )
