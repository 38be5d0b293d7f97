import jwt
import pytest
from fastapi.testclient import TestClient

from interview_proctor import server
from interview_proctor.core.config import SDKConfig


@pytest.fixture
def client():
    with TestClient(server.app) as test_client:
        yield test_client


def receive_until(ws, msg_type, limit=50):
    """Skip audit/status traffic until a message of `msg_type` arrives."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == msg_type:
            return message
    raise AssertionError(f"no {msg_type} message received")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "active_sessions" in body


def test_unknown_session_is_404(client):
    assert client.get("/session/nope").status_code == 404
    assert client.delete("/session/nope").status_code == 404


def test_token_is_signed_with_stream_secret(client, monkeypatch):
    monkeypatch.setattr(server, "sdk_cfg", SDKConfig(
        stream_api_key="key", stream_api_secret="secret", gemini_api_key="g",
    ))

    body = client.get("/token", params={"user_id": "candidate-1"}).json()

    assert body["api_key"] == "key"
    claims = jwt.decode(body["token"], "secret", algorithms=["HS256"])
    assert claims["user_id"] == "candidate-1"


def test_interview_websocket_round_trip(client):
    with client.websocket_connect("/ws/interview") as ws:
        started = receive_until(ws, "session_started")
        session_id = started["data"]["session_id"]
        tool_names = {
            decl["name"]
            for decl in started["data"]["config"]["tools"][1]["functionDeclarations"]
        }
        assert "verify_camera" in tool_names

        ws.send_json({
            "type": "media_state",
            "has_stream": True,
            "is_streaming": True,
            "video_tracks": [{"enabled": True, "ready_state": "live"}],
            "playback": "playing",
        })
        ws.send_json({
            "type": "tool_call",
            "functionCalls": [
                {"id": "v1", "name": "verify_camera", "args": {}},
            ],
        })
        verified = receive_until(ws, "tool_response")
        assert verified["functionResponses"][0]["id"] == "v1"
        assert verified["functionResponses"][0]["response"]["output"]["status"] is True

        ws.send_json({
            "type": "tool_call",
            "functionCalls": [
                {"id": "c1", "name": "set_candidate_info", "args": {"name": "Alice", "position": "Backend Engineer"}},
            ],
        })
        info = receive_until(ws, "tool_response")
        output = info["functionResponses"][0]["response"]["output"]
        assert output["candidate_info"]["years_of_experience"] == 2

        detail = client.get(f"/session/{session_id}").json()
        assert detail["state"] == "in_progress"
        assert detail["record"]["candidate"]["name"] == "Alice"
        assert detail["proctor"]["session_active"] is True

        ws.send_json({"type": "ping"})
        receive_until(ws, "pong")


def test_interview_websocket_terminate_reconfigures_agent(client):
    with client.websocket_connect("/ws/interview") as ws:
        receive_until(ws, "session_started")

        ws.send_json({
            "type": "tool_call",
            "functionCalls": [
                {"id": "t1", "name": "proctor_interview", "args": {"action": "terminate", "reason": "Camera turned off"}},
            ],
        })
        reconfigure = receive_until(ws, "reconfigure")
        text = reconfigure["config"]["systemInstruction"]["parts"][0]["text"]
        assert "Camera turned off" in text

        response = receive_until(ws, "tool_response")
        assert response["functionResponses"][0]["response"]["output"]["success"] is True


def test_interview_websocket_forwards_warnings(client):
    with client.websocket_connect("/ws/interview") as ws:
        receive_until(ws, "session_started")

        ws.send_json({
            "type": "tool_call",
            "functionCalls": [
                {"id": "w1", "name": "proctor_interview", "args": {"action": "issue_warning", "reason": "Looking away"}},
            ],
        })
        warning = receive_until(ws, "warning")
        assert warning["data"] == {"reason": "Looking away", "warnings_count": 1}


def test_offer_requires_webrtc_session(client):
    with client.websocket_connect("/ws/interview") as ws:
        session_id = receive_until(ws, "session_started")["data"]["session_id"]

        response = client.post(f"/session/{session_id}/offer", json={"sdp": "v=0", "type": "offer"})

        assert response.status_code == 400
