import asyncio
import inspect

import pytest

from interview_proctor.core.models import AgentConfig, FunctionResponse
from interview_proctor.core.tools import STORE_QA
from interview_proctor.media.reported import ReportedMediaSource
from interview_proctor.transport.agent import AgentTransport, tool_signature
from interview_proctor.transport.websocket import WebSocketTransport


@pytest.mark.asyncio
async def test_websocket_transport_delivers_batches_and_writes_in_order():
    written = []

    async def send(message):
        written.append(message)

    transport = WebSocketTransport("ws", send=send)
    transport.start()
    received = []

    async def handler(batch):
        received.append(batch.names)
        transport.send_tool_response([
            FunctionResponse(id=c.id, name=c.name, output={"ok": True}) for c in batch.function_calls
        ])

    transport.subscribe(handler)
    transport.handle_tool_call({"type": "tool_call", "functionCalls": [{"id": "1", "name": "store_qa", "args": {}}]})
    await transport.drain()
    transport.reconfigure(AgentConfig(model="m", system_instruction="bye"))
    await asyncio.sleep(0.05)

    assert received == [["store_qa"]]
    assert [m["type"] for m in written] == ["tool_response", "reconfigure"]
    assert written[0]["functionResponses"] == [
        {"id": "1", "name": "store_qa", "response": {"output": {"ok": True}}}
    ]
    assert written[1]["config"]["systemInstruction"] == {"parts": [{"text": "bye"}]}
    await transport.close()


@pytest.mark.asyncio
async def test_websocket_transport_survives_send_failures():
    calls = []

    async def send(message):
        calls.append(message)
        if len(calls) == 1:
            raise ConnectionError("socket gone")

    transport = WebSocketTransport("ws", send=send)
    transport.start()
    transport.post({"type": "pong"})
    transport.post({"type": "pong"})
    await asyncio.sleep(0.05)

    assert len(calls) == 2
    assert transport.messages_sent == 1
    await transport.close()


def test_transport_allows_one_subscriber():
    transport = WebSocketTransport("ws", send=None)

    async def handler(batch):
        return None

    unsubscribe = transport.subscribe(handler)
    with pytest.raises(RuntimeError):
        transport.subscribe(handler)
    unsubscribe()
    transport.subscribe(handler)


def test_tool_signature_mirrors_declaration():
    sig = tool_signature(STORE_QA)

    assert list(sig.parameters) == ["question", "answer", "evaluation"]
    assert all(p.kind is inspect.Parameter.KEYWORD_ONLY for p in sig.parameters.values())
    assert sig.parameters["question"].annotation is str
    assert sig.parameters["evaluation"].annotation is dict
    assert sig.parameters["answer"].default is inspect.Parameter.empty


@pytest.mark.asyncio
async def test_agent_transport_resolves_calls_with_session_responses():
    transport = AgentTransport("ag", ReportedMediaSource("ag"))

    async def handler(batch):
        call = batch.function_calls[0]
        transport.send_tool_response([
            FunctionResponse(id=call.id, name=call.name, output={"status": True, "args": call.args})
        ])

    transport.subscribe(handler)
    result = await transport.call_tool("verify_camera", {"status": True})

    assert result == {"status": True, "args": {"status": True}}
    await transport.close()


@pytest.mark.asyncio
async def test_agent_transport_without_session_fails_softly():
    transport = AgentTransport("ag", ReportedMediaSource("ag"))

    result = await transport.call_tool("store_qa", {})

    assert result["success"] is False


class _FakeLLM:
    def __init__(self):
        self.functions = {}

    def register_function(self, name=None, description=""):
        def _decorator(fn):
            self.functions[name or fn.__name__] = (fn, description)
            return fn
        return _decorator


def test_agent_transport_registers_every_tool():
    transport = AgentTransport("ag", ReportedMediaSource("ag"))
    llm = _FakeLLM()

    names = transport.register_tools(llm)

    assert set(names) == {
        "render_altair", "proctor_interview", "set_candidate_info",
        "store_qa", "verify_camera", "complete_interview",
    }
    fn, description = llm.functions["proctor_interview"]
    assert "reason" in inspect.signature(fn).parameters
    assert description
