from typing import Any, Callable, Dict, List, Optional

import pytest

from interview_proctor.core.interfaces import MediaEvent, MediaListener, Unsubscribe
from interview_proctor.core.models import AgentConfig, FunctionCall, FunctionResponse, ToolCallBatch
from interview_proctor.services.session import InterviewSession
from interview_proctor.transport.base import BaseTransport

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTrack:
    def __init__(self, enabled: bool = True, ready_state: str = "live"):
        self.enabled = enabled
        self.ready_state = ready_state


class FakeStream:
    def __init__(self, tracks: Optional[List[FakeTrack]] = None):
        self.video_tracks = tracks if tracks is not None else [FakeTrack()]


class FakeMedia:
    def __init__(self, stream: Optional[FakeStream] = None, streaming: bool = True):
        self.stream = stream
        self.streaming = streaming
        self.listeners: List[MediaListener] = []

    def get_stream(self):
        return self.stream

    def is_streaming(self) -> bool:
        return self.streaming

    def subscribe(self, listener: MediaListener) -> Unsubscribe:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, event: MediaEvent) -> None:
        for listener in list(self.listeners):
            listener(event)


class FakeSink:
    def __init__(self):
        self.attached: List[Any] = []
        self.detached = 0
        self.paused = False
        self.ended = False

    def attach(self, stream: Any) -> None:
        self.attached.append(stream)

    def detach(self) -> None:
        self.detached += 1


class FakeTransport(BaseTransport):
    def __init__(self, session_id: str = "test"):
        super().__init__(session_id)
        self.sent: List[List[FunctionResponse]] = []
        self.configs: List[AgentConfig] = []

    def send_tool_response(self, responses: List[FunctionResponse]) -> None:
        self.sent.append(list(responses))

    def reconfigure(self, config: AgentConfig) -> None:
        self.configs.append(config)

    @property
    def responses(self) -> List[FunctionResponse]:
        return [r for group in self.sent for r in group]

    def output(self, call_id: str) -> Dict[str, Any]:
        return next(r.output for r in self.responses if r.id == call_id)


def batch(*calls: Any) -> ToolCallBatch:
    """batch(("id", "name", {args}), ...)"""
    return ToolCallBatch(function_calls=[
        FunctionCall(id=cid, name=name, args=dict(args)) for cid, name, args in calls
    ])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def live_media() -> FakeMedia:
    return FakeMedia(stream=FakeStream())


@pytest.fixture
def no_media() -> FakeMedia:
    return FakeMedia(stream=None, streaming=False)


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def make_session(clock: FakeClock, sink: FakeSink) -> Callable[..., InterviewSession]:
    def _make(media: Any, with_transport: bool = True, **kwargs: Any) -> InterviewSession:
        kwargs.setdefault("sink", sink)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("settle_delay", 0)
        kwargs.setdefault("monitor_interval", 0.01)
        kwargs.setdefault("auto_terminate", False)
        session = InterviewSession(media=media, session_id="test", **kwargs)
        if with_transport:
            session.attach(FakeTransport())
        return session

    return _make
