import asyncio

import pytest

from interview_proctor.core.interfaces import MediaEvent
from interview_proctor.core.store import SessionStore
from interview_proctor.services.monitor import (
    FEED_RESTORED,
    ISSUE_FEED_UNAVAILABLE,
    ISSUE_PLAYBACK_STOPPED,
    ISSUE_TRACK_DISABLED,
    ComplianceMonitor,
)

from conftest import FakeMedia, FakeSink, FakeStream, batch


def actions(store):
    return [entry.action for entry in store.snapshot().proctor_log]


@pytest.mark.asyncio
async def test_start_requires_stream():
    store = SessionStore("m")
    monitor = ComplianceMonitor("m", store, FakeMedia(stream=None), sink=FakeSink())

    assert monitor.start() is False
    assert not monitor.is_active
    assert actions(store) == ["Proctoring failed to start - No camera available"]


@pytest.mark.asyncio
async def test_start_requires_capture_sink():
    store = SessionStore("m")
    monitor = ComplianceMonitor("m", store, FakeMedia(stream=FakeStream()), sink=None)

    assert monitor.start() is False
    assert not monitor.is_active


@pytest.mark.asyncio
async def test_tick_records_changes_once_and_recovery():
    store = SessionStore("m")
    media = FakeMedia(stream=FakeStream())
    sink = FakeSink()
    monitor = ComplianceMonitor("m", store, media, sink=sink, interval=60)
    assert monitor.start() is True

    assert monitor.tick() is None
    media.stream.video_tracks[0].enabled = False
    assert monitor.tick() == ISSUE_TRACK_DISABLED
    assert monitor.tick() == ISSUE_TRACK_DISABLED
    media.stream.video_tracks[0].enabled = True
    assert monitor.tick() is None
    sink.paused = True
    assert monitor.tick() == ISSUE_PLAYBACK_STOPPED
    sink.paused = False
    media.stream = None
    assert monitor.tick() == ISSUE_FEED_UNAVAILABLE

    assert actions(store) == [
        "Proctoring started - Camera connected",
        ISSUE_TRACK_DISABLED,
        FEED_RESTORED,
        ISSUE_PLAYBACK_STOPPED,
        ISSUE_FEED_UNAVAILABLE,
    ]
    await monitor.aclose()


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_detaches_sink():
    store = SessionStore("m")
    sink = FakeSink()
    monitor = ComplianceMonitor("m", store, FakeMedia(stream=FakeStream()), sink=sink, interval=60)

    assert monitor.stop() is False
    monitor.start()
    assert monitor.stop() is True
    assert monitor.stop() is False
    await monitor.aclose()

    assert sink.detached == 1
    assert actions(store).count("Proctoring stopped") == 1


@pytest.mark.asyncio
async def test_inactive_monitor_records_nothing():
    store = SessionStore("m")
    monitor = ComplianceMonitor("m", store, FakeMedia(stream=None), sink=FakeSink())

    assert monitor.tick() == ISSUE_FEED_UNAVAILABLE
    assert actions(store) == []


@pytest.mark.asyncio
async def test_disabled_track_is_seen_within_a_tick():
    store = SessionStore("m")
    media = FakeMedia(stream=FakeStream())
    monitor = ComplianceMonitor("m", store, media, sink=FakeSink(), interval=0.01)
    monitor.start()

    media.stream.video_tracks[0].enabled = False
    await asyncio.sleep(0.1)

    assert monitor.ticks >= 1
    assert ISSUE_TRACK_DISABLED in actions(store)
    await monitor.aclose()


@pytest.mark.asyncio
async def test_monitor_starts_once_across_both_activation_paths(make_session, sink):
    media = FakeMedia(stream=FakeStream())
    session = make_session(media)

    media.emit(MediaEvent.STREAM_STARTED)
    await session.handle_tool_call(batch(("v", "verify_camera", {})))
    media.emit(MediaEvent.STREAM_STARTED)

    assert session.monitor.is_active
    assert len(sink.attached) == 1
    assert session.transport.output("v")["status"] is True
    await session.close()
