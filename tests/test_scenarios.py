import pytest

from interview_proctor.core.interfaces import MediaEvent
from interview_proctor.core.state_machine import InterviewState

from conftest import FakeTransport, batch


async def call(session, tool, cid="c1", **args):
    await session.handle_tool_call(batch((cid, tool, args)))
    return session.transport.output(cid)


def audit(session):
    return [entry.action for entry in session.store.snapshot().proctor_log]


@pytest.mark.asyncio
async def test_candidate_registration(make_session, live_media):
    session = make_session(live_media)

    await call(session, "set_candidate_info", name="Alice", position="Backend Engineer")

    assert session.store.snapshot().candidate.to_dict() == {
        "name": "Alice", "position": "Backend Engineer", "years_of_experience": 2,
    }


@pytest.mark.asyncio
async def test_camera_check_without_stream(make_session, no_media):
    session = make_session(no_media)
    assert session.proctor.camera_attempts == 0

    out = await call(session, "verify_camera")

    assert out["status"] is False
    assert "Camera access not granted" in out["message"]
    assert session.proctor.camera_attempts == 1


@pytest.mark.asyncio
async def test_terminate_for_camera_turned_off(make_session, live_media):
    session = make_session(live_media)
    await call(session, "verify_camera", cid="v")
    assert session.monitor.is_active

    out = await call(session, "proctor_interview", cid="t", action="terminate", reason="Camera turned off")

    progress = session.store.snapshot().progress
    assert out["success"] is True
    assert not session.monitor.is_active
    assert progress.is_complete is True
    assert progress.termination_reason == "Camera turned off"
    assert progress.end_time is not None
    assert session.proctor.is_terminated is True
    assert session.state == InterviewState.TERMINATED
    assert "Interview terminated: Camera turned off" in audit(session)

    configs = session.transport.configs
    assert len(configs) == 1
    assert (
        'The interview has been terminated for the following reason: "Camera turned off"'
        in configs[0].system_instruction
    )
    assert {d["name"] for d in configs[0].function_declarations} >= {"proctor_interview", "store_qa"}
    await session.close()


@pytest.mark.asyncio
async def test_second_terminate_does_not_reconfigure_again(make_session, live_media):
    session = make_session(live_media)
    await call(session, "proctor_interview", cid="t1", action="terminate", reason="Phone in view")

    out = await call(session, "proctor_interview", cid="t2", action="terminate", reason="Again")

    assert out["success"] is True
    assert len(session.transport.configs) == 1
    assert session.store.snapshot().progress.termination_reason == "Phone in view"


@pytest.mark.asyncio
async def test_terminate_without_reason_changes_nothing(make_session, live_media):
    session = make_session(live_media)

    out = await call(session, "proctor_interview", action="terminate")

    assert out["success"] is False
    assert session.store.snapshot().progress.is_complete is None
    assert session.proctor.is_terminated is False
    assert session.transport.configs == []


@pytest.mark.asyncio
async def test_complete_interview_after_125_seconds(make_session, live_media, clock):
    session = make_session(live_media)
    clock.advance(125)

    out = await call(
        session,
        "complete_interview",
        technical_score=8,
        sentiment_analysis={"confidence": {"score": 7}},
        recommendation={"hire": True, "level": "Mid", "notes": "solid"},
    )

    snap = session.store.snapshot()
    assert snap.progress.is_complete is True
    assert snap.progress.duration_seconds == pytest.approx(125)
    assert snap.technical_evaluation.overall_score == 8
    assert snap.technical_evaluation.recommendation["hire"] is True
    assert snap.final_evaluation.technical_score == 8
    assert snap.session.duration == pytest.approx(125)

    assert out["completed"] is True
    assert out["duration"] == 125
    assert out["final_report"]["final_evaluation"]["technical_score"] == 8
    assert out["final_report"]["candidate"]["name"] == ""
    assert session.state == InterviewState.COMPLETED


@pytest.mark.asyncio
async def test_complete_interview_falls_back_to_accumulated_score(make_session, live_media):
    session = make_session(live_media)
    await session.handle_tool_call(batch(
        ("q1", "store_qa", {"question": "q1", "answer": "a", "evaluation": {"score": 9}}),
        ("q2", "store_qa", {"question": "q2", "answer": "a", "evaluation": {"score": 5}}),
    ))

    await call(session, "complete_interview", cid="done", technical_score="eight")

    assert session.store.snapshot().technical_evaluation.overall_score == 7


@pytest.mark.asyncio
async def test_termination_after_completion_keeps_final_record(make_session, live_media):
    session = make_session(live_media)
    await call(session, "complete_interview", cid="done", technical_score=6)

    await call(session, "proctor_interview", cid="t", action="terminate", reason="Late violation")

    progress = session.store.snapshot().progress
    assert progress.is_complete is True
    assert progress.termination_reason is None
    assert session.proctor.is_terminated is True
    assert session.state == InterviewState.COMPLETED


@pytest.mark.asyncio
async def test_track_ended_is_audited_but_left_to_the_agent(make_session, live_media):
    session = make_session(live_media)
    await call(session, "verify_camera")

    live_media.emit(MediaEvent.TRACK_ENDED)

    assert "Camera disabled or disconnected" in audit(session)
    assert session.proctor.is_terminated is False
    await session.close()


@pytest.mark.asyncio
async def test_track_ended_can_terminate_automatically(make_session, live_media):
    session = make_session(live_media, auto_terminate=True)
    await call(session, "verify_camera")

    live_media.emit(MediaEvent.TRACK_ENDED)

    assert session.proctor.is_terminated is True
    assert session.store.snapshot().progress.termination_reason == "Camera turned off"
    await session.close()


@pytest.mark.asyncio
async def test_track_ended_before_proctoring_is_ignored(make_session, live_media):
    session = make_session(live_media)

    live_media.emit(MediaEvent.TRACK_ENDED)

    assert audit(session) == []


def test_session_accepts_a_single_transport(make_session, live_media):
    session = make_session(live_media)

    with pytest.raises(RuntimeError):
        session.attach(FakeTransport())

    session.detach()
    session.attach(FakeTransport())
    assert session.transport is not None


def test_sessions_do_not_share_state(make_session, live_media, no_media):
    first = make_session(live_media)
    second = make_session(no_media)

    first.proctor.warnings.append("x")
    first.store.log("only first")

    assert second.proctor.warnings == []
    assert second.store.snapshot().proctor_log == []


@pytest.mark.asyncio
async def test_answer_stored_before_termination_in_same_batch(make_session, live_media):
    session = make_session(live_media)

    await session.handle_tool_call(batch(
        ("q1", "store_qa", {"question": "What is a generator?", "answer": "...", "evaluation": {"score": 7}}),
        ("t1", "proctor_interview", {"action": "terminate", "reason": "Camera turned off"}),
    ))

    stored = session.transport.output("q1")
    assert stored["stored"] is True
    assert stored["qa_count"] == 1
    assert session.transport.output("t1")["success"] is True

    snap = session.store.snapshot()
    assert len(snap.qa_history) == 1
    assert snap.progress.termination_reason == "Camera turned off"
    assert session.state == InterviewState.TERMINATED


@pytest.mark.asyncio
async def test_completion_recorded_before_termination_in_same_batch(make_session, live_media):
    session = make_session(live_media)

    await session.handle_tool_call(batch(
        ("c1", "complete_interview", {"technical_score": 8}),
        ("t1", "proctor_interview", {"action": "terminate", "reason": "Candidate left"}),
    ))

    assert session.transport.output("c1")["completed"] is True
    snap = session.store.snapshot()
    assert snap.final_evaluation is not None
    assert snap.technical_evaluation.overall_score == 8
    assert session.state == InterviewState.COMPLETED
