import pytest

from interview_proctor.core.store import SessionStore
from interview_proctor.services.dispatcher import ToolCallDispatcher
from interview_proctor.services.handlers import ResponseStyle, ToolRoute

from conftest import batch


def _dispatcher(store, sent, handlers):
    routes = {name: ToolRoute(name, fn, style) for name, (fn, style) in handlers.items()}
    return ToolCallDispatcher("s1", store, routes, send=sent.append, settle_delay=0)


def _rename(store):
    def handler(args):
        def _set(draft):
            draft.candidate.name = args["name"]
        store.apply(_set)
        return lambda snap: {"seen_name": snap.candidate.name}
    return handler


def _peek(store):
    return lambda args: {"name": store.snapshot().candidate.name}


@pytest.mark.asyncio
async def test_deferred_responses_share_one_post_batch_snapshot():
    store = SessionStore("s1")
    sent = []
    dispatcher = _dispatcher(store, sent, {
        "rename": (_rename(store), ResponseStyle.DEFERRED),
    })

    await dispatcher.handle(batch(
        ("a", "rename", {"name": "first"}),
        ("b", "rename", {"name": "second"}),
    ))

    assert len(sent) == 1
    outputs = {r.id: r.output for r in sent[0]}
    assert outputs["a"]["seen_name"] == "second"
    assert outputs["b"]["seen_name"] == "second"
    assert outputs["a"]["success"] is True
    assert outputs["a"]["state"]["candidate"]["name"] == "second"
    assert outputs["a"]["state"]["session_info"] == {
        "qa_count": 0,
        "current_category": "Python_Fundamentals",
        "questions_remaining": 15,
    }


@pytest.mark.asyncio
async def test_effects_apply_in_batch_order_and_immediate_answers_precede_flush():
    store = SessionStore("s1")
    sent = []
    dispatcher = _dispatcher(store, sent, {
        "rename": (_rename(store), ResponseStyle.DEFERRED),
        "peek": (_peek(store), ResponseStyle.IMMEDIATE),
    })

    await dispatcher.handle(batch(
        ("a", "rename", {"name": "Alice"}),
        ("b", "peek", {}),
        ("c", "rename", {"name": "Carol"}),
    ))

    assert [[r.id for r in group] for group in sent] == [["b"], ["a", "c"]]
    assert sent[0][0].output == {"name": "Alice"}
    assert sent[1][0].output["seen_name"] == "Carol"


@pytest.mark.asyncio
async def test_unknown_tool_is_answered_and_store_untouched():
    store = SessionStore("s1")
    sent = []
    dispatcher = _dispatcher(store, sent, {})

    responses = await dispatcher.handle(batch(("x", "launch_rockets", {})))

    assert responses[0].output == {"success": False, "message": "Unknown action: launch_rockets"}
    assert store.revision == 0


@pytest.mark.asyncio
async def test_every_call_is_answered_exactly_once_even_when_a_handler_raises():
    store = SessionStore("s1")
    sent = []

    def _broken(args):
        raise KeyError("boom")

    dispatcher = _dispatcher(store, sent, {
        "rename": (_rename(store), ResponseStyle.DEFERRED),
        "broken": (_broken, ResponseStyle.DEFERRED),
        "peek": (_peek(store), ResponseStyle.IMMEDIATE),
    })

    await dispatcher.handle(batch(
        ("1", "rename", {"name": "n"}),
        ("2", "broken", {}),
        ("3", "peek", {}),
        ("4", "nope", {}),
    ))

    ids = [r.id for group in sent for r in group]
    assert sorted(ids) == ["1", "2", "3", "4"]
    broken = next(r for group in sent for r in group if r.id == "2")
    assert broken.output["success"] is False
