import pytest

from qc_realtime.modules.presence import TypingIndicatorManager
from tests.fakes import FailingBroadcaster


def _typing_events(broadcaster, is_typing):
    return [
        (topic, payload)
        for topic, payload in broadcaster.of_type("typing_indicator")
        if payload["is_typing"] is is_typing
    ]


@pytest.mark.asyncio
async def test_start_typing_notifies_partner_only(services, couple, broadcaster):
    await services.typing.start_typing(couple.alice, "note", 42)

    started = _typing_events(broadcaster, True)
    assert len(started) == 1
    topic, payload = started[0]
    assert topic == f"user:{couple.bob.id}"
    assert payload["user_id"] == couple.alice.id
    assert payload["user_name"] == "Alice"
    assert payload["context"] == "note"
    assert payload["context_id"] == "42"
    assert services.typing.is_typing(couple.alice.id)


@pytest.mark.asyncio
async def test_double_start_arms_exactly_one_expiry(services, couple, scheduler, broadcaster):
    await services.typing.start_typing(couple.alice, "note", 1)
    await services.typing.start_typing(couple.alice, "note", 1)

    assert len(scheduler.pending_handles) == 1
    assert services.typing.active_count == 1

    await scheduler.advance(3)

    assert len(_typing_events(broadcaster, False)) == 1
    assert services.typing.is_typing(couple.alice.id) is False


@pytest.mark.asyncio
async def test_restart_extends_the_expiry_window(services, couple, scheduler, broadcaster):
    await services.typing.start_typing(couple.alice, "note", 1)
    await scheduler.advance(2)
    await services.typing.start_typing(couple.alice, "note", 1)
    await scheduler.advance(2)

    assert _typing_events(broadcaster, False) == []
    assert services.typing.is_typing(couple.alice.id)

    await scheduler.advance(1)
    assert len(_typing_events(broadcaster, False)) == 1


@pytest.mark.asyncio
async def test_stop_typing_cancels_pending_expiry(services, couple, scheduler, broadcaster):
    await services.typing.start_typing(couple.alice, "note", 1)
    handle = scheduler.pending_handles[0]

    removed = await services.typing.stop_typing(couple.alice.id, "note", 1)
    await scheduler.advance(5)

    assert removed is True
    assert handle.cancelled
    stops = _typing_events(broadcaster, False)
    assert len(stops) == 1
    assert stops[0][0] == f"user:{couple.bob.id}"


@pytest.mark.asyncio
async def test_contexts_are_independent(services, couple, scheduler):
    await services.typing.start_typing(couple.alice, "note", 1)
    await services.typing.start_typing(couple.alice, "check_in", 1)
    await services.typing.start_typing(couple.alice, "note", 2)

    assert services.typing.active_count == 3
    assert len(scheduler.pending_handles) == 3

    await services.typing.stop_typing(couple.alice.id, "note", 1)

    assert services.typing.get_state(couple.alice.id, "note", 1) is None
    assert services.typing.get_state(couple.alice.id, "check_in", 1) is not None
    assert services.typing.get_state(couple.alice.id, "note", 2) is not None


@pytest.mark.asyncio
async def test_user_without_partner_is_tracked_silently(services, make_user, broadcaster):
    loner = make_user("Solo")

    await services.typing.start_typing(loner, "note", 1)

    assert services.typing.is_typing(loner.id)
    assert broadcaster.events == []


@pytest.mark.asyncio
async def test_stop_without_state_uses_explicit_partner(services, couple, broadcaster):
    removed = await services.typing.stop_typing(
        couple.alice.id, "note", 9, partner_id=couple.bob.id, user_name="Alice"
    )

    assert removed is False
    stops = _typing_events(broadcaster, False)
    assert [topic for topic, _ in stops] == [f"user:{couple.bob.id}"]


@pytest.mark.asyncio
async def test_clear_user_drops_states_without_broadcast(services, couple, scheduler, broadcaster):
    await services.typing.start_typing(couple.alice, "note", 1)
    await services.typing.start_typing(couple.bob, "note", 1)
    broadcaster.events.clear()

    cleared = services.typing.clear_user(couple.alice.id)

    assert cleared == 1
    assert broadcaster.events == []
    assert services.typing.is_typing(couple.bob.id)
    await scheduler.advance(3)
    assert [topic for topic, _ in _typing_events(broadcaster, False)] == [
        f"user:{couple.alice.id}"
    ]


@pytest.mark.asyncio
async def test_broadcast_failure_keeps_state(couple, scheduler):
    typing = TypingIndicatorManager(FailingBroadcaster(), scheduler, timeout_seconds=3)

    await typing.start_typing(couple.alice, "note", 1)

    assert typing.is_typing(couple.alice.id)
    assert len(scheduler.pending_handles) == 1
