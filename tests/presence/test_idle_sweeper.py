from datetime import timedelta

import pytest

from qc_realtime.core.db_defaults import utcnow
from qc_realtime.modules.presence import PresenceRecord, PresenceStatus


async def _set_presence(tracker, session, user, status, idle):
    await tracker.go_online(user)
    record = session.query(PresenceRecord).filter_by(user_id=user.id).one()
    record.status = status
    record.last_activity_at = utcnow() - idle
    session.commit()
    return record


def _status(session, user):
    session.expire_all()
    return session.query(PresenceRecord).filter_by(user_id=user.id).one().status


@pytest.mark.asyncio
async def test_three_minutes_idle_becomes_away(services, session, tracker, couple):
    await _set_presence(
        tracker, session, couple.alice, PresenceStatus.ONLINE, timedelta(minutes=3)
    )

    demoted = await services.sweeper(session).check_idle_users()

    assert demoted == 1
    assert _status(session, couple.alice) == PresenceStatus.AWAY


@pytest.mark.asyncio
@pytest.mark.parametrize("prior", [PresenceStatus.ONLINE, PresenceStatus.AWAY])
async def test_six_minutes_idle_becomes_stepped_away(
    services, session, tracker, couple, prior
):
    await _set_presence(tracker, session, couple.alice, prior, timedelta(minutes=6))

    demoted = await services.sweeper(session).check_idle_users()

    assert demoted == 1
    assert _status(session, couple.alice) == PresenceStatus.STEPPED_AWAY


@pytest.mark.asyncio
async def test_recent_activity_and_settled_states_are_left_alone(
    services, session, tracker, couple, make_user
):
    carol = make_user("Carol")
    dave = make_user("Dave")
    await _set_presence(
        tracker, session, couple.alice, PresenceStatus.ONLINE, timedelta(minutes=1)
    )
    await _set_presence(
        tracker, session, couple.bob, PresenceStatus.AWAY, timedelta(minutes=3)
    )
    await _set_presence(
        tracker, session, carol, PresenceStatus.OFFLINE, timedelta(minutes=30)
    )
    await _set_presence(
        tracker, session, dave, PresenceStatus.STEPPED_AWAY, timedelta(minutes=30)
    )

    demoted = await services.sweeper(session).check_idle_users()

    assert demoted == 0
    assert _status(session, couple.alice) == PresenceStatus.ONLINE
    assert _status(session, couple.bob) == PresenceStatus.AWAY
    assert _status(session, carol) == PresenceStatus.OFFLINE
    assert _status(session, dave) == PresenceStatus.STEPPED_AWAY


@pytest.mark.asyncio
async def test_demotion_broadcasts_status_change(
    services, session, tracker, couple, broadcaster, presence_cache
):
    await _set_presence(
        tracker, session, couple.alice, PresenceStatus.ONLINE, timedelta(minutes=6)
    )
    broadcaster.events.clear()

    await services.sweeper(session).check_idle_users()

    changes = broadcaster.of_type("status_changed")
    assert [topic for topic, _ in changes] == [
        f"user:{couple.alice.id}",
        f"couple:{couple.couple.id}",
    ]
    payload = changes[0][1]
    assert payload["status"] == "stepped_away"
    assert payload["reason"] == "extended_idle"
    assert presence_cache.store[couple.alice.id]["status"] == "stepped_away"
    assert presence_cache.store[couple.alice.id]["current_activity"] == "stepped_away"


@pytest.mark.asyncio
async def test_container_entry_point_uses_its_own_session(services, session, tracker, couple):
    await _set_presence(
        tracker, session, couple.alice, PresenceStatus.ONLINE, timedelta(minutes=3)
    )

    assert await services.check_idle_users() == 1
    assert _status(session, couple.alice) == PresenceStatus.AWAY
