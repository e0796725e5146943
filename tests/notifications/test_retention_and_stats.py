from datetime import timedelta

import pytest

from qc_realtime.core.db_defaults import utcnow
from qc_realtime.modules.notifications import (
    DeliveryMetrics,
    Notification,
    NotificationPriority,
)
from qc_realtime.modules.notifications.repository import NotificationRepository


@pytest.fixture
def add_notification(session):
    def _add(user, notification_type="note_shared", *, age=timedelta(0), read_after=None, **kwargs):
        created_at = utcnow() - age
        notification = Notification(
            user_id=user.id,
            couple_id=user.couple_id,
            notification_type=notification_type,
            title=kwargs.pop("title", "Title"),
            body=kwargs.pop("body", "Body"),
            priority=kwargs.pop("priority", NotificationPriority.NORMAL),
            data={},
            notification_metadata=kwargs.pop("metadata", {}),
            is_read=read_after is not None,
            read_at=created_at + read_after if read_after is not None else None,
            created_at=created_at,
        )
        session.add(notification)
        session.commit()
        return notification.id

    return _add


@pytest.mark.asyncio
async def test_cleanup_deletes_old_reads_and_archives_important(
    dispatcher, couple, session, add_notification
):
    old_read = add_notification(couple.alice, age=timedelta(days=41), read_after=timedelta(days=1))
    recent_read = add_notification(couple.alice, age=timedelta(days=11), read_after=timedelta(days=1))
    request = add_notification(couple.alice, "relationship_request", age=timedelta(days=45))
    ancient = add_notification(couple.alice, "milestone_achieved", age=timedelta(days=100))
    unimportant = add_notification(couple.alice, "note_shared", age=timedelta(days=45))
    fresh_milestone = add_notification(couple.bob, "milestone_achieved", age=timedelta(days=5))

    result = await dispatcher.cleanup_old_notifications()

    session.expire_all()
    remaining = {n.id: n for n in session.query(Notification).all()}
    assert old_read not in remaining
    assert recent_read in remaining
    assert remaining[request].notification_metadata["archived"] is True
    assert "archived_at" in remaining[request].notification_metadata
    for untouched in (ancient, unimportant, fresh_milestone):
        assert "archived" not in remaining[untouched].notification_metadata
    assert result == {"deleted": 1, "archived": 1}


@pytest.mark.asyncio
async def test_cleanup_passes_are_independent(dispatcher, couple, session, add_notification):
    # Read 40 days ago: the delete pass removes it before the archive pass runs.
    read_request = add_notification(
        couple.alice,
        "relationship_accepted",
        age=timedelta(days=60),
        read_after=timedelta(days=20),
    )

    result = await dispatcher.cleanup_old_notifications()

    session.expire_all()
    assert session.get(Notification, read_request) is None
    assert result == {"deleted": 1, "archived": 0}


@pytest.mark.asyncio
async def test_user_stats(dispatcher, couple, add_notification):
    add_notification(couple.alice, "note_shared", read_after=timedelta(seconds=30))
    add_notification(couple.alice, "note_shared", age=timedelta(days=2), read_after=timedelta(seconds=90))
    add_notification(couple.alice, "check_in_reminder", priority=NotificationPriority.URGENT)
    add_notification(couple.alice, "weekly_summary", age=timedelta(days=10))
    add_notification(couple.bob, "note_shared")

    stats = await dispatcher.get_user_stats(couple.alice)

    assert stats["total"] == 4
    assert stats["unread"] == 2
    assert stats["high_priority_unread"] == 1
    assert stats["this_week"] == 3
    assert stats["today"] == 2
    assert stats["by_type"] == {"note_shared": 2, "check_in_reminder": 1, "weekly_summary": 1}
    assert stats["average_read_time"] == 60


@pytest.mark.asyncio
async def test_user_stats_without_reads(dispatcher, couple):
    stats = await dispatcher.get_user_stats(couple.bob)

    assert stats["total"] == 0
    assert stats["by_type"] == {}
    assert stats["average_read_time"] == 0


@pytest.mark.asyncio
async def test_delivery_metrics_snapshot(dispatcher, couple, services, add_notification):
    add_notification(couple.alice, metadata={"delivery_failed": True})
    add_notification(couple.alice, age=timedelta(days=2), metadata={"delivery_failed": True})
    services.batch_processor.add(123)
    services.metrics.track("sent", "note_shared")

    metrics = await dispatcher.get_delivery_metrics()

    assert metrics["failed_today"] == 1
    assert metrics["queue_size"] == 1
    assert metrics["sent_note_shared"] == 1
    assert metrics["sent_total"] == 1



def test_failed_count_only_matches_flagged_rows(session, couple, add_notification):
    add_notification(couple.alice, metadata={"delivery_failed": True})
    add_notification(couple.bob, metadata={"delivery_failed": True, "failed_at": "x"})
    add_notification(couple.alice, metadata={"delivery_failed": False})
    add_notification(couple.alice, metadata={"delivered_at": "y"})
    add_notification(couple.alice, age=timedelta(hours=30), metadata={"delivery_failed": True})

    repository = NotificationRepository(session)

    assert repository.count_failed_since(utcnow() - timedelta(hours=1)) == 2
    assert repository.count_failed_since(utcnow() - timedelta(days=2)) == 3
    assert repository.count_failed_since(utcnow() + timedelta(hours=1)) == 0

def test_delivery_metrics_counters():
    metrics = DeliveryMetrics()

    metrics.track("sent", "note_shared")
    metrics.track("sent", "weekly_summary")
    metrics.track_count("bulk_sent", 2)
    metrics.track_count("bulk_sent", 1)

    assert metrics.snapshot() == {
        "sent_note_shared": 1,
        "sent_weekly_summary": 1,
        "sent_total": 2,
        "bulk_sent": 3,
        "bulk_sent_total": 2,
    }
    metrics.reset()
    assert metrics.get("sent_total") == 0
