import pytest

from qc_realtime.modules.notifications import Notification, RetryCoordinator, SendOptions
from qc_realtime.modules.notifications.repository import NotificationRepository
from tests.fakes import FailingBroadcaster, RecordingJobRunner


@pytest.fixture
def broadcaster():
    return FailingBroadcaster()


@pytest.mark.asyncio
async def test_four_failures_schedule_exactly_three_retries(
    dispatcher, couple, session, job_runner, services
):
    notification = await dispatcher.send(
        couple.alice,
        "check_in_reminder",
        "Check in",
        "Starting now",
        SendOptions(priority="urgent"),
    )

    # Fire every scheduled job the way the worker would.
    fired = 0
    while fired < len(job_runner.scheduled):
        _, notification_id, attempt = job_runner.scheduled[fired]
        assert await dispatcher.redeliver(notification_id, attempt) is False
        fired += 1

    assert [(delay, attempt) for delay, _, attempt in job_runner.scheduled] == [
        (5, 1),
        (30, 2),
        (120, 3),
    ]
    session.expire_all()
    stored = session.get(Notification, notification.id)
    assert stored.notification_metadata["delivery_failed"] is True
    assert stored.notification_metadata["retry_attempts"] == 3
    assert "socket closed" in stored.notification_metadata["delivery_error"]
    assert services.metrics.get("failed_total") == 4


@pytest.mark.asyncio
async def test_failed_normal_priority_is_not_retried(dispatcher, couple, job_runner, services):
    notification = await dispatcher.send(couple.alice, "note_shared", "Note", "Body")

    assert notification.delivery_failed is True
    assert job_runner.scheduled == []
    assert services.metrics.get("failed_note_shared") == 1
    assert services.metrics.get("delivered_total") == 0


@pytest.mark.asyncio
async def test_failures_are_counted_in_failed_today(dispatcher, couple):
    await dispatcher.send(couple.alice, "note_shared", "Note", "Body")
    await dispatcher.send(couple.bob, "note_shared", "Note", "Body")

    metrics = await dispatcher.get_delivery_metrics()

    assert metrics["failed_today"] == 2
    assert metrics["failed_total"] == 2


@pytest.mark.asyncio
async def test_retry_writes_metadata_and_stops_at_bound(dispatcher, couple, session):
    notification = await dispatcher.send(couple.alice, "note_shared", "Note", "Body")
    runner = RecordingJobRunner()
    coordinator = RetryCoordinator(NotificationRepository(session), runner, (1, 2, 3))

    assert coordinator.retry(notification, 0) is True
    assert notification.notification_metadata["retry_attempts"] == 1
    assert "next_retry_at" in notification.notification_metadata
    assert coordinator.retry(notification, 3) is False
    assert coordinator.retry(notification, 7) is False
    assert runner.scheduled == [(1, notification.id, 1)]
