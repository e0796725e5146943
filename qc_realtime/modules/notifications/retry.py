"""Bounded fixed-schedule retries for failed high-priority deliveries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Sequence

from qc_realtime.core.db_defaults import utcnow

from .common import logger
from .repository import NotificationRepository

DEFAULT_RETRY_DELAYS = (5, 30, 120)


class JobRunner(ABC):
    """Out-of-process deferred execution of a redelivery attempt."""

    @abstractmethod
    def schedule_once(self, delay: float, notification_id: int, attempt: int) -> None:
        ...


class CeleryJobRunner(JobRunner):
    def schedule_once(self, delay: float, notification_id: int, attempt: int) -> None:
        from qc_realtime.celery_worker import redeliver_notification

        redeliver_notification.apply_async(
            args=[notification_id, attempt], countdown=delay
        )


class RetryCoordinator:
    """Schedules redelivery attempts ``1..len(delays)``; later requests are no-ops.

    Armed retries are never cancelled.
    """

    def __init__(
        self,
        repository: NotificationRepository,
        job_runner: JobRunner,
        delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
    ) -> None:
        self.repository = repository
        self.job_runner = job_runner
        self.delays = tuple(delays)

    @property
    def max_retries(self) -> int:
        return len(self.delays)

    def retry(self, notification, attempt: int = 0) -> bool:
        if attempt >= self.max_retries:
            logger.warning(
                "Notification %s exhausted %s retries; giving up",
                notification.id,
                self.max_retries,
            )
            return False

        delay = self.delays[attempt]
        next_attempt = attempt + 1
        self.job_runner.schedule_once(delay, notification.id, next_attempt)
        notification.update_metadata(
            retry_attempts=next_attempt,
            next_retry_at=(utcnow() + timedelta(seconds=delay)).isoformat(),
        )
        self.repository.commit()
        logger.info(
            "Scheduled retry %s for notification %s in %ss",
            next_attempt,
            notification.id,
            delay,
        )
        return True


__all__ = ["JobRunner", "CeleryJobRunner", "RetryCoordinator", "DEFAULT_RETRY_DELAYS"]
