"""Minute-level scheduler that triggers the per-clinic jobs."""

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_confirm.config import Settings
from clinic_confirm.jobs.confirmation_jobs import ConfirmationJobs
from clinic_confirm.notifications.email import EmailSender
from clinic_confirm.notifications.sms import SmsSender
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.notification_service import NotificationService
from clinic_confirm.services.time_windows import local_now

logger = structlog.get_logger(__name__)

CONFIRM_REQUEST_MINUTE = 5
AUTO_CANCEL_MINUTE = 1
TICK_JOB_ID = "confirmation_tick"


def is_confirm_request_time(clinic: Mapping[str, Any], now_local: datetime) -> bool:
    """True at ``export_hour:05`` clinic-local."""
    return now_local.hour == clinic["export_hour"] and now_local.minute == CONFIRM_REQUEST_MINUTE


def is_auto_cancel_time(clinic: Mapping[str, Any], now_local: datetime) -> bool:
    """True at ``deadline_hour:01`` clinic-local."""
    return now_local.hour == clinic["deadline_hour"] and now_local.minute == AUTO_CANCEL_MINUTE


class JobOrchestrator:
    """
    Runs the confirm-request and auto-cancel jobs when each clinic's hour comes.

    Ticks never overlap: the guard lock belongs to this instance, and a tick
    that finds it held returns immediately instead of waiting.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sms_sender: SmsSender,
        email_sender: EmailSender,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.settings = settings
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None

    def _jobs(self, db: AsyncSession) -> ConfirmationJobs:
        notifications = NotificationService(
            db,
            self.sms_sender,
            self.email_sender,
            app_base_url=self.settings.app_base_url,
            send_confirmed_ack=self.settings.send_confirmed_ack,
        )
        return ConfirmationJobs(db, notifications)

    async def tick(self, now: datetime | None = None) -> bool:
        """
        Run one scheduler tick.

        Args:
            now: Reference instant (aware), defaults to the current time

        Returns:
            False if another tick was still running, True otherwise
        """
        if self._lock.locked():
            logger.info("scheduler_tick_skipped_in_flight")
            return False

        async with self._lock:
            now = now or datetime.now(UTC)

            async with self.session_factory() as db:
                clinic_rows = await ClinicService(db).list_clinics()

            for clinic in clinic_rows:
                await self._run_clinic(clinic, now)

        return True

    async def _run_clinic(self, clinic: Mapping[str, Any], now: datetime) -> None:
        clinic_id = str(clinic["id"])
        async with self.session_factory() as db:
            try:
                now_local = local_now(clinic["timezone"], now)

                if is_confirm_request_time(clinic, now_local):
                    logger.info("confirm_request_job_started", clinic_id=clinic_id)
                    await self._jobs(db).run_confirm_requests(clinic, now)

                if is_auto_cancel_time(clinic, now_local):
                    logger.info("auto_cancel_job_started", clinic_id=clinic_id)
                    await self._jobs(db).run_auto_cancel(clinic, now)
            except Exception as e:
                await db.rollback()
                logger.exception("clinic_jobs_failed", clinic_id=clinic_id, error=str(e))

    def start(self) -> None:
        """Register the tick on a per-minute cron trigger and start it."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.add_job(
            self.tick,
            trigger=CronTrigger(minute="*", timezone=UTC),
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("scheduler_started", interval="1m")

    def shutdown(self) -> None:
        """Stop the background scheduler if it is running."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")
