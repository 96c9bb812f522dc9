"""Per-clinic confirm-request and auto-cancel jobs."""

from collections.abc import Mapping
from datetime import datetime
from functools import partial
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.schemas.appointments import AppointmentStatus
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.notification_service import NotificationService
from clinic_confirm.services.time_windows import clinic_window

logger = structlog.get_logger(__name__)


class ConfirmationJobs:
    """The two scheduled jobs, run for one clinic at a time."""

    def __init__(self, db: AsyncSession, notifications: NotificationService):
        """Initialize jobs with database session and notification dispatcher."""
        self.db = db
        self.notifications = notifications
        self.appointments = AppointmentService(db)

    async def run_confirm_requests(self, clinic: Mapping[str, Any], now: datetime) -> int:
        """
        Send confirm-request SMS for pending appointments the day after tomorrow.

        Nothing is sent once today's deadline has passed, since the links
        would already be expired.

        Returns:
            Number of SMS handed to the transport
        """
        window = clinic_window(clinic, now)
        clinic_id = str(clinic["id"])

        if now >= window.deadline_utc:
            logger.info(
                "confirm_request_job_skipped_deadline_passed",
                clinic_id=clinic_id,
                deadline=window.deadline_utc.isoformat(),
            )
            return 0

        pending = await self.appointments.list_in_range(
            clinic["id"],
            window.range_start_utc,
            window.range_end_utc,
            statuses=[AppointmentStatus.PENDING],
        )

        sent = 0
        for appointment in pending:
            try:
                if await self.notifications.send_confirm_request(
                    clinic, appointment, window.deadline_utc, now
                ):
                    sent += 1
            except Exception as e:
                await self.db.rollback()
                logger.exception(
                    "confirm_request_failed",
                    clinic_id=clinic_id,
                    appointment_id=str(appointment["id"]),
                    error=str(e),
                )

        logger.info(
            "confirm_request_job_completed",
            clinic_id=clinic_id,
            target_day=window.target_day.isoformat(),
            pending=len(pending),
            sent=sent,
        )
        return sent

    async def run_auto_cancel(self, clinic: Mapping[str, Any], now: datetime) -> int:
        """
        Auto-cancel still-pending appointments the day after tomorrow.

        Every auto-canceled appointment in the window is then notified,
        including ones canceled by an earlier run, so notices interrupted by
        a restart still go out; the ledger keeps each notice to one send.

        Returns:
            Number of appointments canceled by this run
        """
        window = clinic_window(clinic, now)
        clinic_id = str(clinic["id"])

        pending = await self.appointments.list_in_range(
            clinic["id"],
            window.range_start_utc,
            window.range_end_utc,
            statuses=[AppointmentStatus.PENDING],
        )

        canceled = 0
        for appointment in pending:
            updated = await self.appointments.set_status(
                appointment["id"],
                AppointmentStatus.CANCELED_AUTO,
                [AppointmentStatus.PENDING],
            )
            if updated:
                canceled += 1

        if canceled:
            logger.info("appointments_auto_canceled", clinic_id=clinic_id, count=canceled)

        auto_canceled = await self.appointments.list_in_range(
            clinic["id"],
            window.range_start_utc,
            window.range_end_utc,
            statuses=[AppointmentStatus.CANCELED_AUTO],
        )

        for appointment in auto_canceled:
            await self._notify_auto_cancel(clinic, appointment)

        logger.info(
            "auto_cancel_job_completed",
            clinic_id=clinic_id,
            target_day=window.target_day.isoformat(),
            canceled=canceled,
            notified=len(auto_canceled),
        )
        return canceled

    async def _notify_auto_cancel(
        self, clinic: Mapping[str, Any], appointment: Mapping[str, Any]
    ) -> None:
        # Patient SMS and clinic email are separate ledger slots
        notices = (
            ("patient_sms", partial(self.notifications.send_auto_cancel_notice, clinic, appointment)),
            (
                "clinic_email",
                partial(self.notifications.send_clinic_cancel_notice, clinic, appointment, "auto"),
            ),
        )
        for kind, send in notices:
            try:
                await send()
            except Exception as e:
                await self.db.rollback()
                logger.exception(
                    "auto_cancel_notice_failed",
                    clinic_id=str(clinic["id"]),
                    appointment_id=str(appointment["id"]),
                    notice=kind,
                    error=str(e),
                )
