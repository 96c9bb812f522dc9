"""Patient confirm/cancel link handling."""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.core.exceptions import AppException
from clinic_confirm.schemas.appointments import AppointmentStatus
from clinic_confirm.schemas.tokens import TokenActionOutcome, TokenPurpose, TokenValidation
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.notification_service import NotificationService
from clinic_confirm.services.token_service import TokenService, validate_token_record

logger = structlog.get_logger(__name__)

# Shared by unknown and rejected tokens
MSG_INVALID_LINK = "Link invalid, expirat sau deja folosit."
MSG_ALREADY_CONFIRMED = "Programarea este deja confirmata."
MSG_CANNOT_CONFIRM = "Programarea nu mai poate fi confirmata."
MSG_CONFIRMED = "Programarea a fost confirmata cu succes."
MSG_CANNOT_CANCEL = "Programarea nu mai poate fi anulata."
MSG_CANCELED = "Programarea a fost anulata."


@dataclass(frozen=True)
class TokenActionResult:
    outcome: TokenActionOutcome
    message: str


class TokenActionService:
    """Applies a patient's confirm or cancel link to their appointment."""

    def __init__(self, db: AsyncSession, notifications: NotificationService):
        """Initialize service with database session and notification dispatcher."""
        self.db = db
        self.notifications = notifications
        self.tokens = TokenService(db)
        self.appointments = AppointmentService(db)
        self.clinics = ClinicService(db)

    async def handle(
        self,
        token_value: str,
        purpose: TokenPurpose,
        now: datetime | None = None,
    ) -> TokenActionResult:
        """
        Validate a link token and perform its action.

        The result never says whether the token existed or why it was
        rejected.

        Args:
            token_value: Token taken from the link
            purpose: Purpose implied by the link path
            now: Reference instant, defaults to the current time

        Returns:
            Neutral outcome and patient-facing message
        """
        now = now or datetime.now(UTC)

        token = await self.tokens.find_with_appointment(token_value) if token_value else None
        if not token:
            return TokenActionResult(TokenActionOutcome.INVALID, MSG_INVALID_LINK)

        validation = validate_token_record(token, purpose, now)
        if validation != TokenValidation.OK:
            logger.info(
                "token_action_rejected",
                appointment_id=str(token["appointment_id"]),
                purpose=purpose.value,
                reason=validation.value,
            )
            return TokenActionResult(TokenActionOutcome.INVALID, MSG_INVALID_LINK)

        clinic = await self.clinics.get_clinic(token["clinic_id"])
        if not clinic:
            return TokenActionResult(TokenActionOutcome.INVALID, MSG_INVALID_LINK)

        if purpose == TokenPurpose.CONFIRM:
            return await self._confirm(clinic, token["appointment_id"], now)
        return await self._cancel(clinic, token["appointment_id"], now)

    async def _confirm(self, clinic, appointment_id, now: datetime) -> TokenActionResult:
        updated = await self.appointments.set_status(
            appointment_id,
            AppointmentStatus.CONFIRMED,
            [AppointmentStatus.PENDING],
        )
        if not updated:
            current = await self.appointments.get_appointment(appointment_id)
            if current and current["status"] == AppointmentStatus.CONFIRMED.value:
                await self.tokens.invalidate_all(appointment_id, now)
                return TokenActionResult(TokenActionOutcome.ALREADY_DONE, MSG_ALREADY_CONFIRMED)
            return TokenActionResult(TokenActionOutcome.INVALID, MSG_CANNOT_CONFIRM)

        await self.tokens.invalidate_all(appointment_id, now)
        try:
            await self.notifications.send_confirmed_ack_if_enabled(clinic, updated)
        except (SQLAlchemyError, AppException) as e:
            await self.db.rollback()
            logger.error(
                "confirmed_ack_failed", appointment_id=str(appointment_id), error=str(e)
            )
        return TokenActionResult(TokenActionOutcome.SUCCESS, MSG_CONFIRMED)

    async def _cancel(self, clinic, appointment_id, now: datetime) -> TokenActionResult:
        canceled = await self.appointments.set_status(
            appointment_id,
            AppointmentStatus.CANCELED_BY_PATIENT,
            [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED],
        )
        if not canceled:
            return TokenActionResult(TokenActionOutcome.INVALID, MSG_CANNOT_CANCEL)

        await self.tokens.invalidate_all(appointment_id, now)
        try:
            await self.notifications.send_clinic_cancel_notice(clinic, canceled, "patient")
        except (SQLAlchemyError, AppException) as e:
            await self.db.rollback()
            logger.error(
                "clinic_cancel_notice_failed", appointment_id=str(appointment_id), error=str(e)
            )
        return TokenActionResult(TokenActionOutcome.SUCCESS, MSG_CANCELED)
