"""Notification dispatch for appointment SMS and clinic email notices."""

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.core.exceptions import DeliveryError
from clinic_confirm.notifications import templates
from clinic_confirm.notifications.email import EmailSender
from clinic_confirm.notifications.sms import SmsSender
from clinic_confirm.schemas.messages import (
    DELIVERY_FAILED,
    MessageChannel,
    MessageTemplate,
    ReserveDecision,
    SendResult,
)
from clinic_confirm.schemas.tokens import TokenPurpose
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.message_ledger import MessageLedger
from clinic_confirm.services.token_service import TokenService

logger = structlog.get_logger(__name__)


class NotificationService:
    """Sends notifications through the ledger so each slot is sent at most once."""

    def __init__(
        self,
        db: AsyncSession,
        sms_sender: SmsSender,
        email_sender: EmailSender,
        app_base_url: str,
        send_confirmed_ack: bool = False,
    ):
        """Initialize service with database session and transports."""
        self.db = db
        self.sms = sms_sender
        self.email = email_sender
        self.app_base_url = app_base_url
        self.send_confirmed_ack = send_confirmed_ack
        self.ledger = MessageLedger(db)
        self.tokens = TokenService(db)
        self.clinics = ClinicService(db)

    async def _dispatch(
        self,
        appointment_id: UUID,
        channel: MessageChannel,
        template: MessageTemplate,
        to: str,
        send: Callable[[], Awaitable[SendResult]],
    ) -> bool:
        """
        Reserve the slot, call the transport and record the outcome.

        A transport failure is recorded as ``failed`` and not raised, so the
        slot is retried on the next job run rather than within this one.

        Returns:
            True if the transport was called and did not raise
        """
        decision = await self.ledger.reserve(appointment_id, channel, template, to)
        if decision == ReserveDecision.SKIP:
            logger.debug(
                "notification_already_sent",
                appointment_id=str(appointment_id),
                channel=channel.value,
                template=template.value,
            )
            return False

        try:
            result = await send()
        except Exception as e:
            raw: dict[str, Any] = {"error": str(e)}
            if isinstance(e, DeliveryError) and e.raw is not None:
                raw["response"] = e.raw
            logger.error(
                "notification_send_failed",
                appointment_id=str(appointment_id),
                channel=channel.value,
                template=template.value,
                error=str(e),
            )
            await self.ledger.finalize(
                appointment_id, channel, template, DELIVERY_FAILED, raw=raw
            )
            return False

        await self.ledger.finalize(
            appointment_id,
            channel,
            template,
            result.delivery_status,
            provider_message_id=result.provider_message_id,
            raw=result.raw,
        )
        logger.info(
            "notification_sent",
            appointment_id=str(appointment_id),
            channel=channel.value,
            template=template.value,
            delivery_status=result.delivery_status,
        )
        return True

    async def send_confirm_request(
        self,
        clinic: Mapping[str, Any],
        appointment: Mapping[str, Any],
        deadline: datetime,
        now: datetime,
    ) -> bool:
        """
        Send the confirm/cancel link SMS for an appointment.

        Both tokens expire at ``deadline``; a token still valid from an
        earlier attempt is reused so a retried SMS carries the same links.
        """

        async def send() -> SendResult:
            confirm = await self.tokens.get_or_issue(
                appointment["id"], TokenPurpose.CONFIRM, deadline, now
            )
            cancel = await self.tokens.get_or_issue(
                appointment["id"], TokenPurpose.CANCEL, deadline, now
            )
            body = templates.confirm_request_sms(
                appointment["start_datetime"],
                clinic["timezone"],
                clinic["deadline_hour"],
                templates.confirm_link(self.app_base_url, confirm["token"]),
                templates.cancel_link(self.app_base_url, cancel["token"]),
            )
            return await self.sms.send(appointment["phone"], body)

        return await self._dispatch(
            appointment["id"],
            MessageChannel.SMS,
            MessageTemplate.CONFIRM_REQUEST,
            appointment["phone"],
            send,
        )

    async def send_auto_cancel_notice(
        self, clinic: Mapping[str, Any], appointment: Mapping[str, Any]
    ) -> bool:
        """Tell the patient their appointment was auto-canceled."""
        body = templates.auto_cancel_sms(appointment["start_datetime"], clinic["timezone"])
        return await self._dispatch(
            appointment["id"],
            MessageChannel.SMS,
            MessageTemplate.AUTO_CANCEL_NOTICE,
            appointment["phone"],
            lambda: self.sms.send(appointment["phone"], body),
        )

    async def send_confirmed_ack_if_enabled(
        self, clinic: Mapping[str, Any], appointment: Mapping[str, Any]
    ) -> bool:
        """Acknowledge a confirmation by SMS when SEND_CONFIRMED_ACK is on."""
        if not self.send_confirmed_ack:
            return False

        body = templates.confirmed_ack_sms(appointment["start_datetime"], clinic["timezone"])
        return await self._dispatch(
            appointment["id"],
            MessageChannel.SMS,
            MessageTemplate.CONFIRMED_ACK,
            appointment["phone"],
            lambda: self.sms.send(appointment["phone"], body),
        )

    async def send_clinic_cancel_notice(
        self,
        clinic: Mapping[str, Any],
        appointment: Mapping[str, Any],
        reason: templates.CancelReason,
    ) -> bool:
        """Email the clinic manager about a canceled appointment."""
        manager_email = await self.clinics.get_manager_email(clinic["id"])
        if not manager_email:
            logger.warning(
                "clinic_cancel_notice_skipped_no_manager_email",
                clinic_id=str(clinic["id"]),
                appointment_id=str(appointment["id"]),
            )
            return False

        content = templates.clinic_cancel_email(
            clinic["name"], appointment, clinic["timezone"], reason
        )
        return await self._dispatch(
            appointment["id"],
            MessageChannel.EMAIL,
            MessageTemplate.CLINIC_CANCEL_NOTICE,
            manager_email,
            lambda: self.email.send(manager_email, content.subject, content.text),
        )
