"""At-most-one-send ledger for appointment notifications.

A send goes through two phases: ``reserve`` claims the
(appointment, channel, template) slot before the transport is called, and
``finalize`` records what the transport reported. A slot finalized as
``sent`` is never sent again; a ``queued`` or ``failed`` slot is eligible on
the next job run.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.database import dialect_insert
from clinic_confirm.models.base import utcnow
from clinic_confirm.models.messages import messages
from clinic_confirm.schemas.messages import (
    DELIVERY_QUEUED,
    DELIVERY_SENT,
    MessageChannel,
    MessageTemplate,
    ReserveDecision,
)

logger = structlog.get_logger(__name__)


def _decision_for(row: dict[str, Any] | None) -> ReserveDecision:
    if row is None:
        # Conflicting row vanished between insert and re-read; treat as taken
        return ReserveDecision.SKIP
    if row["delivery_status"] == DELIVERY_SENT:
        return ReserveDecision.SKIP
    return ReserveDecision.SEND


class MessageLedger:
    """Reservation/finalization protocol over the ``messages`` table."""

    def __init__(self, db: AsyncSession):
        """Initialize ledger with database session."""
        self.db = db

    def _slot(
        self,
        appointment_id: UUID,
        channel: MessageChannel,
        template: MessageTemplate,
    ) -> Any:
        return and_(
            messages.c.appointment_id == appointment_id,
            messages.c.channel == channel.value,
            messages.c.template == template.value,
        )

    async def get_message(
        self,
        appointment_id: UUID,
        channel: MessageChannel,
        template: MessageTemplate,
    ) -> dict[str, Any] | None:
        """Get the ledger row for a slot."""
        result = await self.db.execute(
            select(messages).where(self._slot(appointment_id, channel, template))
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def reserve(
        self,
        appointment_id: UUID,
        channel: MessageChannel,
        template: MessageTemplate,
        to: str,
    ) -> ReserveDecision:
        """
        Claim a notification slot before calling the transport.

        Args:
            appointment_id: Appointment ID
            channel: Delivery channel
            template: Notification kind
            to: Recipient address

        Returns:
            SEND if the caller should send now, SKIP if already sent
        """
        existing = await self.get_message(appointment_id, channel, template)
        if existing:
            return _decision_for(existing)

        stmt = (
            dialect_insert(self.db, messages)
            .values(
                appointment_id=appointment_id,
                channel=channel.value,
                template=template.value,
                recipient=to,
                sent_at=utcnow(),
                delivery_status=DELIVERY_QUEUED,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    messages.c.appointment_id,
                    messages.c.channel,
                    messages.c.template,
                ]
            )
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount:
            return ReserveDecision.SEND

        # Someone else reserved the slot between our read and insert
        logger.info(
            "message_slot_reserve_conflict",
            appointment_id=str(appointment_id),
            channel=channel.value,
            template=template.value,
        )
        current = await self.get_message(appointment_id, channel, template)
        return _decision_for(current)

    async def finalize(
        self,
        appointment_id: UUID,
        channel: MessageChannel,
        template: MessageTemplate,
        delivery_status: str,
        provider_message_id: str | None = None,
        raw: Any = None,
    ) -> None:
        """Record the transport outcome for a reserved slot."""
        stmt = (
            update(messages)
            .where(self._slot(appointment_id, channel, template))
            .values(
                delivery_status=delivery_status,
                provider_message_id=provider_message_id,
                raw=raw,
                sent_at=utcnow(),
            )
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def list_for_appointment(self, appointment_id: UUID) -> list[dict[str, Any]]:
        """All ledger rows for an appointment, newest first."""
        stmt = (
            select(messages)
            .where(messages.c.appointment_id == appointment_id)
            .order_by(messages.c.sent_at.desc())
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]
