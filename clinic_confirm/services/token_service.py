"""Single-use action tokens bound to an appointment and a purpose."""

import secrets
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.database import dialect_insert
from clinic_confirm.models.appointments import appointments
from clinic_confirm.models.base import utcnow
from clinic_confirm.models.tokens import tokens
from clinic_confirm.schemas.tokens import TokenPurpose, TokenValidation

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 24


def generate_token_value() -> str:
    """Random URL-safe token value."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def validate_token_record(
    token: Mapping[str, Any],
    expected_purpose: TokenPurpose,
    now: datetime | None = None,
) -> TokenValidation:
    """
    Check a token row against the action being attempted.

    Precedence is fixed: a purpose mismatch is reported before use, and use
    before expiry.

    Args:
        token: Token row
        expected_purpose: Purpose of the link that was followed
        now: Reference instant, defaults to the current time

    Returns:
        Validation outcome
    """
    now = now or datetime.now(UTC)

    if TokenPurpose(token["purpose"]) != expected_purpose:
        return TokenValidation.INVALID_PURPOSE

    if token["used_at"] is not None:
        return TokenValidation.USED

    if token["expires_at"] <= now:
        return TokenValidation.EXPIRED

    return TokenValidation.OK


class TokenService:
    """Issues, rotates and invalidates appointment action tokens."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_valid_token(
        self,
        appointment_id: UUID,
        purpose: TokenPurpose,
        now: datetime,
    ) -> dict[str, Any] | None:
        """Return the unused, unexpired token for (appointment, purpose), if any."""
        stmt = select(tokens).where(
            and_(
                tokens.c.appointment_id == appointment_id,
                tokens.c.purpose == purpose.value,
                tokens.c.used_at.is_(None),
                tokens.c.expires_at > now,
            )
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row else None

    async def issue_or_rotate(
        self,
        appointment_id: UUID,
        purpose: TokenPurpose,
        expires_at: datetime,
    ) -> dict[str, Any]:
        """
        Write a fresh token into the (appointment, purpose) slot.

        Any previous token for the slot is overwritten, used or not.

        Returns:
            The new token row
        """
        stmt = dialect_insert(self.db, tokens).values(
            appointment_id=appointment_id,
            purpose=purpose.value,
            token=generate_token_value(),
            expires_at=expires_at,
            used_at=None,
            created_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[tokens.c.appointment_id, tokens.c.purpose],
            set_={
                "token": stmt.excluded.token,
                "expires_at": stmt.excluded.expires_at,
                "used_at": None,
                "created_at": stmt.excluded.created_at,
            },
        ).returning(tokens)

        result = await self.db.execute(stmt)
        row = result.mappings().one()
        await self.db.commit()
        logger.info(
            "token_issued",
            appointment_id=str(appointment_id),
            purpose=purpose.value,
            expires_at=expires_at.isoformat(),
        )
        return dict(row)

    async def get_or_issue(
        self,
        appointment_id: UUID,
        purpose: TokenPurpose,
        expires_at: datetime,
        now: datetime,
    ) -> dict[str, Any]:
        """Reuse the current valid token so resent links stay stable, else rotate."""
        existing = await self.get_valid_token(appointment_id, purpose, now)
        if existing:
            return existing
        return await self.issue_or_rotate(appointment_id, purpose, expires_at)

    async def find_with_appointment(self, token_value: str) -> dict[str, Any] | None:
        """
        Look up a token together with its appointment's clinic and status.

        Returns:
            Token row plus ``clinic_id`` and ``appointment_status``, or None
        """
        stmt = (
            select(
                tokens,
                appointments.c.clinic_id,
                appointments.c.status.label("appointment_status"),
            )
            .select_from(tokens.join(appointments, tokens.c.appointment_id == appointments.c.id))
            .where(tokens.c.token == token_value)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row else None

    async def invalidate_all(self, appointment_id: UUID, now: datetime | None = None) -> int:
        """
        Mark every unused token of an appointment as used.

        Called once an action has changed the appointment for good, so a
        stale link of either purpose can no longer act on it.

        Returns:
            Number of tokens invalidated
        """
        stmt = (
            update(tokens)
            .where(and_(tokens.c.appointment_id == appointment_id, tokens.c.used_at.is_(None)))
            .values(used_at=now or utcnow())
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        invalidated = result.rowcount or 0
        if invalidated:
            logger.info(
                "tokens_invalidated", appointment_id=str(appointment_id), count=invalidated
            )
        return invalidated
