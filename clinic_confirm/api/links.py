"""Patient confirm and cancel links sent by SMS."""

from fastapi import APIRouter, status

from clinic_confirm.dependencies import DatabaseSession, LinkRateLimit, Notifications
from clinic_confirm.schemas.tokens import TokenActionResponse, TokenPurpose
from clinic_confirm.services.token_action_service import TokenActionService

router = APIRouter(dependencies=[LinkRateLimit])


async def _handle(
    token: str,
    purpose: TokenPurpose,
    db: DatabaseSession,
    notifications: Notifications,
) -> TokenActionResponse:
    result = await TokenActionService(db, notifications).handle(token, purpose)
    return TokenActionResponse(outcome=result.outcome, message=result.message)


@router.get(
    "/c/{token}",
    response_model=TokenActionResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm an appointment",
)
async def confirm_link(
    token: str, db: DatabaseSession, notifications: Notifications
) -> TokenActionResponse:
    """Confirm link; every outcome is a 200 with a neutral message."""
    return await _handle(token, TokenPurpose.CONFIRM, db, notifications)


@router.get(
    "/x/{token}",
    response_model=TokenActionResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel an appointment",
)
async def cancel_link(
    token: str, db: DatabaseSession, notifications: Notifications
) -> TokenActionResponse:
    """Cancel link; every outcome is a 200 with a neutral message."""
    return await _handle(token, TokenPurpose.CANCEL, db, notifications)
