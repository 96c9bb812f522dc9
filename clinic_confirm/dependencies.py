"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.config import settings
from clinic_confirm.core.exceptions import RateLimitException
from clinic_confirm.core.redis_client import RateLimiter, get_redis_client
from clinic_confirm.core.security import decode_access_token
from clinic_confirm.database import get_db
from clinic_confirm.notifications.email import EmailSender
from clinic_confirm.notifications.sms import SmsSender
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.notification_service import NotificationService

# Security
security = HTTPBearer()


async def get_current_manager_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Extract and validate the manager's user ID from a JWT.

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return UUID(user_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_manager(
    user_id: Annotated[UUID, Depends(get_current_manager_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """
    Load the active clinic manager behind the token.

    Raises:
        HTTPException: If the manager does not exist or is deactivated
    """
    manager = await ClinicService(db).get_manager(user_id)

    if not manager:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Manager not found or inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return manager


def get_sms_sender(request: Request) -> SmsSender:
    """SMS transport built at startup."""
    return request.app.state.sms_sender


def get_email_sender(request: Request) -> EmailSender:
    """Email transport built at startup."""
    return request.app.state.email_sender


def get_notification_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    sms_sender: Annotated[SmsSender, Depends(get_sms_sender)],
    email_sender: Annotated[EmailSender, Depends(get_email_sender)],
) -> NotificationService:
    """Notification dispatcher bound to the request's session."""
    return NotificationService(
        db,
        sms_sender,
        email_sender,
        app_base_url=settings.app_base_url,
        send_confirmed_ack=settings.send_confirmed_ack,
    )


def enforce_link_rate_limit(request: Request) -> None:
    """
    Limit patient link requests per client IP.

    Raises:
        RateLimitException: If the client exceeded the per-minute limit
    """
    client_ip = request.client.host if request.client else "unknown"
    limiter = RateLimiter(get_redis_client())
    if not limiter.check_rate_limit(
        f"rate:links:{client_ip}", settings.rate_limit_per_minute, window=60
    ):
        raise RateLimitException("Too many requests, try again in a minute")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentManager = Annotated[dict, Depends(get_current_manager)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
LinkRateLimit = Depends(enforce_link_rate_limit)
