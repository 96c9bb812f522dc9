"""Token schemas for patient confirm/cancel links."""

from enum import Enum

from pydantic import BaseModel


class TokenPurpose(str, Enum):
    """What a token is allowed to do."""

    CONFIRM = "confirm"
    CANCEL = "cancel"


class TokenValidation(str, Enum):
    """Outcome of checking a token against an expected purpose."""

    OK = "ok"
    INVALID_PURPOSE = "invalid_purpose"
    EXPIRED = "expired"
    USED = "used"


class TokenActionOutcome(str, Enum):
    """Patient-facing outcome; never reveals why a link was rejected."""

    SUCCESS = "success"
    ALREADY_DONE = "already_done"
    INVALID = "invalid"


class TokenActionResponse(BaseModel):
    """Response for the confirm/cancel link endpoints."""

    outcome: TokenActionOutcome
    message: str
