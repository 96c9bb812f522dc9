"""Database models."""

from clinic_confirm.models.appointments import appointments
from clinic_confirm.models.base import metadata
from clinic_confirm.models.clinics import clinics
from clinic_confirm.models.messages import messages
from clinic_confirm.models.tokens import tokens
from clinic_confirm.models.users import users

__all__ = [
    "appointments",
    "clinics",
    "messages",
    "metadata",
    "tokens",
    "users",
]
