"""Message bodies for patient SMS and clinic email notices (Romanian)."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from clinic_confirm.utils.dates import format_local_date, format_local_time

CancelReason = Literal["auto", "patient"]


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text: str


def _when(start: datetime, tz_name: str) -> tuple[str, str]:
    return format_local_date(start, tz_name), format_local_time(start, tz_name)


def confirm_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/c/{token}"


def cancel_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/x/{token}"


def confirm_request_sms(
    start: datetime,
    tz_name: str,
    deadline_hour: int,
    confirm_url: str,
    cancel_url: str,
) -> str:
    """Reminder asking the patient to confirm before today's deadline."""
    date, time = _when(start, tz_name)
    return "\n".join(
        [
            f"Aveti o programare la clinica pe {date}, ora {time}.",
            f"Va rugam confirmati azi pana la ora {deadline_hour:02d}:00: {confirm_url}",
            f"Pentru anulare: {cancel_url}",
            "Programarile neconfirmate se anuleaza automat.",
        ]
    )


def auto_cancel_sms(start: datetime, tz_name: str) -> str:
    date, time = _when(start, tz_name)
    return "\n".join(
        [
            f"Programarea din {date}, ora {time} a fost anulata automat "
            "pentru ca nu a fost confirmata la timp.",
            "Pentru o noua programare, va rugam contactati clinica.",
        ]
    )


def confirmed_ack_sms(start: datetime, tz_name: str) -> str:
    date, time = _when(start, tz_name)
    return f"Programarea din {date}, ora {time} este confirmata. Va asteptam!"


def clinic_cancel_email(
    clinic_name: str,
    appointment: Mapping[str, Any],
    tz_name: str,
    reason: CancelReason,
) -> EmailContent:
    """Notice to the clinic manager that an appointment was canceled."""
    date, time = _when(appointment["start_datetime"], tz_name)
    if reason == "auto":
        reason_text = "a fost anulata automat, nefiind confirmata pana la termen"
    else:
        reason_text = "a fost anulata de pacient"

    lines = [
        f"Programarea {reason_text}.",
        f"Data: {date}",
        f"Ora: {time}",
        f"Tip: {appointment['appointment_type']}",
    ]
    if appointment.get("patient_name"):
        lines.append(f"Pacient: {appointment['patient_name']}")
    if appointment.get("provider_name"):
        lines.append(f"Medic: {appointment['provider_name']}")

    return EmailContent(
        subject=f"Programare anulata - {clinic_name}",
        text="\n".join(lines),
    )
