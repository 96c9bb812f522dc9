"""Reconciliation of an external appointment snapshot into the store."""

import csv
import io
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.core.exceptions import ValidationException
from clinic_confirm.models.appointments import appointments
from clinic_confirm.schemas.appointments import AppointmentSource, AppointmentStatus
from clinic_confirm.schemas.imports import ImportSummary
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.time_windows import snapshot_range_utc
from clinic_confirm.utils.dates import parse_feed_datetime
from clinic_confirm.utils.phone import normalize_romanian_phone

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("appointment_id", "start_datetime", "phone", "appointment_type")

STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "confirmed": AppointmentStatus.CONFIRMED,
    "confirmat": AppointmentStatus.CONFIRMED,
    "canceled": AppointmentStatus.CANCELED_BY_PATIENT,
    "cancelled": AppointmentStatus.CANCELED_BY_PATIENT,
    "anulat": AppointmentStatus.CANCELED_BY_PATIENT,
    "canceled_by_patient": AppointmentStatus.CANCELED_BY_PATIENT,
    "canceled_auto": AppointmentStatus.CANCELED_AUTO,
    "auto_canceled": AppointmentStatus.CANCELED_AUTO,
    "anulat_automat": AppointmentStatus.CANCELED_AUTO,
    "pending": AppointmentStatus.PENDING,
    "scheduled": AppointmentStatus.PENDING,
    "programat": AppointmentStatus.PENDING,
}

# A stored status with a positive rank survives any re-import
STATUS_OVERRIDE_RANK: dict[AppointmentStatus, int] = {
    AppointmentStatus.PENDING: 0,
    AppointmentStatus.CANCELED_BY_PATIENT: 0,
    AppointmentStatus.CONFIRMED: 1,
    AppointmentStatus.CANCELED_AUTO: 1,
}

STICKY_STATUSES = frozenset(s for s, rank in STATUS_OVERRIDE_RANK.items() if rank > 0)

SnapshotKey = tuple[str, datetime]


def map_feed_status(raw: str | None) -> AppointmentStatus | None:
    """Recognise a feed status text; unknown or blank text yields None."""
    if not raw:
        return None
    return STATUS_ALIASES.get(raw.strip().lower())


def derive_status(
    existing: AppointmentStatus | None,
    feed: AppointmentStatus | None,
) -> AppointmentStatus:
    """
    Status to store for an imported row.

    A stored status ranked above zero is kept, then a recognised feed
    status is used, else the row is pending.
    """
    if existing is not None and STATUS_OVERRIDE_RANK[existing] > 0:
        return existing
    if feed is not None:
        return feed
    return AppointmentStatus.PENDING


def parse_snapshot_csv(text: str) -> list[dict[str, str]]:
    """
    Parse CSV text into row maps with trimmed headers and values.

    Raises:
        ValidationException: If a required column is missing
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    headers = [header.strip() for header in (reader.fieldnames or [])]

    missing = [column for column in REQUIRED_COLUMNS if column not in headers]
    if missing:
        raise ValidationException(f"CSV missing required columns: {', '.join(missing)}")

    rows: list[dict[str, str]] = []
    for record in reader:
        row = {
            key.strip(): (value or "").strip()
            for key, value in record.items()
            if key is not None
        }
        if any(row.values()):
            rows.append(row)
    return rows


def _text(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    return str(value).strip() if value is not None else ""


class SnapshotService:
    """Merges a clinic's appointment snapshot into the store."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.appointments = AppointmentService(db)

    async def _existing_by_external_id(
        self, clinic_id: Any, external_ids: Iterable[str]
    ) -> dict[SnapshotKey, dict[str, Any]]:
        ids = sorted(set(external_ids))
        if not ids:
            return {}
        stmt = select(appointments).where(
            and_(
                appointments.c.clinic_id == clinic_id,
                appointments.c.external_appointment_id.in_(ids),
            )
        )
        result = await self.db.execute(stmt)
        return {
            (row["external_appointment_id"], row["start_datetime"]): dict(row)
            for row in result.mappings().all()
        }

    def _normalize_rows(
        self, clinic: Mapping[str, Any], rows: list[Mapping[str, Any]]
    ) -> dict[SnapshotKey, dict[str, Any]]:
        normalized: dict[SnapshotKey, dict[str, Any]] = {}
        for index, row in enumerate(rows, start=1):
            values = {column: _text(row, column) for column in REQUIRED_COLUMNS}
            missing = [column for column, value in values.items() if not value]
            if missing:
                raise ValidationException(
                    f"Row {index} is missing required values: {', '.join(missing)}"
                )

            start_utc = parse_feed_datetime(values["start_datetime"], clinic["timezone"])
            key = (values["appointment_id"], start_utc)
            # A repeated key keeps the last occurrence
            normalized[key] = {
                "clinic_id": clinic["id"],
                "external_appointment_id": values["appointment_id"],
                "start_datetime": start_utc,
                "phone": normalize_romanian_phone(values["phone"]),
                "appointment_type": values["appointment_type"],
                "patient_name": _text(row, "patient_name") or None,
                "provider_name": _text(row, "provider_name") or None,
                "source": AppointmentSource.CSV_UPLOAD.value,
                "feed_status": map_feed_status(_text(row, "status")),
            }
        return normalized

    async def reconcile(
        self,
        clinic: Mapping[str, Any],
        rows: list[Mapping[str, Any]],
        now: datetime | None = None,
    ) -> ImportSummary:
        """
        Merge a snapshot for the two days starting tomorrow.

        Every row is validated before anything is written. Pending
        appointments in the horizon that the snapshot no longer lists are
        marked canceled by the patient. The whole call commits once.

        Args:
            clinic: Clinic row
            rows: Snapshot rows keyed by column name
            now: Reference instant, defaults to the current time

        Returns:
            Import summary

        Raises:
            ValidationException: On a missing field, bad datetime or bad phone
        """
        clinic_id = clinic["id"]
        normalized = self._normalize_rows(clinic, rows)

        lo, hi = snapshot_range_utc(clinic["timezone"], now)
        in_horizon = await self.appointments.list_in_range(clinic_id, lo, hi)
        existing = await self._existing_by_external_id(
            clinic_id, (key[0] for key in normalized)
        )

        upserts: list[dict[str, Any]] = []
        for key, row in normalized.items():
            feed_status = row.pop("feed_status")
            current = existing.get(key)
            current_status = AppointmentStatus(current["status"]) if current else None
            row["status"] = derive_status(current_status, feed_status).value
            upserts.append(row)

        missing_ids = [
            appointment["id"]
            for appointment in in_horizon
            if (appointment["external_appointment_id"], appointment["start_datetime"])
            not in normalized
            and appointment["status"] == AppointmentStatus.PENDING.value
        ]

        try:
            upserted = await self.appointments.upsert_many(
                upserts, keep_statuses=STICKY_STATUSES, commit=False
            )
            canceled = await self.appointments.cancel_missing(missing_ids, commit=False)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "snapshot_reconciled",
            clinic_id=str(clinic_id),
            total_rows=len(rows),
            upserted_rows=upserted,
            canceled_missing=canceled,
        )
        return ImportSummary(
            clinic_id=clinic_id,
            total_rows=len(rows),
            upserted_rows=upserted,
            canceled_missing_count=canceled,
        )
