"""CSV snapshot import endpoint."""

import structlog
from fastapi import APIRouter, File, UploadFile, status

from clinic_confirm.config import settings
from clinic_confirm.core.exceptions import AppException, NotFoundException, ValidationException
from clinic_confirm.dependencies import CurrentManager, DatabaseSession
from clinic_confirm.schemas.imports import ImportSummary
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.snapshot_service import SnapshotService, parse_snapshot_csv

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/csv",
    response_model=ImportSummary,
    status_code=status.HTTP_200_OK,
    summary="Reconcile an appointment CSV snapshot",
)
async def import_csv(
    current_manager: CurrentManager,
    db: DatabaseSession,
    file: UploadFile = File(...),
) -> ImportSummary:
    """
    Upload the clinic's appointment export for the next two days.

    The file needs the columns appointment_id, start_datetime, phone and
    appointment_type; patient_name, provider_name and status are optional.
    The import is all-or-nothing.

    Args:
        current_manager: Authenticated manager
        db: Database session
        file: CSV file, UTF-8

    Returns:
        Import summary
    """
    content = await file.read(settings.max_import_bytes + 1)
    if len(content) > settings.max_import_bytes:
        raise AppException(
            f"CSV file exceeds {settings.max_import_bytes} bytes",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationException("CSV file must be UTF-8 encoded") from e

    clinic = await ClinicService(db).get_clinic(current_manager["clinic_id"])
    if not clinic:
        raise NotFoundException("Clinic not found")

    rows = parse_snapshot_csv(text)
    summary = await SnapshotService(db).reconcile(clinic, rows)

    logger.info(
        "csv_import_completed",
        clinic_id=str(clinic["id"]),
        manager_id=str(current_manager["id"]),
        filename=file.filename,
    )
    return summary
