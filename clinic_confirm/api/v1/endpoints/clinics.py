"""Clinic endpoints for the signed-in manager."""

from fastapi import APIRouter, status

from clinic_confirm.core.exceptions import NotFoundException
from clinic_confirm.dependencies import CurrentManager, DatabaseSession
from clinic_confirm.schemas.clinics import (
    ClinicResponse,
    ClinicSettingsUpdate,
    DashboardResponse,
    StatusCounts,
)
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.time_windows import clinic_window

router = APIRouter()


@router.get(
    "/me",
    response_model=ClinicResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the manager's clinic",
)
async def get_my_clinic(current_manager: CurrentManager, db: DatabaseSession) -> ClinicResponse:
    """Return the clinic the authenticated manager belongs to."""
    clinic = await ClinicService(db).get_clinic(current_manager["clinic_id"])
    if not clinic:
        raise NotFoundException("Clinic not found")
    return ClinicResponse.model_validate(clinic)


@router.put(
    "/me/settings",
    response_model=ClinicResponse,
    status_code=status.HTTP_200_OK,
    summary="Update clinic settings",
)
async def update_my_clinic_settings(
    data: ClinicSettingsUpdate,
    current_manager: CurrentManager,
    db: DatabaseSession,
) -> ClinicResponse:
    """
    Update name, timezone, export hour and deadline hour.

    Args:
        data: New settings
        current_manager: Authenticated manager
        db: Database session

    Returns:
        Updated clinic
    """
    clinic = await ClinicService(db).update_settings(current_manager["clinic_id"], data)
    if not clinic:
        raise NotFoundException("Clinic not found")
    return ClinicResponse.model_validate(clinic)


@router.get(
    "/me/dashboard",
    response_model=DashboardResponse,
    status_code=status.HTTP_200_OK,
    summary="Status counts for the day after tomorrow",
)
async def get_my_dashboard(current_manager: CurrentManager, db: DatabaseSession) -> DashboardResponse:
    """Counts per status for the window the scheduled jobs work on."""
    clinic = await ClinicService(db).get_clinic(current_manager["clinic_id"])
    if not clinic:
        raise NotFoundException("Clinic not found")

    window = clinic_window(clinic)
    counts = await AppointmentService(db).count_by_status(
        clinic["id"], window.range_start_utc, window.range_end_utc
    )
    return DashboardResponse(
        clinic_id=clinic["id"],
        day=window.target_day,
        deadline=window.deadline_utc,
        counts=StatusCounts(**counts),
    )
