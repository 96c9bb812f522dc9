"""API v1 router configuration."""

from fastapi import APIRouter

from clinic_confirm.api.v1.endpoints import appointments, clinics, health, imports

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(clinics.router, prefix="/clinics", tags=["Clinics"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(imports.router, prefix="/imports", tags=["Imports"])
