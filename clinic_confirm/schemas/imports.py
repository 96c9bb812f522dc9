"""CSV snapshot import schemas."""

from uuid import UUID

from pydantic import BaseModel


class ImportSummary(BaseModel):
    """Result of reconciling one snapshot against the store."""

    clinic_id: UUID
    total_rows: int
    upserted_rows: int
    canceled_missing_count: int
