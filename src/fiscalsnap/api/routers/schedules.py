"""
API Routes for automatic-snapshot schedules.

Endpoints
---------
- `GET /api/fiscal-book/{id}/snapshots/schedule`: stored schedule, or the
  disabled default when the book never had one.
- `PUT /api/fiscal-book/{id}/snapshots/schedule`: upsert the schedule.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from fiscalsnap.api.dependencies import get_snapshot_service
from fiscalsnap.api.schemas import ERROR_RESPONSES
from fiscalsnap.services.facade import SnapshotService

router = APIRouter(prefix="/api", tags=["Schedules"], responses=ERROR_RESPONSES)


@router.get("/fiscal-book/{fiscal_book_id}/snapshots/schedule", summary="Get the schedule")
def get_schedule(
    fiscal_book_id: str, service: SnapshotService = Depends(get_snapshot_service)
) -> dict[str, Any]:
    config = service.get_schedule(fiscal_book_id) or service.default_schedule()
    return config.dump()


@router.put("/fiscal-book/{fiscal_book_id}/snapshots/schedule", summary="Upsert the schedule")
def update_schedule(
    fiscal_book_id: str,
    payload: dict[str, Any] = Body(...),
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    # Validated by the service so out-of-range fields map to the domain ValidationError.
    return service.update_schedule(fiscal_book_id, payload).dump()


__all__ = ["router"]
