"""
API Routes for snapshots.

Endpoints
---------
- `POST /api/fiscal-book/{id}/snapshots`: capture the live ledger.
- `GET /api/fiscal-book/{id}/snapshots`: list, newest first (`tags=a,b`, `limit`, `skip`).
- `GET|DELETE /api/snapshots/{id}`: read or delete one snapshot.
- `GET /api/snapshots/{id}/transactions`: paginated captured transactions.
- `GET /api/snapshots/{id}/compare`: diff against the live ledger.
- `GET /api/snapshots/{id}/compare/export`: export that diff.
- `PUT /api/snapshots/{id}/tags`, `PUT /api/snapshots/{id}/protection`.
- `POST /api/snapshots/{id}/annotations`,
  `POST /api/snapshots/{id}/transactions/{tx_id}/annotations`.
- `GET /api/snapshots/{id}/export?format=json|csv|pdf`.
- `POST /api/snapshots/{id}/clone`, `POST /api/snapshots/{id}/rollback`.

Design Decisions
----------------
- **Sync handlers**: the service blocks on locks and collaborator calls, so the
  handlers are plain functions and FastAPI runs them in its thread pool.
- **Errors**: handlers never build error responses; domain errors propagate to
  the exception handler registered in :mod:`fiscalsnap.api.app`.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from fiscalsnap.api.dependencies import get_snapshot_service
from fiscalsnap.api.schemas import (
    ERROR_RESPONSES,
    AnnotationRequest,
    CloneRequest,
    CreateSnapshotRequest,
    ProtectionRequest,
    RollbackRequest,
    SnapshotPage,
    TagsRequest,
)
from fiscalsnap.services.exporter import ExportArtifact
from fiscalsnap.services.facade import SnapshotService

router = APIRouter(prefix="/api", tags=["Snapshots"], responses=ERROR_RESPONSES)


def _split_tags(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    return [t for t in (part.strip() for part in raw.split(",")) if t]


def _download(artifact: ExportArtifact) -> Response:
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


# ----- fiscal-book scoped -------------------------------------------------


@router.post(
    "/fiscal-book/{fiscal_book_id}/snapshots",
    status_code=status.HTTP_201_CREATED,
    summary="Create a snapshot of the fiscal book's current ledger",
)
def create_snapshot(
    fiscal_book_id: str,
    request: CreateSnapshotRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    snap = service.create_snapshot(
        fiscal_book_id,
        name=request.name,
        description=request.description,
        tags=request.tags,
        include_metadata=request.include_metadata,
    )
    return snap.dump()


@router.get(
    "/fiscal-book/{fiscal_book_id}/snapshots",
    summary="List snapshots of a fiscal book, newest first",
)
def list_snapshots(
    fiscal_book_id: str,
    tags: str | None = Query(default=None, description="Comma separated tag filter"),
    limit: int | None = Query(default=None, ge=1),
    skip: int = Query(default=0, ge=0),
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    wanted = _split_tags(tags)
    rows = service.list_snapshots(fiscal_book_id, tags=wanted, limit=limit, skip=skip)
    page = SnapshotPage(
        snapshots=[s.dump() for s in rows],
        total=service.count_snapshots(fiscal_book_id, tags=wanted),
        limit=limit,
        skip=skip,
    )
    return page.dump()


# ----- single snapshot ----------------------------------------------------


@router.get("/snapshots/{snapshot_id}", summary="Get one snapshot")
def get_snapshot(
    snapshot_id: str, service: SnapshotService = Depends(get_snapshot_service)
) -> dict[str, Any]:
    return service.get_snapshot(snapshot_id).dump()


@router.delete(
    "/snapshots/{snapshot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an unprotected snapshot",
)
def delete_snapshot(
    snapshot_id: str, service: SnapshotService = Depends(get_snapshot_service)
) -> Response:
    service.delete_snapshot(snapshot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/snapshots/{snapshot_id}/transactions", summary="Captured transactions")
def get_snapshot_transactions(
    snapshot_id: str,
    limit: int | None = Query(default=None, ge=1),
    skip: int = Query(default=0, ge=0),
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    snap = service.get_snapshot(snapshot_id)
    rows = service.get_snapshot_transactions(snapshot_id, limit=limit, skip=skip)
    return {
        "transactions": [tx.dump() for tx in rows],
        "total": len(snap.captured_transactions),
        "limit": limit,
        "skip": skip,
    }


@router.get("/snapshots/{snapshot_id}/compare", summary="Compare with the live ledger")
def compare_snapshot(
    snapshot_id: str, service: SnapshotService = Depends(get_snapshot_service)
) -> dict[str, Any]:
    return service.compare_snapshot(snapshot_id).dump()


@router.get("/snapshots/{snapshot_id}/compare/export", summary="Export a comparison")
def export_comparison(
    snapshot_id: str,
    format: str = Query(default="json"),
    service: SnapshotService = Depends(get_snapshot_service),
) -> Response:
    return _download(service.export_comparison(snapshot_id, format))


@router.put("/snapshots/{snapshot_id}/tags", summary="Replace the tag set")
def update_tags(
    snapshot_id: str,
    request: TagsRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    return service.update_tags(snapshot_id, request.tags).dump()


@router.put("/snapshots/{snapshot_id}/protection", summary="Set the protection flag")
def toggle_protection(
    snapshot_id: str,
    request: ProtectionRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    return service.toggle_protection(snapshot_id, request.is_protected).dump()


@router.post(
    "/snapshots/{snapshot_id}/annotations",
    status_code=status.HTTP_201_CREATED,
    summary="Append a snapshot annotation",
)
def add_annotation(
    snapshot_id: str,
    request: AnnotationRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    return service.add_annotation(snapshot_id, request.content, request.created_by).dump()


@router.post(
    "/snapshots/{snapshot_id}/transactions/{transaction_id}/annotations",
    status_code=status.HTTP_201_CREATED,
    summary="Append a note about one captured transaction",
)
def add_transaction_annotation(
    snapshot_id: str,
    transaction_id: str,
    request: AnnotationRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    snap = service.add_transaction_annotation(
        snapshot_id, transaction_id, request.content, request.created_by
    )
    return snap.dump()


@router.get("/snapshots/{snapshot_id}/export", summary="Download a snapshot export")
def export_snapshot(
    snapshot_id: str,
    format: str = Query(default="json"),
    service: SnapshotService = Depends(get_snapshot_service),
) -> Response:
    return _download(service.export_snapshot(snapshot_id, format))


@router.post(
    "/snapshots/{snapshot_id}/clone",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new fiscal book from the snapshot",
)
def clone_snapshot(
    snapshot_id: str,
    request: CloneRequest | None = None,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    overrides = request.overrides() if request is not None else None
    return service.clone_to_new_fiscal_book(snapshot_id, overrides).dump()


@router.post("/snapshots/{snapshot_id}/rollback", summary="Restore the ledger from a snapshot")
def rollback_snapshot(
    snapshot_id: str,
    request: RollbackRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    outcome = service.rollback_to_snapshot(
        snapshot_id,
        request.confirmation,
        create_pre_rollback_snapshot=request.create_pre_rollback_snapshot,
    )
    return outcome.dump()


__all__ = ["router"]
