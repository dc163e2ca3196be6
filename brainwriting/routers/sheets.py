"""Sheets router — read a sheet, check its lease, and submit a row."""

from fastapi import APIRouter, Depends, status

from brainwriting.routers.auth import Identity, require_identity
from brainwriting.routers.deps import get_coordinator
from brainwriting.schemas.sheet import ContributionIn, ContributionOut, LeaseStatus, SheetWithRows
from brainwriting.services.coordinator import BoardCoordinator

router = APIRouter(prefix="/sheets", tags=["sheets"])


@router.get("/{sheet_id}", response_model=SheetWithRows)
async def get_sheet(
    sheet_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_sheet(sheet_id, identity.id)


@router.get("/{sheet_id}/lease", response_model=LeaseStatus)
async def lease_status(
    sheet_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    """Whether someone else is writing on the sheet right now."""
    return await coordinator.lease_status(sheet_id, identity.id)


# ═══════════════════════════════════════════════════════════════
#  POST /sheets/{sheet_id}/contributions → write a row, rotate
# ═══════════════════════════════════════════════════════════════

@router.post(
    "/{sheet_id}/contributions",
    response_model=ContributionOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_contribution(
    sheet_id: int,
    payload: ContributionIn,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.submit_contribution(
        sheet_id, identity.id, payload.row_index, payload.values
    )
