"""Boards router — create, join, start, and read team brainwriting boards."""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from brainwriting.routers.auth import Identity, require_identity
from brainwriting.routers.deps import get_coordinator
from brainwriting.schemas.board import (
    BoardCreate,
    BoardOut,
    BoardResults,
    BoardStatus,
    InviteToggle,
    JoinIn,
    ParticipantOut,
)
from brainwriting.schemas.sheet import SheetOut
from brainwriting.services.coordinator import BoardCoordinator

router = APIRouter(prefix="/boards", tags=["boards"])


# ═══════════════════════════════════════════════════════════════
#  POST /boards → create a board (owner joins automatically)
# ═══════════════════════════════════════════════════════════════

@router.post("", response_model=BoardOut, status_code=status.HTTP_201_CREATED)
async def create_board(
    payload: BoardCreate,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.create_board(
        owner_id=identity.id,
        title=payload.title,
        theme_name=payload.theme_name,
        mode=payload.mode,
        description=payload.description,
        owner_name=identity.name,
    )


# ═══════════════════════════════════════════════════════════════
#  GET /boards/{board_id} → status snapshot (polling / refresh)
# ═══════════════════════════════════════════════════════════════

@router.get("/{board_id}", response_model=BoardStatus)
async def board_status(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_board_status(board_id)


@router.delete("/{board_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_board(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_board(board_id, identity.id)


# ═══════════════════════════════════════════════════════════════
#  POST /boards/join/{token} → join through an invite link
# ═══════════════════════════════════════════════════════════════

@router.post("/join/{token}", response_model=ParticipantOut)
async def join_by_token(
    token: str,
    payload: Optional[JoinIn] = None,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    display_name = (payload.display_name if payload else None) or identity.name
    return await coordinator.join_by_token(token, identity.id, display_name)


@router.post("/{board_id}/join", response_model=ParticipantOut)
async def join_board(
    board_id: int,
    payload: Optional[JoinIn] = None,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    display_name = (payload.display_name if payload else None) or identity.name
    return await coordinator.join(board_id, identity.id, display_name)


@router.post("/{board_id}/invite", response_model=BoardOut)
async def toggle_invite(
    board_id: int,
    payload: InviteToggle,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    """Owner opens or closes the invite link."""
    return await coordinator.set_invite_active(board_id, identity.id, payload.active)


@router.get("/{board_id}/participants", response_model=List[ParticipantOut])
async def list_participants(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_participants(board_id)


# ═══════════════════════════════════════════════════════════════
#  POST /boards/{board_id}/start → one sheet per participant
# ═══════════════════════════════════════════════════════════════

@router.post("/{board_id}/start", response_model=List[SheetOut])
async def start_board(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.start_team_board(board_id, identity.id)


@router.get("/{board_id}/complete")
async def board_complete(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return {"complete": await coordinator.is_board_complete(board_id)}


@router.get("/{board_id}/results", response_model=BoardResults)
async def board_results(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_results(board_id, identity.id)


# ═══════════════════════════════════════════════════════════════
#  POST /boards/{board_id}/sweep → reclaim abandoned sheets now
# ═══════════════════════════════════════════════════════════════

@router.post("/{board_id}/sweep")
async def sweep_board(
    board_id: int,
    identity: Identity = Depends(require_identity),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    rotations = await coordinator.sweep(board_id)
    return {"swept": len(rotations)}
