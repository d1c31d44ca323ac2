"""Dispute endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from rentcore.api.deps import DbSession, Now, get_current_admin, get_current_user
from rentcore.models.dispute import Dispute, DisputeEvidence, DisputeNote
from rentcore.models.user import User
from rentcore.schemas.dispute import (
    DisputeCloseRequest,
    DisputeCreate,
    DisputeDetailResponse,
    DisputeEvidenceCreate,
    DisputeEvidenceResponse,
    DisputeNoteCreate,
    DisputeNoteResponse,
    DisputeResolveRequest,
    DisputeResponse,
    DisputeReviewRequest,
)
from rentcore.services.dispute_service import dispute_service

router = APIRouter()


@router.post("/", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(
    data: DisputeCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> Dispute:
    """Open a dispute on a booking and freeze its escrow."""
    return await dispute_service.open(
        db, data.booking_id, current_user, data.reason, data.description, now
    )


@router.get("/{dispute_id}", response_model=DisputeDetailResponse)
async def get_dispute(
    dispute_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
) -> DisputeDetailResponse:
    """Get a dispute with its notes and evidence."""
    dispute, _ = await dispute_service.get(db, dispute_id, current_user)
    response = DisputeDetailResponse.model_validate(dispute)
    response.notes = [
        DisputeNoteResponse.model_validate(n) for n in await dispute_service.get_notes(db, dispute.id)
    ]
    response.evidence = [
        DisputeEvidenceResponse.model_validate(e)
        for e in await dispute_service.get_evidence(db, dispute.id)
    ]
    return response


@router.post(
    "/{dispute_id}/notes", response_model=DisputeNoteResponse, status_code=status.HTTP_201_CREATED
)
async def add_note(
    dispute_id: UUID,
    data: DisputeNoteCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> DisputeNote:
    """Add a message to the dispute thread."""
    return await dispute_service.add_note(db, dispute_id, current_user, data.message, now)


@router.post(
    "/{dispute_id}/evidence",
    response_model=DisputeEvidenceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_evidence(
    dispute_id: UUID,
    data: DisputeEvidenceCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> DisputeEvidence:
    """Attach evidence by URL."""
    return await dispute_service.add_evidence(
        db, dispute_id, current_user, data.url, data.evidence_type, now, data.description
    )


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(
    dispute_id: UUID,
    data: DisputeReviewRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
) -> Dispute:
    """Take a dispute under review (admin)."""
    return await dispute_service.start_review(db, dispute_id, current_user, data.priority)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: UUID,
    data: DisputeResolveRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> Dispute:
    """Resolve a dispute by splitting the escrow (admin)."""
    return await dispute_service.resolve(
        db, dispute_id, current_user, data.resolution, data.host_share_ratio, now
    )


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(
    dispute_id: UUID,
    data: DisputeCloseRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> Dispute:
    """Close a dispute without a split and release the freeze."""
    return await dispute_service.close(db, dispute_id, current_user, now, data.note)
