"""Settlement approval API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from paysettle.core.database import get_db
from paysettle.core.exceptions import IllegalStateTransition, NotFoundError, PermissionDenied
from paysettle.models.settlement import Settlement
from paysettle.schemas.settlement import (
    SettlementApproveRequest,
    SettlementRejectRequest,
    SettlementResponse,
)
from paysettle.services.settlement_service import SettlementService

router = APIRouter()


@router.get(
    "/waiting-approval",
    response_model=list[SettlementResponse],
    summary="List settlements waiting for approval",
)
async def list_waiting_approval(db: Session = Depends(get_db)) -> list[Settlement]:
    """List settlements in WAITING_APPROVAL, oldest first."""
    return SettlementService(db).get_waiting_approval()


@router.post(
    "/{settlement_id}/request-approval",
    response_model=SettlementResponse,
    summary="Request approval",
    responses={
        404: {"description": "Settlement not found"},
        409: {"description": "Settlement is not PENDING"},
    },
)
async def request_approval(settlement_id: UUID, db: Session = Depends(get_db)) -> Settlement:
    """Move a PENDING settlement to WAITING_APPROVAL."""
    service = SettlementService(db)
    try:
        return service.request_approval(settlement_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None


@router.post(
    "/{settlement_id}/approve",
    response_model=SettlementResponse,
    summary="Approve settlement",
    responses={
        403: {"description": "User is not an admin"},
        404: {"description": "Settlement or user not found"},
        409: {"description": "Settlement is not WAITING_APPROVAL"},
    },
)
async def approve_settlement(
    settlement_id: UUID,
    data: SettlementApproveRequest,
    db: Session = Depends(get_db),
) -> Settlement:
    """Approve a settlement waiting for approval."""
    service = SettlementService(db)
    try:
        return service.approve_settlement(settlement_id, data.admin_user_id)
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e)) from None
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None


@router.post(
    "/{settlement_id}/reject",
    response_model=SettlementResponse,
    summary="Reject settlement",
    responses={
        403: {"description": "User is not an admin"},
        404: {"description": "Settlement or user not found"},
        409: {"description": "Settlement is not WAITING_APPROVAL"},
    },
)
async def reject_settlement(
    settlement_id: UUID,
    data: SettlementRejectRequest,
    db: Session = Depends(get_db),
) -> Settlement:
    """Reject a settlement waiting for approval."""
    service = SettlementService(db)
    try:
        return service.reject_settlement(settlement_id, data.admin_user_id, data.reason)
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e)) from None
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
