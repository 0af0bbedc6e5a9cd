"""Refund API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from paysettle.core.database import get_db
from paysettle.core.exceptions import IllegalStateTransition, NotFoundError
from paysettle.models.payment import Payment
from paysettle.schemas.payment import PartialRefundRequest, PaymentResponse
from paysettle.services.refund_service import RefundService

router = APIRouter()


@router.post(
    "/full/{payment_id}",
    response_model=PaymentResponse,
    summary="Full refund",
    responses={
        400: {"description": "Settlement already confirmed"},
        404: {"description": "Payment or order not found"},
        409: {"description": "Payment is not CAPTURED"},
    },
)
async def full_refund(payment_id: UUID, db: Session = Depends(get_db)) -> Payment:
    """Refund a captured payment in full and cancel its settlement."""
    service = RefundService(db)
    try:
        return service.process_full_refund(payment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


@router.post(
    "/partial/{payment_id}",
    response_model=PaymentResponse,
    summary="Partial refund",
    responses={
        400: {"description": "Refund amount out of range"},
        404: {"description": "Payment or order not found"},
        409: {"description": "Payment is not CAPTURED"},
        422: {"description": "Validation error"},
    },
)
async def partial_refund(
    payment_id: UUID,
    data: PartialRefundRequest,
    db: Session = Depends(get_db),
) -> Payment:
    """Refund part of a captured payment; returns the refund record."""
    service = RefundService(db)
    try:
        return service.process_partial_refund(payment_id, data.refund_amount)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


@router.post(
    "/failed/{payment_id}",
    response_model=PaymentResponse,
    summary="Cancel an uncaptured payment",
    responses={
        404: {"description": "Payment or order not found"},
        409: {"description": "Payment is not AUTHORIZED or FAILED"},
    },
)
async def failed_payment_refund(payment_id: UUID, db: Session = Depends(get_db)) -> Payment:
    """Cancel an authorized or failed payment that was never captured."""
    service = RefundService(db)
    try:
        return service.process_failed_payment_refund(payment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IllegalStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
