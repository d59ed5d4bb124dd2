"""Admin API endpoints (token-protected): manual review and operations."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from depositflow.api.deps import get_deposit_service
from depositflow.api.routes.deposits import DepositInfo, deposit_info
from depositflow.config import get_settings
from depositflow.deposits.lifecycle import TransitionResult
from depositflow.ledger.models import InstructionStatus
from depositflow.services.deposit_service import DepositService, ReviewDecision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin_token(x_admin_token: str = Header(None)) -> str:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access outside production (dev mode).

    Returns:
        Actor name recorded on transitions
    """
    settings = get_settings()

    if not settings.admin_token:
        if settings.is_production:
            logger.error("ADMIN_TOKEN not set in production - admin API disabled")
            raise HTTPException(status_code=503, detail="Admin API not configured")
        return "admin"

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return "admin"


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    reason: str = Field(..., min_length=1, max_length=1000)


class ReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class TransitionResponse(BaseModel):
    changed: bool
    deposit: DepositInfo


class LedgerInstructionInfo(BaseModel):
    id: int
    deposit_id: int
    account_id: int
    kind: str
    amount: str
    currency: str
    status: str
    attempts: int
    last_error: Optional[str]
    created_at: datetime
    dispatched_at: Optional[datetime]


def transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(changed=result.changed, deposit=deposit_info(result.deposit))


@router.post("/deposits/{deposit_id}/review", response_model=TransitionResponse)
async def review_deposit(
    deposit_id: int,
    request: ReviewRequest,
    actor: str = Depends(require_admin_token),
    service: DepositService = Depends(get_deposit_service),
) -> TransitionResponse:
    """Approve, reject, hold or release a deposit."""
    result = await service.review(deposit_id, request.decision, request.reason, actor=actor)
    return transition_response(result)


@router.post("/deposits/{deposit_id}/complete", response_model=TransitionResponse)
async def complete_deposit(
    deposit_id: int,
    actor: str = Depends(require_admin_token),
    service: DepositService = Depends(get_deposit_service),
) -> TransitionResponse:
    """Credit a confirmed deposit. Repeating the call is harmless."""
    return transition_response(await service.complete(deposit_id, actor=actor))


@router.post("/deposits/{deposit_id}/reverse", response_model=TransitionResponse)
async def reverse_deposit(
    deposit_id: int,
    request: ReasonRequest,
    actor: str = Depends(require_admin_token),
    service: DepositService = Depends(get_deposit_service),
) -> TransitionResponse:
    """Reverse a completed deposit with a mirroring debit."""
    return transition_response(await service.reverse(deposit_id, request.reason, actor=actor))


@router.get("/deposits/stale", response_model=list[DepositInfo])
async def stale_deposits(
    hours: Optional[int] = Query(None, ge=1),
    limit: int = Query(100, ge=1, le=500),
    _: str = Depends(require_admin_token),
    service: DepositService = Depends(get_deposit_service),
) -> list[DepositInfo]:
    """Open deposits older than the stale threshold."""
    deposits = await service.stale_deposits(hours=hours, limit=limit)
    return [deposit_info(d) for d in deposits]


@router.get("/ledger-instructions", response_model=list[LedgerInstructionInfo])
async def ledger_instructions(
    status: Optional[InstructionStatus] = None,
    deposit_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    _: str = Depends(require_admin_token),
    service: DepositService = Depends(get_deposit_service),
) -> list[LedgerInstructionInfo]:
    """Credit/debit instructions queued for the core ledger."""
    instructions = await service.ledger_instructions(status=status, deposit_id=deposit_id, limit=limit)
    return [
        LedgerInstructionInfo(
            id=i.id,
            deposit_id=i.deposit_id,
            account_id=i.account_id,
            kind=i.kind,
            amount=str(i.amount),
            currency=i.currency,
            status=i.status,
            attempts=i.attempts,
            last_error=i.last_error,
            created_at=i.created_at,
            dispatched_at=i.dispatched_at,
        )
        for i in instructions
    ]
