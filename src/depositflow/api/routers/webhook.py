"""Confirmation webhook for the chain watcher.

The watcher posts batches of confirmation counts. Updates are applied one by
one and each gets its own outcome; a stale, unknown or conflicting update
never fails the batch.
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field, model_validator

from depositflow.api.deps import get_deposit_service
from depositflow.config import get_settings
from depositflow.services.deposit_service import ConfirmationUpdate, DepositService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


class ConfirmationItem(BaseModel):
    """One confirmation report, by deposit id or by destination address."""

    deposit_id: Optional[int] = Field(None, gt=0)
    address: Optional[str] = Field(None, max_length=255)
    currency: Optional[str] = Field(None, max_length=20)
    network: Optional[str] = Field(None, max_length=40)
    tx_reference: Optional[str] = Field(None, max_length=255)
    confirmations: int = Field(..., ge=0, le=1_000_000)

    @model_validator(mode="after")
    def check_target(self) -> "ConfirmationItem":
        if self.deposit_id is None and not (self.address and self.currency and self.network):
            raise ValueError("Provide deposit_id or address, currency and network")
        return self


class ConfirmationBatch(BaseModel):
    updates: list[ConfirmationItem] = Field(..., min_length=1, max_length=500)


class ConfirmationOutcomeInfo(BaseModel):
    deposit_id: Optional[int]
    outcome: str
    status: Optional[str] = None
    confirmations: Optional[int] = None
    message: Optional[str] = None


class ConfirmationBatchResponse(BaseModel):
    processed: int
    results: list[ConfirmationOutcomeInfo]


def verify_webhook_signature(
    payload: bytes,
    signature: str,
    secret: str,
    algorithm: str = "sha256",
) -> bool:
    """Verify webhook signature using HMAC.

    Args:
        payload: Raw request body
        signature: Hex signature from header, optionally prefixed "sha256="
        secret: Webhook secret key
        algorithm: Hash algorithm (sha256, sha512)

    Returns:
        True if signature is valid
    """
    # Remove any prefix like "sha256="
    if "=" in signature:
        signature = signature.split("=", 1)[1]

    mac = hmac.new(secret.encode(), payload, getattr(hashlib, algorithm))
    return hmac.compare_digest(mac.hexdigest(), signature.strip().lower())


@router.post("/confirmations", response_model=ConfirmationBatchResponse)
async def handle_confirmations(
    request: Request,
    batch: ConfirmationBatch,
    x_webhook_signature: Optional[str] = Header(None),
    service: DepositService = Depends(get_deposit_service),
) -> ConfirmationBatchResponse:
    """Apply a batch of confirmation counts reported by the chain watcher."""
    settings = get_settings()

    secret = settings.confirmation_webhook_secret
    if secret:
        body = await request.body()
        if not x_webhook_signature or not verify_webhook_signature(body, x_webhook_signature, secret):
            logger.warning(f"Rejected confirmation batch with invalid signature ({len(batch.updates)} updates)")
            raise HTTPException(status_code=401, detail="Invalid signature")

    results = await service.record_confirmations(
        [
            ConfirmationUpdate(
                confirmations=item.confirmations,
                deposit_id=item.deposit_id,
                address=item.address,
                currency=item.currency,
                network=item.network,
                tx_reference=item.tx_reference,
            )
            for item in batch.updates
        ]
    )

    return ConfirmationBatchResponse(
        processed=len(results),
        results=[
            ConfirmationOutcomeInfo(
                deposit_id=r.deposit_id,
                outcome=r.outcome.value,
                status=r.status,
                confirmations=r.confirmations,
                message=r.message,
            )
            for r in results
        ],
    )
