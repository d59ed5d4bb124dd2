"""Deposit submission, history and quote endpoints."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from depositflow.api.deps import get_deposit_service
from depositflow.deposits.errors import InvalidAmount
from depositflow.deposits.submission import SubmissionRequest
from depositflow.deposits.wallets import ResolveMode
from depositflow.ledger.models import Deposit, DepositPurpose, DepositStatus, DepositTransition
from depositflow.services.deposit_service import DepositService

router = APIRouter()

MAX_AMOUNT = Decimal("1000000000")  # 1 billion


def parse_amount(v: str) -> Decimal:
    """Parse a positive decimal amount given as a string."""
    try:
        amount = Decimal(str(v).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount format: {v}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount format: {v}")
    if amount > MAX_AMOUNT:
        raise ValueError("Amount exceeds maximum limit")
    return amount


class DepositSubmission(BaseModel):
    """Deposit submission from the deposit form."""

    user_id: str = Field(..., min_length=1, max_length=64)
    account_id: int = Field(..., gt=0)
    currency: str = Field(..., min_length=2, max_length=20, description="e.g. USDT")
    network: str = Field(..., min_length=2, max_length=40, description="e.g. TRC20")
    gross_amount: str = Field(..., description="Amount sent, as a decimal string")
    purpose: DepositPurpose = DepositPurpose.GENERAL
    tx_reference: Optional[str] = Field(None, max_length=255)
    proof_pointer: Optional[str] = Field(None, max_length=500, description="Stored proof upload")
    wallet_assignment_id: Optional[int] = Field(None, gt=0)

    @field_validator("currency", "network")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.upper().strip()

    @field_validator("gross_amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return str(parse_amount(v))

    @field_validator("tx_reference", "proof_pointer")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_request(self) -> SubmissionRequest:
        return SubmissionRequest(
            user_id=self.user_id,
            account_id=self.account_id,
            currency=self.currency,
            network=self.network,
            gross_amount=Decimal(self.gross_amount),
            purpose=self.purpose,
            tx_reference=self.tx_reference,
            proof_pointer=self.proof_pointer,
            wallet_assignment_id=self.wallet_assignment_id,
        )


class SubmissionResponse(BaseModel):
    deposit_id: int
    status: str
    purpose: str
    currency: str
    network: str
    destination_address: str
    destination_memo: Optional[str]
    gross_amount: str
    fee_amount: str
    net_amount: str
    fee_percent: str
    required_confirmations: int
    created_at: datetime


class TransitionInfo(BaseModel):
    from_status: Optional[str]
    to_status: str
    confirmations: int
    reason: Optional[str]
    actor: str
    created_at: datetime


class DepositInfo(BaseModel):
    id: int
    user_id: str
    account_id: int
    currency: str
    network: str
    status: str
    purpose: str
    gross_amount: str
    fee_amount: str
    net_amount: str
    fee_percent: str
    confirmations: int
    required_confirmations: int
    destination_address: str
    destination_memo: Optional[str]
    tx_reference: Optional[str]
    proof_pointer: Optional[str]
    status_reason: Optional[str]
    created_at: datetime
    confirmed_at: Optional[datetime]
    completed_at: Optional[datetime]
    resolved_at: Optional[datetime]
    transitions: list[TransitionInfo] = []


def deposit_info(deposit: Deposit, transitions: Optional[list[DepositTransition]] = None) -> DepositInfo:
    return DepositInfo(
        id=deposit.id,
        user_id=deposit.user_id,
        account_id=deposit.account_id,
        currency=deposit.asset.currency,
        network=deposit.asset.network,
        status=deposit.status,
        purpose=deposit.purpose,
        gross_amount=str(deposit.gross_amount),
        fee_amount=str(deposit.fee_amount),
        net_amount=str(deposit.net_amount),
        fee_percent=str(deposit.fee_percent),
        confirmations=deposit.confirmations,
        required_confirmations=deposit.required_confirmations,
        destination_address=deposit.destination_address,
        destination_memo=deposit.destination_memo,
        tx_reference=deposit.tx_reference,
        proof_pointer=deposit.proof_pointer,
        status_reason=deposit.status_reason,
        created_at=deposit.created_at,
        confirmed_at=deposit.confirmed_at,
        completed_at=deposit.completed_at,
        resolved_at=deposit.resolved_at,
        transitions=[
            TransitionInfo(
                from_status=t.from_status,
                to_status=t.to_status,
                confirmations=t.confirmations,
                reason=t.reason,
                actor=t.actor,
                created_at=t.created_at,
            )
            for t in transitions or []
        ],
    )


class FeeQuoteResponse(BaseModel):
    currency: str
    network: str
    gross_amount: str
    fee_percent: str
    fee_amount: str
    net_amount: str
    min_deposit: str


class ActivationQuoteResponse(BaseModel):
    account_id: int
    currency: str
    network: str
    balance: str
    min_deposit: str
    remaining: str
    fee_percent: str
    required_gross: str
    already_funded: bool


class AssetInfo(BaseModel):
    currency: str
    network: str
    display_name: Optional[str]
    min_deposit: str
    fee_percent: str
    required_confirmations: int


class DepositAddressResponse(BaseModel):
    wallet_assignment_id: int
    address: str
    memo: Optional[str]
    currency: str
    network: str
    mode: str
    required_confirmations: int
    min_deposit: str
    fee_percent: str


@router.post("/deposits", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_deposit(
    payload: DepositSubmission,
    service: DepositService = Depends(get_deposit_service),
) -> SubmissionResponse:
    """Submit a deposit with a transaction reference or payment proof."""
    result = await service.submit(payload.to_request())
    return SubmissionResponse(
        deposit_id=result.deposit_id,
        status=result.status,
        purpose=result.purpose,
        currency=result.currency,
        network=result.network,
        destination_address=result.destination_address,
        destination_memo=result.destination_memo,
        gross_amount=str(result.gross_amount),
        fee_amount=str(result.fee_amount),
        net_amount=str(result.net_amount),
        fee_percent=str(result.fee_percent),
        required_confirmations=result.required_confirmations,
        created_at=result.created_at,
    )


@router.get("/deposits/quote", response_model=FeeQuoteResponse)
async def quote_deposit(
    currency: str,
    network: str,
    gross_amount: str,
    service: DepositService = Depends(get_deposit_service),
) -> FeeQuoteResponse:
    """Preview the fee and net amount for a deposit."""
    try:
        amount = parse_amount(gross_amount)
    except ValueError as e:
        raise InvalidAmount(str(e))
    quote = await service.quote(currency, network, amount)
    return FeeQuoteResponse(
        currency=quote.currency,
        network=quote.network,
        gross_amount=str(quote.gross_amount),
        fee_percent=str(quote.fee_percent),
        fee_amount=str(quote.fee_amount),
        net_amount=str(quote.net_amount),
        min_deposit=str(quote.min_deposit),
    )


@router.get("/deposits/{deposit_id}", response_model=DepositInfo)
async def get_deposit(
    deposit_id: int,
    service: DepositService = Depends(get_deposit_service),
) -> DepositInfo:
    """Get a deposit with its status history."""
    deposit, transitions = await service.get_deposit(deposit_id)
    return deposit_info(deposit, transitions)


@router.get("/deposits", response_model=list[DepositInfo])
async def list_deposits(
    user_id: str,
    status_filter: Optional[DepositStatus] = Query(None, alias="status"),
    currency: Optional[str] = None,
    purpose: Optional[DepositPurpose] = None,
    sort_order: Literal["asc", "desc"] = "desc",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: DepositService = Depends(get_deposit_service),
) -> list[DepositInfo]:
    """Deposit history for a user, newest first by default."""
    deposits = await service.list_deposits(
        user_id,
        status=status_filter.value if status_filter else None,
        currency=currency,
        purpose=purpose.value if purpose else None,
        ascending=sort_order == "asc",
        limit=limit,
        offset=offset,
    )
    return [deposit_info(d) for d in deposits]


@router.get("/deposit-address", response_model=DepositAddressResponse)
async def get_deposit_address(
    user_id: str,
    currency: str,
    network: str,
    mode: ResolveMode = ResolveMode.PERSONAL,
    service: DepositService = Depends(get_deposit_service),
) -> DepositAddressResponse:
    """Wallet address to display on the deposit form."""
    address = await service.deposit_address(user_id, currency, network, mode)
    return DepositAddressResponse(
        wallet_assignment_id=address.wallet_assignment_id,
        address=address.address,
        memo=address.memo,
        currency=address.currency,
        network=address.network,
        mode=address.mode,
        required_confirmations=address.required_confirmations,
        min_deposit=str(address.min_deposit),
        fee_percent=str(address.fee_percent),
    )


@router.get("/accounts/{account_id}/activation-quote", response_model=ActivationQuoteResponse)
async def activation_quote(
    account_id: int,
    user_id: str,
    currency: str,
    network: str,
    service: DepositService = Depends(get_deposit_service),
) -> ActivationQuoteResponse:
    """Gross amount that activates the account on the chosen asset."""
    quote = await service.activation_quote(user_id, account_id, currency, network)
    return ActivationQuoteResponse(
        account_id=quote.account_id,
        currency=quote.currency,
        network=quote.network,
        balance=str(quote.balance),
        min_deposit=str(quote.min_deposit),
        remaining=str(quote.remaining),
        fee_percent=str(quote.fee_percent),
        required_gross=str(quote.required_gross),
        already_funded=quote.already_funded,
    )


@router.get("/assets", response_model=list[AssetInfo])
async def list_assets(
    currency: Optional[str] = None,
    service: DepositService = Depends(get_deposit_service),
) -> list[AssetInfo]:
    """Supported currency/network pairs and their deposit rules."""
    assets = await service.list_assets(currency)
    return [
        AssetInfo(
            currency=a.currency,
            network=a.network,
            display_name=a.display_name,
            min_deposit=str(a.min_deposit),
            fee_percent=str(a.fee_percent),
            required_confirmations=a.required_confirmations,
        )
        for a in assets
    ]
