"""Host payout endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from rentcore.api.deps import DbSession, Now, get_current_admin, get_current_host
from rentcore.models.payment import HostPayout
from rentcore.models.user import BankAccount, User
from rentcore.schemas.payout import BankAccountCreate, BankAccountResponse, PayoutResponse
from rentcore.services.payout_service import payout_service

router = APIRouter()


@router.get("/", response_model=list[PayoutResponse])
async def list_payouts(
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
) -> list[HostPayout]:
    """Payouts of the current host, or all payouts for an admin."""
    host_id = None if current_user.is_admin else current_user.id
    return await payout_service.list_payouts(db, host_id)


@router.get("/bank-accounts", response_model=list[BankAccountResponse])
async def list_bank_accounts(
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
) -> list[BankAccount]:
    """Bank accounts of the current host, numbers masked."""
    return await payout_service.list_bank_accounts(db, current_user.id)


@router.post(
    "/bank-accounts", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED
)
async def add_bank_account(
    data: BankAccountCreate,
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
) -> BankAccount:
    """Register a payout bank account."""
    return await payout_service.add_bank_account(
        db,
        current_user,
        data.bank_name,
        data.account_holder_name,
        data.account_number,
        data.is_default,
    )


@router.post("/run", response_model=list[PayoutResponse])
async def run_payouts(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> list[HostPayout]:
    """Batch released escrow into payouts now (admin)."""
    return await payout_service.run_payouts(db, now)
