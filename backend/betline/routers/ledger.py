"""Ledger API: balance, deposits and transaction history."""

from fastapi import APIRouter, Query, status

from betline.models.ledger import BalanceResponse, DepositRequest, TransactionResponse
from betline.services import ledger_service

router = APIRouter(prefix="/api/users", tags=["ledger"])


@router.get("/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(user_id: str):
    balance = await ledger_service.get_balance(user_id)
    return {"user_id": user_id, "balance": balance}


@router.post(
    "/{user_id}/deposits",
    response_model=BalanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def deposit(user_id: str, body: DepositRequest):
    user = await ledger_service.deposit(user_id, body.amount)
    return {"user_id": user_id, "balance": user["balance"]}


@router.get("/{user_id}/transactions", response_model=list[TransactionResponse])
async def get_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
):
    """Ledger transactions of the user, newest first."""
    docs = await ledger_service.get_transactions(user_id, limit=limit, skip=skip)
    return [ledger_service.transaction_to_response(d) for d in docs]
