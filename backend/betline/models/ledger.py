"""Ledger models: user balance and the immutable transaction log."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    TICKET_SUBMITTED = "TICKET_SUBMITTED"
    TICKET_WON = "TICKET_WON"


class LedgerTransactionInDB(BaseModel):
    """Immutable audit trail for every balance movement."""
    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    type: TransactionType
    amount: float  # positive = credit, negative = debit
    balance_after: float
    reference_type: Optional[str] = None  # "submitted_ticket" | None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime


class DepositRequest(BaseModel):
    amount: float


class BalanceResponse(BaseModel):
    user_id: str
    balance: float


class TransactionResponse(BaseModel):
    id: str
    type: str
    amount: float
    balance_after: float
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime
