"""
backend/betline/services/ledger_service.py

Purpose:
    User balance ledger. Debits and credits are single guarded
    find_one_and_update calls, and every balance movement writes an immutable
    ledger_transactions row.

Dependencies:
    - betline.database
"""

import logging
import math
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

import betline.database as _db
from betline.errors import InsufficientBalance, InvalidAmount, UserNotFound
from betline.models.ledger import LedgerTransactionInDB, TransactionType
from betline.utils import utcnow

logger = logging.getLogger("betline.ledger_service")


async def get_balance(user_id: str, *, session=None) -> float:
    user = await _db.db.users.find_one(
        {"_id": ObjectId(user_id)}, {"balance": 1}, session=session,
    )
    if not user:
        raise UserNotFound(user_id)
    return float(user.get("balance", 0.0))


async def debit(
    user_id: str, amount: float,
    reference_type: Optional[str] = None, reference_id: Optional[str] = None,
    description: str = "", *, session=None,
) -> dict:
    """Atomically take ``amount`` from the user's balance. Returns the updated user.

    Uses find_one_and_update with a balance >= amount guard to prevent overdraft.
    """
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmount(amount)

    async with _db.transaction(session) as session:
        user = await _db.db.users.find_one_and_update(
            {"_id": ObjectId(user_id), "balance": {"$gte": amount}},
            {"$inc": {"balance": -amount}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not user:
            exists = await _db.db.users.count_documents(
                {"_id": ObjectId(user_id)}, session=session,
            )
            if not exists:
                raise UserNotFound(user_id)
            raise InsufficientBalance(user_id, amount)

        await _log_transaction(
            user_id=user_id,
            tx_type=TransactionType.TICKET_SUBMITTED,
            amount=-amount,
            balance_after=user["balance"],
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            session=session,
        )
    return user


async def credit(
    user_id: str, amount: float,
    reference_type: Optional[str] = None, reference_id: Optional[str] = None,
    description: str = "", *,
    tx_type: TransactionType = TransactionType.TICKET_WON,
    session=None,
) -> dict:
    """Add ``amount`` to the user's balance (settlement payouts)."""
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmount(amount)

    async with _db.transaction(session) as session:
        user = await _db.db.users.find_one_and_update(
            {"_id": ObjectId(user_id)},
            {"$inc": {"balance": amount}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not user:
            logger.error("User not found for credit: %s", user_id)
            raise UserNotFound(user_id)

        await _log_transaction(
            user_id=user_id,
            tx_type=tx_type,
            amount=amount,
            balance_after=user["balance"],
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            session=session,
        )
    return user


async def deposit(user_id: str, amount: float, *, session=None) -> dict:
    """Top up a user's balance. Only strictly positive amounts are accepted."""
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(amount)
    user = await credit(
        user_id, amount,
        description=f"Deposit of {amount:.2f}",
        tx_type=TransactionType.DEPOSIT,
        session=session,
    )
    logger.info("Deposit: user=%s amount=%.2f balance=%.2f", user_id, amount, user["balance"])
    return user


async def get_transactions(
    user_id: str, limit: int = 50, skip: int = 0, *, session=None,
) -> list[dict]:
    """Get transaction history for a user, newest first."""
    return await _db.db.ledger_transactions.find(
        {"user_id": user_id}, session=session,
    ).sort([("created_at", -1), ("_id", -1)]).skip(skip).limit(limit).to_list(length=limit)


def transaction_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "type": doc["type"],
        "amount": doc["amount"],
        "balance_after": doc["balance_after"],
        "reference_type": doc.get("reference_type"),
        "reference_id": doc.get("reference_id"),
        "description": doc.get("description", ""),
        "created_at": doc["created_at"],
    }


async def _log_transaction(
    user_id: str, tx_type: TransactionType, amount: float, balance_after: float,
    description: str, reference_type: Optional[str] = None,
    reference_id: Optional[str] = None, *, session=None,
) -> None:
    """Insert an immutable ledger transaction record."""
    tx = LedgerTransactionInDB(
        user_id=user_id,
        type=tx_type,
        amount=amount,
        balance_after=balance_after,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_at=utcnow(),
    )
    await _db.db.ledger_transactions.insert_one(tx.model_dump(), session=session)
