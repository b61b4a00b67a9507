"""
backend/betline/services/settlement_service.py

Purpose:
    Turns an open ticket into a paid, immutable submitted ticket and later
    settles submitted bets once their match has ended. A submitted ticket wins
    when every bet on it won, loses as soon as one bet lost, and a winning
    ticket is paid ``winnable_price`` exactly once.

Dependencies:
    - betline.database
    - betline.services.ticket_service
    - betline.services.match_event_service
    - betline.services.ledger_service
"""

import logging
import math
from functools import reduce
from operator import mul
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

import betline.database as _db
from betline.errors import (
    ConcurrentModification,
    DataCorruption,
    EmptyTicket,
    InsufficientBalance,
    InvalidAmount,
    MatchNotBettable,
    NoMatchEvents,
    SubmittedTicketNotFound,
)
from betline.models.match import MatchEventType
from betline.models.submitted import SettlementSummary, SubmittedBetInDB, SubmittedTicketInDB
from betline.services import ledger_service, match_event_service, ticket_service
from betline.utils import utcnow

logger = logging.getLogger("betline.settlement_service")

REFERENCE_TYPE = "submitted_ticket"


def total_ratio_of(bets: list[dict]) -> float:
    """Product of all bet ratios. Rejects stored ratios that cannot be odds."""
    ratios = []
    for bet in bets:
        ratio = bet.get("bet_ratio")
        if (
            isinstance(ratio, bool)
            or not isinstance(ratio, (int, float))
            or not math.isfinite(ratio)
            or ratio <= 0
        ):
            logger.error("Corrupt bet ratio: bet=%s ratio=%r", bet.get("_id"), ratio)
            raise DataCorruption(f"Bet {bet.get('_id')} has an invalid ratio {ratio!r}.")
        ratios.append(float(ratio))
    return reduce(mul, ratios, 1.0)


# ---------- Submission ----------

async def submit(ticket_id: str, price_paid: float, *, session=None) -> str:
    """Pay for a ticket and archive it. Returns the submitted ticket id.

    Everything below commits or rolls back together: the submitted rows, the
    removal of the open ticket and its bets, and the balance debit.
    """
    async with _db.transaction(session) as session:
        ticket = await ticket_service.get_open_ticket(ticket_id, session=session)
        bets = await ticket_service.get_bets(ticket_id, session=session)
        if not bets:
            raise EmptyTicket(ticket_id)

        if not math.isfinite(price_paid) or price_paid < 0:
            raise InvalidAmount(price_paid)
        user_id = ticket["user_id"]
        if await ledger_service.get_balance(user_id, session=session) < price_paid:
            raise InsufficientBalance(user_id, price_paid)

        for bet in bets:
            if not await match_event_service.is_playable(bet["game_match_id"], session=session):
                raise MatchNotBettable(bet["game_match_id"])

        total_ratio = total_ratio_of(bets)
        winnable_price = total_ratio * price_paid
        now = utcnow()

        submitted = SubmittedTicketInDB(
            user_id=user_id,
            submitted_at=now,
            price_paid=price_paid,
            total_ratio=total_ratio,
            winnable_price=winnable_price,
        )
        result = await _db.db.submitted_tickets.insert_one(
            submitted.model_dump(), session=session,
        )
        submitted_ticket_id = str(result.inserted_id)

        await _db.db.submitted_bets.insert_many([
            SubmittedBetInDB(
                game_match_id=bet["game_match_id"],
                submitted_ticket_id=submitted_ticket_id,
                team_id=bet["team_id"],
                bet_ratio=bet["bet_ratio"],
                placed_at=bet["created_at"],
                submitted_at=now,
            ).model_dump()
            for bet in bets
        ], session=session)

        await _db.db.bets.delete_many({"ticket_id": ticket_id}, session=session)
        deleted = await _db.db.tickets.delete_one({"_id": ticket["_id"]}, session=session)
        if deleted.deleted_count != 1:
            raise ConcurrentModification("The ticket was submitted or removed concurrently.")

        await ledger_service.debit(
            user_id, price_paid,
            reference_type=REFERENCE_TYPE,
            reference_id=submitted_ticket_id,
            description=f"Ticket with {len(bets)} bet(s) at {total_ratio:.2f}",
            session=session,
        )

    logger.info(
        "Ticket submitted: user=%s ticket=%s submitted=%s bets=%d price=%.2f ratio=%.4f",
        user_id, ticket_id, submitted_ticket_id, len(bets), price_paid, total_ratio,
    )
    return submitted_ticket_id


# ---------- Settlement ----------

async def _settle_ticket(submitted_ticket_id: str, *, session=None) -> Optional[dict]:
    """Settle one submitted ticket if its outcome is decided. Returns it when settled now."""
    bets = await _db.db.submitted_bets.find(
        {"submitted_ticket_id": submitted_ticket_id}, {"won": 1}, session=session,
    ).to_list(length=None)
    if any(b.get("won") is False for b in bets):
        won = False
    elif bets and all(b.get("won") is True for b in bets):
        won = True
    else:
        return None

    # won: None in the filter makes the payout happen at most once
    ticket = await _db.db.submitted_tickets.find_one_and_update(
        {"_id": ObjectId(submitted_ticket_id), "won": None},
        {"$set": {"won": won, "resolved_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if ticket is None:
        return None

    if won:
        await ledger_service.credit(
            ticket["user_id"], ticket["winnable_price"],
            reference_type=REFERENCE_TYPE,
            reference_id=submitted_ticket_id,
            description=f"Ticket won at {ticket['total_ratio']:.2f}",
            session=session,
        )
    return ticket


async def evaluate_bets(match_id: str, *, session=None) -> dict:
    """Resolve every unsettled submitted bet on an ended match.

    A no-op unless the match's current event is Ended. Safe to call again:
    already settled bets and tickets are filtered out.
    """
    async with _db.transaction(session) as session:
        try:
            event = await match_event_service.current_event(match_id, session=session)
        except NoMatchEvents:
            event = None
        if event is None or MatchEventType(event.event_type) != MatchEventType.ended:
            return SettlementSummary(match_id=match_id, settled=False).model_dump()

        winner_id = event.winner_id
        won = await _db.db.submitted_bets.update_many(
            {"game_match_id": match_id, "won": None, "team_id": winner_id},
            {"$set": {"won": True}},
            session=session,
        )
        lost = await _db.db.submitted_bets.update_many(
            {"game_match_id": match_id, "won": None, "team_id": {"$ne": winner_id}},
            {"$set": {"won": False}},
            session=session,
        )

        touched = await _db.db.submitted_bets.find(
            {"game_match_id": match_id}, {"submitted_ticket_id": 1}, session=session,
        ).to_list(length=None)
        summary = SettlementSummary(
            match_id=match_id,
            settled=True,
            winner_id=winner_id,
            bets_won=won.modified_count,
            bets_lost=lost.modified_count,
        )
        for submitted_ticket_id in sorted({b["submitted_ticket_id"] for b in touched}):
            ticket = await _settle_ticket(submitted_ticket_id, session=session)
            if ticket is None:
                continue
            if ticket["won"]:
                summary.tickets_won += 1
                summary.paid_out += ticket["winnable_price"]
            else:
                summary.tickets_lost += 1

    logger.info(
        "Match settled: match=%s winner=%s bets_won=%d bets_lost=%d tickets_won=%d tickets_lost=%d",
        match_id, winner_id, summary.bets_won, summary.bets_lost,
        summary.tickets_won, summary.tickets_lost,
    )
    return summary.model_dump()


# ---------- Read access ----------

async def get_submitted_bets(submitted_ticket_id: str, *, session=None) -> list[dict]:
    ticket = await _db.db.submitted_tickets.find_one(
        {"_id": ObjectId(submitted_ticket_id)}, {"_id": 1}, session=session,
    )
    if not ticket:
        raise SubmittedTicketNotFound(submitted_ticket_id)
    return await _db.db.submitted_bets.find(
        {"submitted_ticket_id": submitted_ticket_id}, session=session,
    ).sort([("placed_at", -1), ("_id", -1)]).to_list(length=None)


async def get_submitted_tickets(user_id: str, *, session=None) -> list[dict]:
    """All submitted tickets of a user, newest first, each with its bets."""
    tickets = await _db.db.submitted_tickets.find(
        {"user_id": user_id}, session=session,
    ).sort([("submitted_at", -1), ("_id", -1)]).to_list(length=None)
    for ticket in tickets:
        ticket["bets"] = await _db.db.submitted_bets.find(
            {"submitted_ticket_id": str(ticket["_id"])}, session=session,
        ).sort([("placed_at", -1), ("_id", -1)]).to_list(length=None)
    return tickets


def submitted_bet_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "game_match_id": doc["game_match_id"],
        "submitted_ticket_id": doc["submitted_ticket_id"],
        "team_id": doc["team_id"],
        "bet_ratio": doc["bet_ratio"],
        "placed_at": doc["placed_at"],
        "submitted_at": doc["submitted_at"],
        "won": doc.get("won"),
    }


def submitted_ticket_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "user_id": doc["user_id"],
        "submitted_at": doc["submitted_at"],
        "price_paid": doc["price_paid"],
        "total_ratio": doc["total_ratio"],
        "winnable_price": doc["winnable_price"],
        "won": doc.get("won"),
        "resolved_at": doc.get("resolved_at"),
        "bets": [submitted_bet_to_response(b) for b in doc.get("bets", [])],
    }
