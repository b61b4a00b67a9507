"""
backend/betline/services/ticket_service.py

Purpose:
    The user's single open ticket: lazy creation, expiry cleanup and
    recomputation of ``valid_until`` as bets come and go. A ticket is valid
    until the earliest closing time among the matches it bets on (the live
    window of a running match, the last window of a finished one); an empty
    ticket lives for TICKET_VALIDITY_DAYS.

Dependencies:
    - betline.database
    - betline.services.match_event_service
"""

import logging
from datetime import datetime, timedelta
from functools import reduce
from operator import mul
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from betline.config import settings
import betline.database as _db
from betline.errors import MultipleOpenTickets, NoMatchEvents, TicketConflict, TicketNotFound
from betline.models.match import BETTABLE_EVENT_TYPES, TERMINAL_EVENT_TYPES, MatchEventType
from betline.models.ticket import ObtainedTicket, TicketInDB, TicketStatus
from betline.services import match_event_service
from betline.utils import ensure_utc, utcnow

logger = logging.getLogger("betline.ticket_service")


def _default_valid_until() -> datetime:
    return utcnow() + timedelta(days=settings.TICKET_VALIDITY_DAYS)


def is_expired(ticket: dict) -> bool:
    valid_until = ticket.get("valid_until")
    return valid_until is not None and ensure_utc(valid_until) <= utcnow()


async def get_or_create_current_ticket(user_id: str, *, session=None) -> ObtainedTicket:
    """Return the user's open ticket, creating one if none is open.

    Expired tickets are deleted together with their bets first, so the unique
    index on user_id only ever sees open tickets.
    """
    async with _db.transaction(session) as session:
        now = utcnow()
        expired = await _db.db.tickets.find(
            {"user_id": user_id, "valid_until": {"$lte": now}},
            {"_id": 1},
            session=session,
        ).to_list(length=None)
        if expired:
            expired_ids = [t["_id"] for t in expired]
            await _db.db.bets.delete_many(
                {"ticket_id": {"$in": [str(tid) for tid in expired_ids]}}, session=session,
            )
            await _db.db.tickets.delete_many({"_id": {"$in": expired_ids}}, session=session)
            logger.info("Expired tickets removed: user=%s count=%d", user_id, len(expired_ids))

        remaining = await _db.db.tickets.find(
            {"user_id": user_id}, session=session,
        ).to_list(length=None)
        if len(remaining) > 1:
            logger.critical(
                "Invariant violated, multiple open tickets: user=%s count=%d",
                user_id, len(remaining),
            )
            raise MultipleOpenTickets(user_id, len(remaining))
        if remaining:
            return ObtainedTicket(ticket=remaining[0], status=TicketStatus.still_valid)

        ticket = TicketInDB(
            user_id=user_id, created_at=now, valid_until=_default_valid_until(),
        ).model_dump()
        try:
            result = await _db.db.tickets.insert_one(ticket, session=session)
        except DuplicateKeyError:
            # Another request opened a ticket for this user in between
            raise TicketConflict(user_id) from None
        ticket["_id"] = result.inserted_id

    logger.info("Ticket created: user=%s ticket=%s", user_id, ticket["_id"])
    return ObtainedTicket(ticket=ticket, status=TicketStatus.new)


async def get_ticket(ticket_id: str, *, session=None) -> dict:
    ticket = await _db.db.tickets.find_one({"_id": ObjectId(ticket_id)}, session=session)
    if not ticket:
        raise TicketNotFound(ticket_id)
    return ticket


async def get_open_ticket(ticket_id: str, *, session=None) -> dict:
    """Like get_ticket, but an expired ticket counts as missing."""
    ticket = await get_ticket(ticket_id, session=session)
    if is_expired(ticket):
        raise TicketNotFound(ticket_id)
    return ticket


async def get_bets(ticket_id: str, *, session=None) -> list[dict]:
    """Bets of a ticket, newest first."""
    return await _db.db.bets.find(
        {"ticket_id": ticket_id}, session=session,
    ).sort([("created_at", -1), ("_id", -1)]).to_list(length=None)


async def recompute_validity_on_add(
    ticket_id: str, candidate_until: datetime, *, session=None,
) -> datetime:
    """Shrink valid_until to ``candidate_until`` if that is earlier. Never extends it."""
    candidate_until = ensure_utc(candidate_until)
    async with _db.transaction(session) as session:
        ticket = await get_ticket(ticket_id, session=session)
        current = ticket.get("valid_until")
        if current is not None and ensure_utc(current) < candidate_until:
            return ensure_utc(current)
        await _db.db.tickets.update_one(
            {"_id": ticket["_id"]},
            {"$set": {"valid_until": candidate_until}},
            session=session,
        )
    return candidate_until


async def _closing_time(match_id: str, *, session=None) -> Optional[datetime]:
    """When a bet on ``match_id`` stops being valid, or None while the match has not started.

    Live/Overtime: the window's played_until. Ended/Cancelled: the last window
    the match had, or the terminal event's created_at if it never went live.
    """
    try:
        event = await match_event_service.current_event(match_id, session=session)
    except NoMatchEvents:
        return None
    event_type = MatchEventType(event.event_type)
    if event_type in BETTABLE_EVENT_TYPES:
        return ensure_utc(event.played_until)
    if event_type not in TERMINAL_EVENT_TYPES:
        return None

    windows = [
        ensure_utc(e.played_until)
        for e in await match_event_service.list_events(match_id, session=session)
        if MatchEventType(e.event_type) in BETTABLE_EVENT_TYPES
    ]
    return windows[-1] if windows else ensure_utc(event.created_at)


async def recompute_validity_on_remove(
    ticket_id: str, remaining_bets: list[dict], *, session=None,
) -> Optional[datetime]:
    """Reset valid_until to the earliest closing time among the remaining bets.

    A bet on a finished match closes at that match's last live window, so the
    ticket expires instead of being extended. Only an empty ticket gets the
    default lifetime again.
    """
    async with _db.transaction(session) as session:
        closings = []
        for bet in remaining_bets:
            closing = await _closing_time(bet["game_match_id"], session=session)
            if closing is not None:
                closings.append(closing)

        if closings:
            valid_until = min(closings)
        elif remaining_bets:
            # Only not-yet-started matches left; keep the current validity
            valid_until = (await get_ticket(ticket_id, session=session)).get("valid_until")
        else:
            valid_until = _default_valid_until()
        result = await _db.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {"$set": {"valid_until": valid_until}},
            session=session,
        )
        if result.matched_count == 0:
            raise TicketNotFound(ticket_id)
    return valid_until


def total_ratio_preview(bets: list[dict]) -> float | None:
    if not bets:
        return None
    return reduce(mul, (b["bet_ratio"] for b in bets), 1.0)


async def get_ticket_view(user_id: str, *, session=None) -> dict:
    """Current ticket of a user with its bets and the payout multiplier so far."""
    async with _db.transaction(session) as session:
        obtained = await get_or_create_current_ticket(user_id, session=session)
        ticket_id = str(obtained.ticket["_id"])
        bets = await get_bets(ticket_id, session=session)
    return {
        "ticket": ticket_to_response(obtained.ticket),
        "status": obtained.status.value,
        "bets": [bet_to_response(b) for b in bets],
        "total_ratio": total_ratio_preview(bets),
    }


def ticket_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "user_id": doc["user_id"],
        "created_at": doc["created_at"],
        "valid_until": doc.get("valid_until"),
    }


def bet_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "game_match_id": doc["game_match_id"],
        "ticket_id": doc["ticket_id"],
        "team_id": doc["team_id"],
        "bet_ratio": doc["bet_ratio"],
        "created_at": doc["created_at"],
    }
