"""
backend/betline/services/bet_service.py

Purpose:
    Bets on an open ticket. Placement checks that the match is live, freezes
    the team's current ratio and shrinks the ticket's validity; discard removes
    a bet and recomputes it from the bets left behind.

Dependencies:
    - betline.database
    - betline.services.ticket_service
    - betline.services.match_event_service
"""

import logging

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import betline.database as _db
from betline.errors import BetNotInTicket, DuplicateBetOnMatch, MatchNotBettable
from betline.models.ticket import BetInDB
from betline.services import match_event_service, ticket_service
from betline.utils import utcnow

logger = logging.getLogger("betline.bet_service")


async def place(ticket_id: str, match_id: str, team_id: str, *, session=None) -> dict:
    """Put a bet on ``team_id`` in ``match_id`` into the ticket.

    The team's current ratio is frozen into the bet. The ticket's validity
    shrinks to the match's played_until when that is earlier.
    """
    async with _db.transaction(session) as session:
        await ticket_service.get_open_ticket(ticket_id, session=session)
        match = await match_event_service.get_match(match_id, session=session)

        played_until = await match_event_service.playable_until(match_id, session=session)
        if played_until is None:
            raise MatchNotBettable(match_id)

        existing = await _db.db.bets.find_one(
            {"ticket_id": ticket_id, "game_match_id": match_id}, {"_id": 1}, session=session,
        )
        if existing:
            raise DuplicateBetOnMatch(ticket_id, match_id)

        bet = BetInDB(
            game_match_id=match_id,
            ticket_id=ticket_id,
            team_id=team_id,
            bet_ratio=match_event_service.team_ratio(match, team_id),
            created_at=utcnow(),
        ).model_dump()
        try:
            result = await _db.db.bets.insert_one(bet, session=session)
        except DuplicateKeyError:
            raise DuplicateBetOnMatch(ticket_id, match_id) from None
        bet["_id"] = result.inserted_id

        await ticket_service.recompute_validity_on_add(ticket_id, played_until, session=session)

    logger.info(
        "Bet placed: ticket=%s match=%s team=%s ratio=%.2f",
        ticket_id, match_id, team_id, bet["bet_ratio"],
    )
    return bet


async def discard(ticket_id: str, bet_id: str, *, session=None) -> None:
    """Remove a bet from an open ticket and recompute the ticket's validity.

    An expired ticket counts as missing, so discarding never revives it.
    """
    async with _db.transaction(session) as session:
        await ticket_service.get_open_ticket(ticket_id, session=session)
        result = await _db.db.bets.delete_one(
            {"_id": ObjectId(bet_id), "ticket_id": ticket_id}, session=session,
        )
        if result.deleted_count == 0:
            raise BetNotInTicket(ticket_id, bet_id)

        remaining = await ticket_service.get_bets(ticket_id, session=session)
        await ticket_service.recompute_validity_on_remove(ticket_id, remaining, session=session)

    logger.info("Bet discarded: ticket=%s bet=%s", ticket_id, bet_id)
