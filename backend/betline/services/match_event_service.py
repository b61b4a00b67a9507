"""
backend/betline/services/match_event_service.py

Purpose:
    Match records and their lifecycle event log. The latest event of a match is
    the single source of truth for whether it can be bet on and who won it.
    Appending an Ended event settles every submitted bet on the match in the
    same transaction.

Dependencies:
    - betline.database
    - betline.services.settlement_service (Ended side effect)
"""

import logging
import math
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import betline.database as _db
from betline.errors import (
    DuplicateEvent,
    InvalidMatch,
    InvalidTeam,
    InvalidTransition,
    InvalidWinner,
    MatchAlreadyTerminal,
    MatchNotDeletable,
    MatchNotFound,
    MissingPlayedUntil,
    NoMatchEvents,
)
from betline.models.match import (
    ALLOWED_TRANSITIONS,
    BETTABLE_EVENT_TYPES,
    TERMINAL_EVENT_TYPES,
    GameMatchInDB,
    MatchEvent,
    MatchEventType,
    event_from_doc,
)
from betline.utils import ensure_utc, utcnow

logger = logging.getLogger("betline.match_event_service")

# Newest first; equal created_at falls back to insertion order.
_LATEST_FIRST = [("created_at", -1), ("_id", -1)]


def _check_ratio(value: float, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidMatch(f"{label} must be a number.")
    if not math.isfinite(value) or value <= 0:
        raise InvalidMatch(f"{label} must be a positive number.")


# ---------- Match records ----------

async def create_match(
    game_id: str,
    team_one_id: str,
    team_two_id: str,
    ratio_team_one: float,
    ratio_team_two: float,
    supposed_start_at: datetime,
    display_state: str = "",
    *,
    session=None,
) -> dict:
    """Insert a match together with its opening Upcoming event."""
    if team_one_id == team_two_id:
        raise InvalidMatch("A match needs two different teams.")
    _check_ratio(ratio_team_one, "ratio_team_one")
    _check_ratio(ratio_team_two, "ratio_team_two")

    async with _db.transaction(session) as session:
        now = utcnow()
        doc = GameMatchInDB(
            game_id=game_id,
            team_one_id=team_one_id,
            team_two_id=team_two_id,
            ratio_team_one=ratio_team_one,
            ratio_team_two=ratio_team_two,
            display_state=display_state,
            supposed_start_at=ensure_utc(supposed_start_at),
            created_at=now,
            updated_at=now,
        ).model_dump()
        result = await _db.db.matches.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        await _db.db.match_events.insert_one({
            "match_id": str(result.inserted_id),
            "event_type": MatchEventType.upcoming.value,
            "created_at": now,
        }, session=session)

    logger.info(
        "Match created: match=%s game=%s teams=%s/%s",
        doc["_id"], game_id, team_one_id, team_two_id,
    )
    return doc


async def get_match(match_id: str, *, session=None) -> dict:
    match = await _db.db.matches.find_one({"_id": ObjectId(match_id)}, session=session)
    if not match:
        raise MatchNotFound(match_id)
    return match


def team_ratio(match: dict, team_id: str) -> float:
    """Current odds for ``team_id`` in ``match``."""
    if team_id == match["team_one_id"]:
        return match["ratio_team_one"]
    if team_id == match["team_two_id"]:
        return match["ratio_team_two"]
    raise InvalidTeam(str(match["_id"]), team_id)


async def set_ratios(
    match_id: str, ratio_team_one: float, ratio_team_two: float, *, session=None,
) -> dict:
    """Odds adjustment. Bets already placed keep their frozen ratio."""
    _check_ratio(ratio_team_one, "ratio_team_one")
    _check_ratio(ratio_team_two, "ratio_team_two")
    match = await _db.db.matches.find_one_and_update(
        {"_id": ObjectId(match_id)},
        {"$set": {
            "ratio_team_one": float(ratio_team_one),
            "ratio_team_two": float(ratio_team_two),
            "updated_at": utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not match:
        raise MatchNotFound(match_id)
    logger.info(
        "Match ratios updated: match=%s ratios=%.2f/%.2f",
        match_id, ratio_team_one, ratio_team_two,
    )
    return match


async def update_display_state(match_id: str, display_state: str, *, session=None) -> dict:
    match = await _db.db.matches.find_one_and_update(
        {"_id": ObjectId(match_id)},
        {"$set": {"display_state": display_state, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not match:
        raise MatchNotFound(match_id)
    return match


async def delete_match(match_id: str, *, session=None) -> None:
    """Delete a match and its events. Only allowed before it starts and before any bet on it."""
    async with _db.transaction(session) as session:
        match = await get_match(match_id, session=session)
        if ensure_utc(match["supposed_start_at"]) <= utcnow():
            raise MatchNotDeletable(match_id, "it has already started")
        if await _db.db.bets.count_documents({"game_match_id": match_id}, session=session):
            raise MatchNotDeletable(match_id, "bets were placed on it")
        if await _db.db.submitted_bets.count_documents({"game_match_id": match_id}, session=session):
            raise MatchNotDeletable(match_id, "submitted bets reference it")

        await _db.db.match_events.delete_many({"match_id": match_id}, session=session)
        await _db.db.matches.delete_one({"_id": match["_id"]}, session=session)

    logger.info("Match deleted: match=%s", match_id)


# ---------- Event log ----------

async def list_events(match_id: str, *, session=None) -> list[MatchEvent]:
    """Full lifecycle history of a match, oldest first."""
    await get_match(match_id, session=session)
    docs = await _db.db.match_events.find(
        {"match_id": match_id}, session=session,
    ).sort([("created_at", 1), ("_id", 1)]).to_list(length=None)
    return [event_from_doc(d) for d in docs]


async def current_event(match_id: str, *, session=None) -> MatchEvent:
    """The event with the latest created_at for the match."""
    doc = await _db.db.match_events.find_one(
        {"match_id": match_id}, sort=_LATEST_FIRST, session=session,
    )
    if doc is None:
        raise NoMatchEvents(match_id)
    return event_from_doc(doc)


def bettable_until(event: MatchEvent) -> Optional[datetime]:
    """played_until of a Live/Overtime event whose window is still open, else None."""
    if MatchEventType(event.event_type) not in BETTABLE_EVENT_TYPES:
        return None
    played_until = ensure_utc(event.played_until)
    if played_until <= utcnow():
        return None
    return played_until


async def playable_until(match_id: str, *, session=None) -> Optional[datetime]:
    try:
        event = await current_event(match_id, session=session)
    except NoMatchEvents:
        return None
    return bettable_until(event)


async def is_playable(match_id: str, *, session=None) -> bool:
    """True only while the match is Live/Overtime and played_until is in the future."""
    return await playable_until(match_id, session=session) is not None


async def create_event(
    match_id: str,
    event_type: MatchEventType | str,
    *,
    played_until: Optional[datetime] = None,
    winner_id: Optional[str] = None,
    session=None,
) -> str:
    """Append a lifecycle event to a match. Returns the new event id.

    Validation order: match exists, match not terminal, no event of that type
    yet, transition allowed, payload present. Ending a match settles its
    submitted bets before the transaction commits.
    """
    event_type = MatchEventType(event_type)

    async with _db.transaction(session) as session:
        match = await get_match(match_id, session=session)

        try:
            current = await current_event(match_id, session=session)
            current_type = MatchEventType(current.event_type)
        except NoMatchEvents:
            current_type = None

        if current_type in TERMINAL_EVENT_TYPES:
            raise MatchAlreadyTerminal(match_id, current_type.value)

        if await _db.db.match_events.count_documents(
            {"match_id": match_id, "event_type": event_type.value}, session=session,
        ):
            raise DuplicateEvent(match_id, event_type.value)

        if current_type is None:
            # A match without history only accepts its opening event.
            if event_type != MatchEventType.upcoming:
                raise InvalidTransition(match_id, "none", event_type.value)
        elif event_type not in ALLOWED_TRANSITIONS[current_type]:
            raise InvalidTransition(match_id, current_type.value, event_type.value)

        doc = {
            "match_id": match_id,
            "event_type": event_type.value,
            "created_at": utcnow(),
        }
        if event_type in BETTABLE_EVENT_TYPES:
            if played_until is None:
                raise MissingPlayedUntil(event_type.value)
            doc["played_until"] = ensure_utc(played_until)
        elif event_type == MatchEventType.ended:
            if winner_id not in (match["team_one_id"], match["team_two_id"]):
                raise InvalidWinner(match_id, str(winner_id))
            doc["winner_id"] = winner_id

        try:
            result = await _db.db.match_events.insert_one(doc, session=session)
        except DuplicateKeyError:
            raise DuplicateEvent(match_id, event_type.value) from None

        logger.info(
            "Match event: match=%s type=%s previous=%s",
            match_id, event_type.value, current_type.value if current_type else None,
        )

        if event_type == MatchEventType.ended:
            from betline.services.settlement_service import evaluate_bets
            await evaluate_bets(match_id, session=session)

    return str(result.inserted_id)


# ---------- Response helpers ----------

def match_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "game_id": doc["game_id"],
        "team_one_id": doc["team_one_id"],
        "team_two_id": doc["team_two_id"],
        "ratio_team_one": doc["ratio_team_one"],
        "ratio_team_two": doc["ratio_team_two"],
        "display_state": doc.get("display_state", ""),
        "supposed_start_at": doc["supposed_start_at"],
        "created_at": doc["created_at"],
        "updated_at": doc["updated_at"],
    }


def event_to_response(event: MatchEvent) -> dict:
    return {
        "id": event.id,
        "match_id": event.match_id,
        "event_type": event.event_type,
        "created_at": event.created_at,
        "played_until": getattr(event, "played_until", None),
        "winner_id": getattr(event, "winner_id", None),
    }
