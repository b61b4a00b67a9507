"""
backend/betline/models/match.py

Purpose:
    Match records and the lifecycle event log. A match event is a tagged union
    discriminated on ``event_type``: Live/Overtime carry ``played_until``,
    Ended carries ``winner_id``, Upcoming/Cancelled carry nothing.

Dependencies:
    - pydantic
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class MatchEventType(str, Enum):
    upcoming = "upcoming"
    live = "live"
    overtime = "overtime"
    ended = "ended"          # Terminal, carries the winner
    cancelled = "cancelled"  # Terminal, submitted bets stay unresolved


TERMINAL_EVENT_TYPES = frozenset({MatchEventType.ended, MatchEventType.cancelled})
BETTABLE_EVENT_TYPES = frozenset({MatchEventType.live, MatchEventType.overtime})

# Lifecycle edges: current event type -> event types that may follow it.
ALLOWED_TRANSITIONS: dict[MatchEventType, frozenset[MatchEventType]] = {
    MatchEventType.upcoming: frozenset({
        MatchEventType.live, MatchEventType.ended, MatchEventType.cancelled,
    }),
    MatchEventType.live: frozenset({
        MatchEventType.overtime, MatchEventType.ended, MatchEventType.cancelled,
    }),
    MatchEventType.overtime: frozenset({
        MatchEventType.ended, MatchEventType.cancelled,
    }),
    MatchEventType.ended: frozenset(),
    MatchEventType.cancelled: frozenset(),
}


# ---------- Match ----------

class GameMatchInDB(BaseModel):
    """Match document as stored in MongoDB. Lifecycle lives in match_events."""
    game_id: str
    team_one_id: str
    team_two_id: str
    ratio_team_one: float                         # Decimal odds, adjusted externally
    ratio_team_two: float
    display_state: str = ""                       # Free text shown to users ("2:1, 63'")
    supposed_start_at: datetime
    created_at: datetime
    updated_at: datetime


# ---------- Match events ----------

class _MatchEventBase(BaseModel):
    id: Optional[str] = None
    match_id: str
    created_at: datetime


class UpcomingEvent(_MatchEventBase):
    event_type: Literal["upcoming"] = "upcoming"


class LiveEvent(_MatchEventBase):
    event_type: Literal["live"] = "live"
    played_until: datetime


class OvertimeEvent(_MatchEventBase):
    event_type: Literal["overtime"] = "overtime"
    played_until: datetime


class EndedEvent(_MatchEventBase):
    event_type: Literal["ended"] = "ended"
    winner_id: str


class CancelledEvent(_MatchEventBase):
    event_type: Literal["cancelled"] = "cancelled"


MatchEvent = Annotated[
    Union[UpcomingEvent, LiveEvent, OvertimeEvent, EndedEvent, CancelledEvent],
    Field(discriminator="event_type"),
]

_match_event_adapter = TypeAdapter(MatchEvent)


def event_from_doc(doc: dict) -> MatchEvent:
    """Build the typed event for a match_events document."""
    data = {k: v for k, v in doc.items() if k != "_id"}
    if doc.get("_id") is not None:
        data["id"] = str(doc["_id"])
    return _match_event_adapter.validate_python(data)


# ---------- Request / Response models ----------

class CreateMatchRequest(BaseModel):
    game_id: str
    team_one_id: str
    team_two_id: str
    ratio_team_one: float
    ratio_team_two: float
    supposed_start_at: datetime
    display_state: str = ""


class CreateEventRequest(BaseModel):
    """Append a lifecycle event. Payload requirements are checked by the service."""
    event_type: MatchEventType
    played_until: Optional[datetime] = None       # Live / Overtime
    winner_id: Optional[str] = None               # Ended


class SetRatiosRequest(BaseModel):
    ratio_team_one: float
    ratio_team_two: float


class DisplayStateRequest(BaseModel):
    display_state: str


class MatchResponse(BaseModel):
    id: str
    game_id: str
    team_one_id: str
    team_two_id: str
    ratio_team_one: float
    ratio_team_two: float
    display_state: str
    supposed_start_at: datetime
    created_at: datetime
    updated_at: datetime


class MatchEventResponse(BaseModel):
    id: str
    match_id: str
    event_type: MatchEventType
    created_at: datetime
    played_until: Optional[datetime] = None
    winner_id: Optional[str] = None
