from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class TicketStatus(str, Enum):
    new = "new"                  # Inserted by this call
    still_valid = "still_valid"  # Existing open ticket returned as-is


class TicketInDB(BaseModel):
    """Open, mutable ticket. At most one row per user."""
    user_id: str
    created_at: datetime
    valid_until: Optional[datetime] = None        # Earliest played_until among its bets


class BetInDB(BaseModel):
    """One wager inside an open ticket."""
    game_match_id: str
    ticket_id: str
    team_id: str
    bet_ratio: float                              # Frozen at placement, later odds changes ignored
    created_at: datetime


class ObtainedTicket(BaseModel):
    """Result of get_or_create_current_ticket: the ticket document and how it was obtained."""
    ticket: dict
    status: TicketStatus


# ---------- Request / Response models ----------

class PlaceBetRequest(BaseModel):
    match_id: str
    team_id: str


class SubmitTicketRequest(BaseModel):
    price_paid: float


class BetResponse(BaseModel):
    id: str
    game_match_id: str
    ticket_id: str
    team_id: str
    bet_ratio: float
    created_at: datetime


class TicketResponse(BaseModel):
    id: str
    user_id: str
    created_at: datetime
    valid_until: Optional[datetime] = None


class TicketViewResponse(BaseModel):
    """Current ticket with its bets and a preview of the payout multiplier."""
    ticket: TicketResponse
    status: TicketStatus
    bets: List[BetResponse]
    total_ratio: Optional[float] = None           # None while the ticket is empty


class SubmitTicketResponse(BaseModel):
    submitted_ticket_id: str
