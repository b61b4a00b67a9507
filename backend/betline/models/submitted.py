"""Submitted (paid, immutable) tickets and bets, plus the settlement summary."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class SubmittedTicketInDB(BaseModel):
    """Paid ticket. Never deleted; only ``won``/``resolved_at`` change after insert."""
    user_id: str
    submitted_at: datetime
    price_paid: float
    total_ratio: float                            # Product of all bet ratios
    winnable_price: float                         # price_paid * total_ratio
    won: Optional[bool] = None                    # None until every bet is settled or one lost
    resolved_at: Optional[datetime] = None


class SubmittedBetInDB(BaseModel):
    game_match_id: str
    submitted_ticket_id: str
    team_id: str
    bet_ratio: float
    placed_at: datetime                           # Original bet creation time
    submitted_at: datetime
    won: Optional[bool] = None                    # None until the match ends


class SubmittedBetResponse(BaseModel):
    id: str
    game_match_id: str
    submitted_ticket_id: str
    team_id: str
    bet_ratio: float
    placed_at: datetime
    submitted_at: datetime
    won: Optional[bool] = None


class SubmittedTicketResponse(BaseModel):
    id: str
    user_id: str
    submitted_at: datetime
    price_paid: float
    total_ratio: float
    winnable_price: float
    won: Optional[bool] = None
    resolved_at: Optional[datetime] = None
    bets: List[SubmittedBetResponse] = []


class SettlementSummary(BaseModel):
    """Outcome of one evaluate_bets run for a match."""
    match_id: str
    settled: bool                                 # False when the match has not ended
    winner_id: Optional[str] = None
    bets_won: int = 0
    bets_lost: int = 0
    tickets_won: int = 0
    tickets_lost: int = 0
    paid_out: float = 0.0
