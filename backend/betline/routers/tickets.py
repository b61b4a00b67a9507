"""Open tickets API: current ticket, bet placement/discard and submission."""

from fastapi import APIRouter, status

from betline.models.ticket import (
    BetResponse,
    PlaceBetRequest,
    SubmitTicketRequest,
    SubmitTicketResponse,
    TicketViewResponse,
)
from betline.services import bet_service, settlement_service, ticket_service

router = APIRouter(prefix="/api", tags=["tickets"])


@router.get("/users/{user_id}/ticket", response_model=TicketViewResponse)
async def get_current_ticket(user_id: str):
    """Current open ticket of the user. Opens a new one when none is valid."""
    return await ticket_service.get_ticket_view(user_id)


@router.post(
    "/tickets/{ticket_id}/bets",
    response_model=BetResponse,
    status_code=status.HTTP_201_CREATED,
)
async def place_bet(ticket_id: str, body: PlaceBetRequest):
    bet = await bet_service.place(ticket_id, body.match_id, body.team_id)
    return ticket_service.bet_to_response(bet)


@router.delete("/tickets/{ticket_id}/bets/{bet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_bet(ticket_id: str, bet_id: str):
    await bet_service.discard(ticket_id, bet_id)


@router.post(
    "/tickets/{ticket_id}/submit",
    response_model=SubmitTicketResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_ticket(ticket_id: str, body: SubmitTicketRequest):
    """Pay for the ticket: archive it as a submitted ticket and debit the balance."""
    submitted_ticket_id = await settlement_service.submit(ticket_id, body.price_paid)
    return {"submitted_ticket_id": submitted_ticket_id}
