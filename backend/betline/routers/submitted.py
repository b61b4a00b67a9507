from fastapi import APIRouter

from betline.models.submitted import SubmittedBetResponse, SubmittedTicketResponse
from betline.services import settlement_service

router = APIRouter(prefix="/api", tags=["submitted-tickets"])


@router.get(
    "/users/{user_id}/submitted-tickets",
    response_model=list[SubmittedTicketResponse],
)
async def list_submitted_tickets(user_id: str):
    """Paid tickets of the user, newest first, with their bets."""
    tickets = await settlement_service.get_submitted_tickets(user_id)
    return [settlement_service.submitted_ticket_to_response(t) for t in tickets]


@router.get(
    "/submitted-tickets/{submitted_ticket_id}/bets",
    response_model=list[SubmittedBetResponse],
)
async def list_submitted_bets(submitted_ticket_id: str):
    bets = await settlement_service.get_submitted_bets(submitted_ticket_id)
    return [settlement_service.submitted_bet_to_response(b) for b in bets]
