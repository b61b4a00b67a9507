"""Matches API: match records, lifecycle events and settlement trigger."""

from fastapi import APIRouter, status

from betline.models.match import (
    CreateEventRequest,
    CreateMatchRequest,
    DisplayStateRequest,
    MatchEventResponse,
    MatchResponse,
    SetRatiosRequest,
)
from betline.models.submitted import SettlementSummary
from betline.services import match_event_service, settlement_service

router = APIRouter(prefix="/api/matches", tags=["matches"])


@router.post("", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
async def create_match(body: CreateMatchRequest):
    match = await match_event_service.create_match(
        game_id=body.game_id,
        team_one_id=body.team_one_id,
        team_two_id=body.team_two_id,
        ratio_team_one=body.ratio_team_one,
        ratio_team_two=body.ratio_team_two,
        supposed_start_at=body.supposed_start_at,
        display_state=body.display_state,
    )
    return match_event_service.match_to_response(match)


@router.get("/{match_id}", response_model=MatchResponse)
async def get_match(match_id: str):
    match = await match_event_service.get_match(match_id)
    return match_event_service.match_to_response(match)


@router.get("/{match_id}/events", response_model=list[MatchEventResponse])
async def list_events(match_id: str):
    events = await match_event_service.list_events(match_id)
    return [match_event_service.event_to_response(e) for e in events]


@router.get("/{match_id}/events/current", response_model=MatchEventResponse)
async def get_current_event(match_id: str):
    await match_event_service.get_match(match_id)
    event = await match_event_service.current_event(match_id)
    return match_event_service.event_to_response(event)


@router.post("/{match_id}/events", status_code=status.HTTP_201_CREATED)
async def create_event(match_id: str, body: CreateEventRequest):
    """Append a lifecycle event. Ending a match settles its submitted bets."""
    event_id = await match_event_service.create_event(
        match_id,
        body.event_type,
        played_until=body.played_until,
        winner_id=body.winner_id,
    )
    return {"id": event_id}


@router.put("/{match_id}/ratios", response_model=MatchResponse)
async def set_ratios(match_id: str, body: SetRatiosRequest):
    match = await match_event_service.set_ratios(
        match_id, body.ratio_team_one, body.ratio_team_two,
    )
    return match_event_service.match_to_response(match)


@router.patch("/{match_id}/display-state", response_model=MatchResponse)
async def update_display_state(match_id: str, body: DisplayStateRequest):
    match = await match_event_service.update_display_state(match_id, body.display_state)
    return match_event_service.match_to_response(match)


@router.delete("/{match_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_match(match_id: str):
    await match_event_service.delete_match(match_id)


@router.post("/{match_id}/evaluate", response_model=SettlementSummary)
async def evaluate_match(match_id: str):
    """Re-run settlement for an ended match. Already settled bets are left alone."""
    await match_event_service.get_match(match_id)
    return await settlement_service.evaluate_bets(match_id)
