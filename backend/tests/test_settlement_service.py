"""
backend/tests/test_settlement_service.py

Purpose:
    Ticket submission (payment and archiving) and match-driven settlement of
    submitted bets and tickets, including payout crediting and rollback.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from bson import ObjectId

from betline.errors import (
    DataCorruption,
    EmptyTicket,
    ErrorCategory,
    InsufficientBalance,
    InvalidAmount,
    MatchNotBettable,
    SubmittedTicketNotFound,
    TicketNotFound,
)
from betline.services import (
    bet_service,
    ledger_service,
    match_event_service,
    settlement_service,
    ticket_service,
)

from conftest import NOW, TEAM_A, TEAM_B


async def _ticket_with_bets(user_id: str, picks: list[tuple[str, str]]) -> str:
    obtained = await ticket_service.get_or_create_current_ticket(user_id)
    ticket_id = str(obtained.ticket["_id"])
    for match_id, team_id in picks:
        await bet_service.place(ticket_id, match_id, team_id)
    return ticket_id


# ---------- submit ----------

@pytest.mark.asyncio
async def test_submit_archives_ticket_and_debits_balance(fake_db, seed_user, live_match):
    user_id = seed_user(balance=100.0)
    first = live_match(ratio_team_one=1.5)
    second = live_match(ratio_team_two=2.0)
    ticket_id = await _ticket_with_bets(user_id, [(first, TEAM_A), (second, TEAM_B)])

    submitted_id = await settlement_service.submit(ticket_id, 10.0)

    assert await ledger_service.get_balance(user_id) == pytest.approx(90.0)
    assert fake_db.tickets.docs == []
    assert fake_db.bets.docs == []

    [submitted] = fake_db.submitted_tickets.docs
    assert str(submitted["_id"]) == submitted_id
    assert submitted["user_id"] == user_id
    assert submitted["price_paid"] == 10.0
    assert submitted["total_ratio"] == pytest.approx(3.0)
    assert submitted["winnable_price"] == pytest.approx(30.0)
    assert submitted["won"] is None
    assert submitted["submitted_at"] == NOW

    submitted_bets = fake_db.submitted_bets.docs
    assert len(submitted_bets) == 2
    assert {b["game_match_id"] for b in submitted_bets} == {first, second}
    assert all(b["submitted_ticket_id"] == submitted_id for b in submitted_bets)
    assert all(b["won"] is None for b in submitted_bets)

    [tx] = fake_db.ledger_transactions.docs
    assert tx["type"] == "TICKET_SUBMITTED"
    assert tx["amount"] == -10.0
    assert tx["reference_id"] == submitted_id


@pytest.mark.asyncio
async def test_submit_with_insufficient_balance_has_no_side_effects(fake_db, seed_user, live_match):
    user_id = seed_user(balance=5.0)
    ticket_id = await _ticket_with_bets(user_id, [(live_match(), TEAM_A)])

    with pytest.raises(InsufficientBalance) as excinfo:
        await settlement_service.submit(ticket_id, 10.0)

    assert excinfo.value.category == ErrorCategory.PRECONDITION_FAILED
    assert await ledger_service.get_balance(user_id) == 5.0
    assert len(fake_db.tickets.docs) == 1
    assert len(fake_db.bets.docs) == 1
    assert fake_db.submitted_tickets.docs == []


@pytest.mark.asyncio
async def test_submit_whole_balance(fake_db, seed_user, live_match):
    user_id = seed_user(balance=10.0)
    ticket_id = await _ticket_with_bets(user_id, [(live_match(), TEAM_A)])

    await settlement_service.submit(ticket_id, 10.0)

    assert await ledger_service.get_balance(user_id) == 0.0


@pytest.mark.asyncio
async def test_submit_empty_ticket(fake_db, seed_user):
    user_id = seed_user()
    ticket_id = await _ticket_with_bets(user_id, [])

    with pytest.raises(EmptyTicket):
        await settlement_service.submit(ticket_id, 1.0)


@pytest.mark.asyncio
async def test_submit_unknown_ticket(fake_db):
    with pytest.raises(TicketNotFound):
        await settlement_service.submit(str(ObjectId()), 1.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [-0.01, float("nan")])
async def test_submit_rejects_invalid_price(fake_db, seed_user, live_match, price):
    ticket_id = await _ticket_with_bets(seed_user(), [(live_match(), TEAM_A)])

    with pytest.raises(InvalidAmount):
        await settlement_service.submit(ticket_id, price)


@pytest.mark.asyncio
async def test_submit_requires_matches_still_playable(fake_db, seed_user, live_match):
    user_id = seed_user()
    closing = live_match(minutes=30)
    ticket_id = await _ticket_with_bets(user_id, [(closing, TEAM_A), (live_match(minutes=90), TEAM_A)])
    await match_event_service.create_event(
        closing, "overtime", played_until=NOW - timedelta(seconds=1),
    )

    with pytest.raises(MatchNotBettable):
        await settlement_service.submit(ticket_id, 1.0)

    assert len(fake_db.bets.docs) == 2
    assert await ledger_service.get_balance(user_id) == 100.0


@pytest.mark.asyncio
async def test_submit_rejects_corrupt_ratio(fake_db, seed_user, live_match):
    ticket_id = await _ticket_with_bets(seed_user(), [(live_match(), TEAM_A)])
    fake_db.bets.docs[0]["bet_ratio"] = "1.5"

    with pytest.raises(DataCorruption):
        await settlement_service.submit(ticket_id, 1.0)
    assert fake_db.submitted_tickets.docs == []


@pytest.mark.asyncio
async def test_failure_after_partial_writes_leaves_no_trace(fake_db, fake_client, seed_user, live_match, monkeypatch):
    user_id = seed_user()
    ticket_id = await _ticket_with_bets(user_id, [(live_match(), TEAM_A)])

    async def _debit_fails(*_args, **_kwargs):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(ledger_service, "debit", _debit_fails)

    with pytest.raises(RuntimeError):
        await settlement_service.submit(ticket_id, 5.0)

    assert fake_db.submitted_tickets.docs == []
    assert fake_db.submitted_bets.docs == []
    assert len(fake_db.tickets.docs) == 1
    assert len(fake_db.bets.docs) == 1
    assert await ledger_service.get_balance(user_id) == 100.0
    assert fake_client.aborted == 1


@pytest.mark.asyncio
async def test_next_ticket_after_submit_is_new(fake_db, seed_user, live_match):
    user_id = seed_user()
    ticket_id = await _ticket_with_bets(user_id, [(live_match(), TEAM_A)])
    await settlement_service.submit(ticket_id, 1.0)

    obtained = await ticket_service.get_or_create_current_ticket(user_id)

    assert obtained.status.value == "new"
    assert str(obtained.ticket["_id"]) != ticket_id


# ---------- evaluate_bets ----------

def _seed_submitted(fake_db, user_id: str, price: float, bets: list[tuple[str, str, float]]) -> str:
    total_ratio = 1.0
    for _, _, ratio in bets:
        total_ratio *= ratio
    ticket_id = str(fake_db.submitted_tickets.seed({
        "user_id": user_id,
        "submitted_at": NOW - timedelta(hours=1),
        "price_paid": price,
        "total_ratio": total_ratio,
        "winnable_price": price * total_ratio,
        "won": None,
        "resolved_at": None,
    }))
    for match_id, team_id, ratio in bets:
        fake_db.submitted_bets.seed({
            "game_match_id": match_id,
            "submitted_ticket_id": ticket_id,
            "team_id": team_id,
            "bet_ratio": ratio,
            "placed_at": NOW - timedelta(hours=2),
            "submitted_at": NOW - timedelta(hours=1),
            "won": None,
        })
    return ticket_id


def _bet_outcomes(fake_db, submitted_ticket_id: str) -> list:
    return [b["won"] for b in fake_db.submitted_bets.docs if b["submitted_ticket_id"] == submitted_ticket_id]


@pytest.mark.asyncio
async def test_match_end_settles_bets_per_team(fake_db, seed_user, live_match):
    match_id = live_match(ratio_team_one=1.5, ratio_team_two=2.0, team_one_id="7", team_two_id="8")
    backing_7 = _seed_submitted(fake_db, seed_user(), 10.0, [(match_id, "7", 1.5)])
    backing_8 = _seed_submitted(fake_db, seed_user(), 10.0, [(match_id, "8", 2.0)])

    await match_event_service.create_event(match_id, "ended", winner_id="7")

    assert _bet_outcomes(fake_db, backing_7) == [True]
    assert _bet_outcomes(fake_db, backing_8) == [False]


@pytest.mark.asyncio
async def test_winning_ticket_is_paid_once(fake_db, seed_user, live_match):
    user_id = seed_user(balance=0.0)
    match_id = live_match()
    submitted_id = _seed_submitted(fake_db, user_id, 10.0, [(match_id, TEAM_A, 1.5)])

    await match_event_service.create_event(match_id, "ended", winner_id=TEAM_A)
    summary = await settlement_service.evaluate_bets(match_id)

    ticket = next(t for t in fake_db.submitted_tickets.docs if str(t["_id"]) == submitted_id)
    assert ticket["won"] is True
    assert ticket["resolved_at"] == NOW
    assert await ledger_service.get_balance(user_id) == pytest.approx(15.0)
    # Re-running settlement finds nothing left to do
    assert summary["settled"] is True
    assert summary["bets_won"] == 0
    assert summary["tickets_won"] == 0
    assert [tx["type"] for tx in fake_db.ledger_transactions.docs] == ["TICKET_WON"]


@pytest.mark.asyncio
async def test_multi_match_ticket_waits_for_every_match(fake_db, seed_user, live_match):
    user_id = seed_user(balance=0.0)
    first = live_match()
    second = live_match()
    submitted_id = _seed_submitted(
        fake_db, user_id, 2.0, [(first, TEAM_A, 1.5), (second, TEAM_B, 2.0)],
    )

    summary = await settlement_service.evaluate_bets(first)
    assert summary["settled"] is False

    await match_event_service.create_event(first, "ended", winner_id=TEAM_A)
    assert fake_db.submitted_tickets.docs[0]["won"] is None
    assert await ledger_service.get_balance(user_id) == 0.0

    await match_event_service.create_event(second, "ended", winner_id=TEAM_B)
    assert fake_db.submitted_tickets.docs[0]["won"] is True
    assert _bet_outcomes(fake_db, submitted_id) == [True, True]
    assert await ledger_service.get_balance(user_id) == pytest.approx(6.0)


@pytest.mark.asyncio
async def test_one_lost_bet_loses_the_ticket_immediately(fake_db, seed_user, live_match):
    user_id = seed_user(balance=0.0)
    first = live_match()
    second = live_match()
    _seed_submitted(fake_db, user_id, 2.0, [(first, TEAM_A, 1.5), (second, TEAM_B, 2.0)])

    await match_event_service.create_event(first, "ended", winner_id=TEAM_B)

    ticket = fake_db.submitted_tickets.docs[0]
    assert ticket["won"] is False
    assert ticket["resolved_at"] == NOW

    await match_event_service.create_event(second, "ended", winner_id=TEAM_B)
    assert fake_db.submitted_tickets.docs[0]["won"] is False
    assert await ledger_service.get_balance(user_id) == 0.0
    assert fake_db.ledger_transactions.docs == []


@pytest.mark.asyncio
async def test_cancelled_match_leaves_bets_unresolved(fake_db, seed_user, live_match):
    match_id = live_match()
    submitted_id = _seed_submitted(fake_db, seed_user(), 5.0, [(match_id, TEAM_A, 1.5)])

    await match_event_service.create_event(match_id, "cancelled")
    summary = await settlement_service.evaluate_bets(match_id)

    assert summary["settled"] is False
    assert _bet_outcomes(fake_db, submitted_id) == [None]


@pytest.mark.asyncio
async def test_full_cycle_from_bet_to_payout(fake_db, seed_user, live_match):
    user_id = seed_user(balance=50.0)
    match_id = live_match(ratio_team_one=2.5)
    ticket_id = await _ticket_with_bets(user_id, [(match_id, TEAM_A)])
    submitted_id = await settlement_service.submit(ticket_id, 20.0)
    assert await ledger_service.get_balance(user_id) == pytest.approx(30.0)

    await match_event_service.create_event(match_id, "ended", winner_id=TEAM_A)

    assert await ledger_service.get_balance(user_id) == pytest.approx(80.0)
    [listed] = await settlement_service.get_submitted_tickets(user_id)
    assert str(listed["_id"]) == submitted_id
    assert listed["won"] is True
    assert [b["won"] for b in listed["bets"]] == [True]


# ---------- read access ----------

@pytest.mark.asyncio
async def test_submitted_tickets_newest_first(fake_db, seed_user, live_match, clock):
    user_id = seed_user()
    first = await settlement_service.submit(
        await _ticket_with_bets(user_id, [(live_match(), TEAM_A)]), 1.0,
    )
    clock.advance(minutes=1)
    second = await settlement_service.submit(
        await _ticket_with_bets(user_id, [(live_match(), TEAM_B)]), 1.0,
    )

    tickets = await settlement_service.get_submitted_tickets(user_id)
    assert [str(t["_id"]) for t in tickets] == [second, first]

    bets = await settlement_service.get_submitted_bets(first)
    assert len(bets) == 1
    with pytest.raises(SubmittedTicketNotFound):
        await settlement_service.get_submitted_bets(str(ObjectId()))
