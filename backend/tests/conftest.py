"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, an in-memory database installed in
    place of the motor client, a frozen clock and seeding helpers for users
    and matches.
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_TESTS_DIR = _THIS_FILE.parent

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

import betline.database as _db
from betline import utils
from betline.config import settings
from fake_mongo import FakeClient, FakeDatabase

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
TEAM_A = "team-a"
TEAM_B = "team-b"


def run_sync(coro):
    """Drive a coroutine to completion outside the test's event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    frozen = FrozenClock(NOW)
    utils.set_clock(frozen)
    yield frozen
    utils.reset_clock()


@pytest.fixture
def fake_db(monkeypatch, clock):
    db = FakeDatabase()
    monkeypatch.setattr(_db, "db", db, raising=False)
    monkeypatch.setattr(_db, "client", FakeClient(db), raising=False)
    monkeypatch.setattr(settings, "MONGO_TRANSACTIONS_ENABLED", True)
    monkeypatch.setattr(settings, "TICKET_VALIDITY_DAYS", 10)
    run_sync(_db._ensure_indexes())
    return db


@pytest.fixture
def fake_client(fake_db):
    return _db.client


@pytest.fixture
def seed_user(fake_db):
    def _seed(balance: float = 100.0) -> str:
        return str(fake_db.users.seed({"balance": balance, "created_at": NOW}))
    return _seed


@pytest.fixture
def seed_match(fake_db):
    """Insert a match and its event history directly.

    ``events`` is a list of (event_type, payload) pairs appended after the
    implicit upcoming event, each one second apart.
    """
    def _seed(
        events: list[tuple[str, dict]] | None = None,
        ratio_team_one: float = 2.0,
        ratio_team_two: float = 1.5,
        supposed_start_at: datetime | None = None,
        team_one_id: str = TEAM_A,
        team_two_id: str = TEAM_B,
    ) -> str:
        match_id = str(fake_db.matches.seed({
            "game_id": "game-1",
            "team_one_id": team_one_id,
            "team_two_id": team_two_id,
            "ratio_team_one": ratio_team_one,
            "ratio_team_two": ratio_team_two,
            "display_state": "",
            "supposed_start_at": supposed_start_at or NOW - timedelta(minutes=30),
            "created_at": NOW - timedelta(hours=1),
            "updated_at": NOW - timedelta(hours=1),
        }))
        history = [("upcoming", {})] + list(events or [])
        base = NOW - timedelta(minutes=len(history))
        for offset, (event_type, payload) in enumerate(history):
            fake_db.match_events.seed({
                "match_id": match_id,
                "event_type": event_type,
                "created_at": base + timedelta(seconds=offset),
                **payload,
            })
        return match_id
    return _seed


@pytest.fixture
def live_match(seed_match):
    """A match that is live for another ``minutes`` minutes."""
    def _seed(minutes: int = 90, **kwargs) -> str:
        return seed_match(
            [("live", {"played_until": NOW + timedelta(minutes=minutes)})], **kwargs,
        )
    return _seed
