"""
backend/betline/database.py

Purpose:
    MongoDB connection bootstrap, index management and transaction scope for
    the settlement core. Unique indexes carry the storage-level invariants:
    one open ticket per user, one event per type per match, one bet per match
    per ticket.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - betline.config
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ReadPreference, WriteConcern
from pymongo.errors import ConnectionFailure, OperationFailure
from pymongo.read_concern import ReadConcern

from betline.config import settings
from betline.errors import ConcurrentModification, ResourceUnavailable

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("betline.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=settings.MONGO_MAX_POOL_SIZE,
        minPoolSize=settings.MONGO_MIN_POOL_SIZE,
        waitQueueTimeoutMS=settings.MONGO_WAIT_QUEUE_TIMEOUT_MS,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info("Database initialized: %s", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()


@asynccontextmanager
async def transaction(
    session: Optional[AsyncIOMotorClientSession] = None,
) -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
    """Run the enclosed block as one multi-document transaction.

    Yields the session every collection call inside the block must pass on.
    Commits on normal exit, aborts on any exception. Driver failures are
    translated into the domain taxonomy; nothing is retried here.

    When ``session`` is given the block joins that caller's transaction and
    the caller stays responsible for commit/abort.
    """
    if session is not None:
        yield session
        return
    try:
        if not settings.MONGO_TRANSACTIONS_ENABLED:
            yield None
            return
        async with await client.start_session() as session:
            async with session.start_transaction(
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
                read_preference=ReadPreference.PRIMARY,
            ):
                yield session
    except ConnectionFailure as exc:
        # Covers pool wait-queue timeouts and server selection timeouts.
        logger.error("Database unavailable: %s", exc)
        raise ResourceUnavailable("Database temporarily unavailable.") from exc
    except OperationFailure as exc:
        if exc.has_error_label("TransientTransactionError"):
            logger.warning("Transaction aborted by a concurrent write: %s", exc)
            raise ConcurrentModification() from exc
        raise


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Users / ledger ----

    await db.ledger_transactions.create_index([("user_id", 1), ("created_at", -1)])
    await db.ledger_transactions.create_index([("reference_type", 1), ("reference_id", 1)])

    # ---- Matches ----

    await db.matches.create_index([("game_id", 1), ("supposed_start_at", -1)])

    # At most one event of a given type per match
    await db.match_events.create_index(
        [("match_id", 1), ("event_type", 1)],
        unique=True,
        name="match_events_type_dedup",
    )
    # Current-event lookup (latest created_at per match)
    await db.match_events.create_index([("match_id", 1), ("created_at", -1)])

    # ---- Tickets ----

    # One open ticket per user. Expired rows are deleted in the same
    # transaction that opens the next ticket, so every stored row is open.
    await db.tickets.create_index("user_id", unique=True, name="tickets_one_open_per_user")
    await db.tickets.create_index("valid_until")

    # ---- Bets ----

    await db.bets.create_index(
        [("ticket_id", 1), ("game_match_id", 1)],
        unique=True,
        name="bets_one_per_match_per_ticket",
    )
    await db.bets.create_index("game_match_id")

    # ---- Submitted tickets / bets ----

    await db.submitted_tickets.create_index([("user_id", 1), ("submitted_at", -1)])
    await db.submitted_tickets.create_index("won", sparse=True)

    await db.submitted_bets.create_index("submitted_ticket_id")
    await db.submitted_bets.create_index([("game_match_id", 1), ("won", 1)])
