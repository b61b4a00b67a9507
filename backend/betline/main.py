"""
backend/betline/main.py

Purpose:
    FastAPI application bootstrap: logging, database lifecycle, middleware,
    router wiring and the mapping of domain errors to HTTP responses.

Dependencies:
    - betline.database
    - betline.errors
    - betline.routers
"""

import logging
from contextlib import asynccontextmanager

from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
)

from betline.config import settings
import betline.database as _db
from betline.database import close_db, connect_db
from betline.errors import BetlineError, ErrorCategory
from betline.middleware.logging import StructuredLoggingMiddleware, setup_logging
from betline.routers.ledger import router as ledger_router
from betline.routers.matches import router as matches_router
from betline.routers.submitted import router as submitted_router
from betline.routers.tickets import router as tickets_router

logger = logging.getLogger("betline")

CATEGORY_STATUS = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.PRECONDITION_FAILED: 412,
    ErrorCategory.RESOURCE_UNAVAILABLE: 503,
    ErrorCategory.INTERNAL_INCONSISTENCY: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    logger.info(
        "Settlement core started (transactions %s)",
        "enabled" if settings.MONGO_TRANSACTIONS_ENABLED else "DISABLED",
    )

    yield

    await close_db()


app = FastAPI(
    title="Betline",
    description="Bet and ticket settlement core",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
app.include_router(tickets_router)
app.include_router(matches_router)
app.include_router(submitted_router)
app.include_router(ledger_router)


@app.exception_handler(BetlineError)
async def domain_error_handler(request: Request, exc: BetlineError):
    status_code = CATEGORY_STATUS.get(exc.category, 500)
    if status_code >= 500:
        logger.error("%s on %s %s", exc, request.method, request.url.path)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code.value},
    )


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except PyMongoError:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
    }
