"""
backend/betline/errors.py

Purpose:
    Domain error taxonomy for the settlement core. Every failure carries a
    stable ErrorCode and belongs to one ErrorCategory, which the HTTP layer maps
    to a status code. Callers may retry RESOURCE_UNAVAILABLE with backoff; the
    other categories do not change outcome on retry.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_INPUT = "INVALID_INPUT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    INTERNAL_INCONSISTENCY = "INTERNAL_INCONSISTENCY"


class ErrorCode(str, Enum):
    MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
    NO_MATCH_EVENTS = "NO_MATCH_EVENTS"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    BET_NOT_IN_TICKET = "BET_NOT_IN_TICKET"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    SUBMITTED_TICKET_NOT_FOUND = "SUBMITTED_TICKET_NOT_FOUND"

    DUPLICATE_EVENT = "DUPLICATE_EVENT"
    DUPLICATE_BET_ON_MATCH = "DUPLICATE_BET_ON_MATCH"
    TICKET_CONFLICT = "TICKET_CONFLICT"
    MATCH_ALREADY_TERMINAL = "MATCH_ALREADY_TERMINAL"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_WINNER = "INVALID_WINNER"
    INVALID_TEAM = "INVALID_TEAM"
    INVALID_MATCH = "INVALID_MATCH"
    MISSING_PLAYED_UNTIL = "MISSING_PLAYED_UNTIL"
    DATA_CORRUPTION = "DATA_CORRUPTION"

    MATCH_NOT_BETTABLE = "MATCH_NOT_BETTABLE"
    EMPTY_TICKET = "EMPTY_TICKET"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    MATCH_NOT_DELETABLE = "MATCH_NOT_DELETABLE"

    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"

    MULTIPLE_OPEN_TICKETS = "MULTIPLE_OPEN_TICKETS"
    INTERNAL_INCONSISTENCY = "INTERNAL_INCONSISTENCY"


class BetlineError(Exception):
    """Base domain error with code and user-safe message."""

    category: ErrorCategory = ErrorCategory.INTERNAL_INCONSISTENCY
    code: ErrorCode = ErrorCode.INTERNAL_INCONSISTENCY

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


# ---------- Category bases ----------

class NotFound(BetlineError):
    category = ErrorCategory.NOT_FOUND


class Conflict(BetlineError):
    category = ErrorCategory.CONFLICT


class InvalidInput(BetlineError):
    category = ErrorCategory.INVALID_INPUT


class PreconditionFailed(BetlineError):
    category = ErrorCategory.PRECONDITION_FAILED


class ResourceUnavailable(BetlineError):
    category = ErrorCategory.RESOURCE_UNAVAILABLE
    code = ErrorCode.RESOURCE_UNAVAILABLE


class InternalInconsistency(BetlineError):
    category = ErrorCategory.INTERNAL_INCONSISTENCY
    code = ErrorCode.INTERNAL_INCONSISTENCY


# ---------- Not found ----------

class MatchNotFound(NotFound):
    code = ErrorCode.MATCH_NOT_FOUND

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} not found.")
        self.match_id = match_id


class NoMatchEvents(NotFound):
    code = ErrorCode.NO_MATCH_EVENTS

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} has no events.")
        self.match_id = match_id


class TicketNotFound(NotFound):
    code = ErrorCode.TICKET_NOT_FOUND

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket {ticket_id} not found.")
        self.ticket_id = ticket_id


class BetNotInTicket(NotFound):
    code = ErrorCode.BET_NOT_IN_TICKET

    def __init__(self, ticket_id: str, bet_id: str) -> None:
        super().__init__("The bet does not belong to the ticket.")
        self.ticket_id = ticket_id
        self.bet_id = bet_id


class UserNotFound(NotFound):
    code = ErrorCode.USER_NOT_FOUND

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} not found.")
        self.user_id = user_id


class SubmittedTicketNotFound(NotFound):
    code = ErrorCode.SUBMITTED_TICKET_NOT_FOUND

    def __init__(self, submitted_ticket_id: str) -> None:
        super().__init__(f"Submitted ticket {submitted_ticket_id} not found.")
        self.submitted_ticket_id = submitted_ticket_id


# ---------- Conflict ----------

class DuplicateEvent(Conflict):
    code = ErrorCode.DUPLICATE_EVENT

    def __init__(self, match_id: str, event_type: str) -> None:
        super().__init__(f"Match {match_id} already has a {event_type} event.")
        self.match_id = match_id
        self.event_type = event_type


class DuplicateBetOnMatch(Conflict):
    code = ErrorCode.DUPLICATE_BET_ON_MATCH

    def __init__(self, ticket_id: str, match_id: str) -> None:
        super().__init__("Cannot put more bets on the same match.")
        self.ticket_id = ticket_id
        self.match_id = match_id


class TicketConflict(Conflict):
    code = ErrorCode.TICKET_CONFLICT

    def __init__(self, user_id: str) -> None:
        super().__init__("Another request opened a ticket for this user.")
        self.user_id = user_id


class MatchAlreadyTerminal(Conflict):
    code = ErrorCode.MATCH_ALREADY_TERMINAL

    def __init__(self, match_id: str, event_type: str) -> None:
        super().__init__(f"Match {match_id} is already {event_type}.")
        self.match_id = match_id
        self.event_type = event_type


class InvalidTransition(Conflict):
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, match_id: str, current: str, requested: str) -> None:
        super().__init__(f"Match {match_id} cannot go from {current} to {requested}.")
        self.match_id = match_id
        self.current = current
        self.requested = requested


class ConcurrentModification(Conflict):
    code = ErrorCode.CONCURRENT_MODIFICATION

    def __init__(self, message: str = "The record was modified by a concurrent request.") -> None:
        super().__init__(message)


# ---------- Invalid input ----------

class InvalidAmount(InvalidInput):
    code = ErrorCode.INVALID_AMOUNT

    def __init__(self, amount: float) -> None:
        super().__init__(f"Invalid amount of currency: {amount}.")
        self.amount = amount


class InvalidWinner(InvalidInput):
    code = ErrorCode.INVALID_WINNER

    def __init__(self, match_id: str, winner_id: str) -> None:
        super().__init__(f"Team {winner_id} does not play in match {match_id}.")
        self.match_id = match_id
        self.winner_id = winner_id


class InvalidTeam(InvalidInput):
    code = ErrorCode.INVALID_TEAM

    def __init__(self, match_id: str, team_id: str) -> None:
        super().__init__(f"Team {team_id} does not play in match {match_id}.")
        self.match_id = match_id
        self.team_id = team_id


class InvalidMatch(InvalidInput):
    code = ErrorCode.INVALID_MATCH


class MissingPlayedUntil(InvalidInput):
    code = ErrorCode.MISSING_PLAYED_UNTIL

    def __init__(self, event_type: str) -> None:
        super().__init__(f"A {event_type} event requires played_until.")
        self.event_type = event_type


class DataCorruption(InvalidInput):
    code = ErrorCode.DATA_CORRUPTION


# ---------- Precondition failed ----------

class MatchNotBettable(PreconditionFailed):
    code = ErrorCode.MATCH_NOT_BETTABLE

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} is not currently played.")
        self.match_id = match_id


class EmptyTicket(PreconditionFailed):
    code = ErrorCode.EMPTY_TICKET

    def __init__(self, ticket_id: str) -> None:
        super().__init__("Cannot submit an empty ticket.")
        self.ticket_id = ticket_id


class InsufficientBalance(PreconditionFailed):
    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, user_id: str, required: float) -> None:
        super().__init__("You do not have enough balance to do that.")
        self.user_id = user_id
        self.required = required


class MatchNotDeletable(PreconditionFailed):
    code = ErrorCode.MATCH_NOT_DELETABLE

    def __init__(self, match_id: str, reason: str) -> None:
        super().__init__(f"Match {match_id} cannot be deleted: {reason}.")
        self.match_id = match_id


# ---------- Internal ----------

class MultipleOpenTickets(InternalInconsistency):
    code = ErrorCode.MULTIPLE_OPEN_TICKETS

    def __init__(self, user_id: str, count: int) -> None:
        super().__init__(
            "More than one ticket found open! Please, contact site administrator."
        )
        self.user_id = user_id
        self.count = count
