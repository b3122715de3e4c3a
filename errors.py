from __future__ import annotations
from typing import Optional


class GameError(Exception):
    """Base class for every failure the session engine surfaces."""


class InsufficientFunds(GameError):
    def __init__(self, balance: int, stake_cost: int):
        super().__init__(f"Insufficient balance: have {balance}, need {stake_cost} to play.")
        self.balance = balance
        self.stake_cost = stake_cost


class LedgerUnreachable(GameError):
    def __init__(self, operation: str, detail: Optional[str] = None):
        msg = f"Ledger unreachable during {operation}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.operation = operation
        self.detail = detail


class AlreadyHasBet(GameError):
    """The ledger still holds an unresolved bet for this identity."""


class EvaluatorUnavailable(GameError):
    """Raised inside EvaluationClient only; the client turns it into a fallback verdict."""

    def __init__(self, kind: str, detail: str):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class InvalidStateTransition(GameError):
    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while session is {state}")
        self.operation = operation
        self.state = state


class CannotClear(GameError):
    """Reconciliation could not release a stale bet; the player should try again."""

    def __init__(self, detail: str = "Ledger still reports a pending bet. Please try again."):
        super().__init__(detail)


class AnswerSubmissionFailed(GameError):
    """A confirmed bet's answer was rejected by the ledger. The stake stays debited."""

    def __init__(self, reason: str, detail: Optional[str] = None):
        msg = f"Failed to submit answer ({reason})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg + ". Use force reset to clear the round.")
        self.reason = reason
        self.detail = detail


class UnknownSession(GameError):
    def __init__(self, identity: str):
        super().__init__(f"No connected session for {identity!r}")
        self.identity = identity


class DeadlineExpired(InvalidStateTransition):
    """The answer arrived after the countdown ran out; the round was settled as a timeout."""

    def __init__(self):
        GameError.__init__(self, "TIME'S UP! The answer arrived after the deadline.")
        self.operation = "submit an answer"
        self.state = "RESULT"
