from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

class RoundPhase(str, Enum):
    IDLE = "IDLE"
    BET_PENDING = "BET_PENDING"
    QUESTION_ACTIVE = "QUESTION_ACTIVE"
    ANSWER_SUBMITTING = "ANSWER_SUBMITTING"
    EVALUATING = "EVALUATING"
    RESULT = "RESULT"
    TERMINATED = "TERMINATED"

class LedgerFailure(str, Enum):
    ALREADY_HAS_BET = "AlreadyHasBet"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    NO_PENDING_BET = "NoPendingBet"
    UNREACHABLE = "Unreachable"

@dataclass(frozen=True)
class ActivePrompt:
    prompt_id: str
    text: str

@dataclass(frozen=True)
class LedgerBetStatus:
    has_unresolved_bet: bool
    has_submitted_answer: bool

    @property
    def pending_bet_blocks_new_round(self) -> bool:
        return self.has_unresolved_bet and not self.has_submitted_answer

    @property
    def stuck_resolved(self) -> bool:
        # Answer is in, but the ledger has not resolved the game yet.
        return self.has_unresolved_bet and self.has_submitted_answer

    @property
    def clean(self) -> bool:
        return not self.has_unresolved_bet

@dataclass(frozen=True)
class LedgerResult:
    ok: bool
    reason: Optional[LedgerFailure] = None
    detail: Optional[str] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "LedgerResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: LedgerFailure, detail: Optional[str] = None) -> "LedgerResult":
        return cls(ok=False, reason=reason, detail=detail)

@dataclass(frozen=True)
class Verdict:
    is_winner: bool
    score: float
    used_fallback: bool = False
    diagnostics: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Verdict score must be in [0, 1], got {self.score}")
        # Freeze the diagnostics so the verdict cannot change after the round.
        object.__setattr__(self, "diagnostics", MappingProxyType(dict(self.diagnostics)))

@dataclass(frozen=True)
class RoundResult:
    is_winner: bool
    win_amount: int
    streak: int
    answer: str = ""
    verdict: Optional[Verdict] = None
    timed_out: bool = False

    @property
    def used_fallback(self) -> bool:
        return bool(self.verdict and self.verdict.used_fallback)

@dataclass
class Session:
    identity: str
    balance: int = 0
    streak: int = 0
    state: RoundPhase = RoundPhase.IDLE
    active_prompt: Optional[ActivePrompt] = None
    deadline: Optional[float] = None
    last_result: Optional[RoundResult] = None
    draft: str = ""
    round_id: int = 0
    last_error: Optional[str] = None
    needs_reset: bool = False
    exhausted: bool = False

    # Prompt and deadline are only ever set or cleared together.
    def arm_prompt(self, prompt: ActivePrompt, deadline: float) -> None:
        self.active_prompt = prompt
        self.deadline = deadline

    def clear_prompt(self) -> None:
        self.active_prompt = None
        self.deadline = None
        self.draft = ""

    def debit(self, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot debit a negative amount")
        if amount > self.balance:
            raise ValueError(f"Debit of {amount} would overdraw balance {self.balance}")
        self.balance -= amount

    def credit(self, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot credit a negative amount")
        self.balance += amount
