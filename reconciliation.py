from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from errors import LedgerUnreachable
from ledger import LedgerGateway
from models import LedgerBetStatus, LedgerFailure

logger = logging.getLogger(__name__)

# Sentinel answers. The ledger has no cancel; a stale bet can only be released
# by submitting an answer for it.
CLEAR_SENTINEL_PREFIX = "reset_game_state_"
NUDGE_SENTINEL_PREFIX = "resolve_game_state_"
TIMEOUT_SENTINEL_PREFIX = "timeout_no_answer_"

def sentinel(prefix: str, clock: Callable[[], float] = time.time) -> str:
    return f"{prefix}{int(clock() * 1000)}"

def is_sentinel(payload: str) -> bool:
    return payload.startswith((CLEAR_SENTINEL_PREFIX, NUDGE_SENTINEL_PREFIX, TIMEOUT_SENTINEL_PREFIX))

class Outcome(str, Enum):
    CLEAN = "clean"            # nothing to do
    CLEARED = "cleared"        # a stale bet was released
    PROCEEDING = "proceeding"  # stuck-resolved bet nudged; new round not blocked
    CANNOT_CLEAR = "cannot_clear"

@dataclass
class StrategyOutcome:
    strategy: str
    succeeded: bool
    detail: str = ""

@dataclass
class ReconciliationReport:
    outcome: Outcome
    statuses: List[LedgerBetStatus] = field(default_factory=list)
    sentinels: List[str] = field(default_factory=list)
    strategies: List[StrategyOutcome] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return self.outcome != Outcome.CANNOT_CLEAR

class RecoveryStrategy:
    name = "strategy"

    def applies(self, status: LedgerBetStatus) -> bool:
        raise NotImplementedError

    def run(self, policy: "ReconciliationPolicy", identity: str, report: ReconciliationReport) -> StrategyOutcome:
        raise NotImplementedError

class ClearPendingBet(RecoveryStrategy):
    """Bet placed, no answer: submit a sentinel answer until the ledger lets go."""
    name = "clear_pending_bet"

    def applies(self, status: LedgerBetStatus) -> bool:
        return status.pending_bet_blocks_new_round

    def run(self, policy, identity, report):
        for attempt in range(1, policy.max_attempts + 1):
            payload = sentinel(CLEAR_SENTINEL_PREFIX, policy.clock)
            report.sentinels.append(payload)
            res = policy.gateway.submit_answer(identity, payload)
            logger.info("Clear attempt %s/%s for %s with %s: %s",
                        attempt, policy.max_attempts, identity, payload,
                        "ok" if res.ok else res.reason.value)
            if res.ok or res.reason == LedgerFailure.NO_PENDING_BET:
                status = policy.query_status(identity, report)
                if not status.pending_bet_blocks_new_round:
                    return StrategyOutcome(self.name, True, f"released after {attempt} attempt(s)")
            if attempt < policy.max_attempts:
                policy.sleep(policy.delay)
        return StrategyOutcome(self.name, False, f"still blocked after {policy.max_attempts} attempt(s)")

class NudgeSubmittedAnswer(RecoveryStrategy):
    """Answer already in but unresolved upstream: one more submission, outcome ignored."""
    name = "nudge_submitted_answer"

    def applies(self, status: LedgerBetStatus) -> bool:
        return status.stuck_resolved

    def run(self, policy, identity, report):
        payload = sentinel(NUDGE_SENTINEL_PREFIX, policy.clock)
        report.sentinels.append(payload)
        res = policy.gateway.submit_answer(identity, payload)
        detail = "ok" if res.ok else f"{res.reason.value}: {res.detail}"
        logger.info("Nudged stuck-resolved bet for %s with %s: %s", identity, payload, detail)
        return StrategyOutcome(self.name, res.ok, detail)

DEFAULT_STRATEGIES: Sequence[RecoveryStrategy] = (ClearPendingBet(), NudgeSubmittedAnswer())

class ReconciliationPolicy:
    """
    Certifies that the ledger holds no bet that would block a new round,
    running the recovery strategies in order when it does.
    """
    def __init__(
        self,
        gateway: LedgerGateway,
        max_attempts: int = 3,
        delay: float = 1.0,
        strategies: Optional[Sequence[RecoveryStrategy]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.delay = delay
        self.strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)
        self.sleep = sleep
        self.clock = clock

    def query_status(self, identity: str, report: Optional[ReconciliationReport] = None) -> LedgerBetStatus:
        """Status queries are safe to retry; exhaustion surfaces LedgerUnreachable."""
        last_detail = None
        for attempt in range(1, self.max_attempts + 1):
            res = self.gateway.get_bet_status(identity)
            if res.ok:
                if report is not None:
                    report.statuses.append(res.value)
                return res.value
            last_detail = res.detail
            logger.warning("Bet status query %s/%s failed for %s: %s",
                           attempt, self.max_attempts, identity, res.detail)
            if attempt < self.max_attempts:
                self.sleep(self.delay)
        raise LedgerUnreachable("get_bet_status", last_detail)

    def ensure_clean(self, identity: str) -> ReconciliationReport:
        report = ReconciliationReport(outcome=Outcome.CLEAN)
        status = self.query_status(identity, report)
        if status.clean:
            return report

        logger.info("Ledger out of sync for %s: unresolved=%s submitted=%s",
                    identity, status.has_unresolved_bet, status.has_submitted_answer)
        # Each strategy sees the latest status, so a cleared bet that is now
        # stuck-resolved still gets nudged.
        for strategy in self.strategies:
            current = report.statuses[-1]
            if not strategy.applies(current):
                continue
            report.strategies.append(strategy.run(self, identity, report))

        final = self.query_status(identity, report)
        if final.pending_bet_blocks_new_round:
            report.outcome = Outcome.CANNOT_CLEAR
            logger.warning("Could not clear pending bet for %s", identity)
        elif final.has_unresolved_bet:
            # Stuck-resolved: never block the new round on the nudge.
            report.outcome = Outcome.PROCEEDING
        else:
            report.outcome = Outcome.CLEARED
        return report
