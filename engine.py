from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from config import GameSettings
from errors import (
    AlreadyHasBet,
    AnswerSubmissionFailed,
    CannotClear,
    DeadlineExpired,
    GameError,
    InsufficientFunds,
    InvalidStateTransition,
    LedgerUnreachable,
    UnknownSession,
)
from evaluation_client import EvaluationClient
from ledger import LedgerGateway
from models import LedgerFailure, LedgerResult, RoundPhase, RoundResult, Session, Verdict
from payout import PayoutCalculator
from prompts import PromptSource
from reconciliation import (
    TIMEOUT_SENTINEL_PREFIX,
    Outcome,
    ReconciliationPolicy,
    ReconciliationReport,
    sentinel,
)

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., "threading.Timer"]

@dataclass(frozen=True)
class RoundStart:
    prompt_id: str
    prompt: str
    deadline_seconds: float

class SessionStateMachine:
    """
    Drives one Session through a round:
    IDLE -> BET_PENDING -> QUESTION_ACTIVE -> ANSWER_SUBMITTING -> EVALUATING -> RESULT -> IDLE.

    - The only writer of Session state; every transition holds the session lock.
    - The countdown timer is the only background activity. It re-checks state and
      round_id under the lock, so a timer that lost the race to a manual submit
      does nothing.
    - Real bets are never retried automatically. Recovery of stale ledger state
      belongs to the ReconciliationPolicy.
    """
    def __init__(
        self,
        session: Session,
        gateway: LedgerGateway,
        reconciler: ReconciliationPolicy,
        evaluator: EvaluationClient,
        payout: Optional[PayoutCalculator] = None,
        prompts: Optional[PromptSource] = None,
        settings: Optional[GameSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.session = session
        self.gateway = gateway
        self.reconciler = reconciler
        self.evaluator = evaluator
        self.payout = payout or PayoutCalculator()
        self.prompts = prompts or PromptSource()
        self.settings = settings or GameSettings()
        self.clock = clock
        self.timer_factory = timer_factory
        self._lock = threading.RLock()
        self._timer = None

    @property
    def stake_cost(self) -> int:
        return self.settings.stake_cost

    # ---------- Round lifecycle ----------
    def start_round(self) -> RoundStart:
        with self._lock:
            s = self.session
            if s.state == RoundPhase.TERMINATED and s.exhausted:
                raise InsufficientFunds(s.balance, self.stake_cost)
            if s.state != RoundPhase.IDLE:
                raise InvalidStateTransition("start a round", s.state.value)
            if s.balance < self.stake_cost:
                s.exhausted = True
                self._transition(RoundPhase.TERMINATED)
                raise InsufficientFunds(s.balance, self.stake_cost)

            s.last_error = None
            self._transition(RoundPhase.BET_PENDING)
            try:
                self._place_bet()
            except GameError as e:
                s.last_error = str(e)
                self._transition(RoundPhase.IDLE)
                raise

            s.debit(self.stake_cost)
            s.needs_reset = False
            s.last_result = None
            s.round_id += 1
            prompt = self.prompts.next_prompt()
            s.arm_prompt(prompt, self.clock() + self.settings.round_seconds)
            self._transition(RoundPhase.QUESTION_ACTIVE)
            self._arm_timer(s.round_id)
            logger.info("Round %s for %s: stake %s placed, balance %s, prompt %r",
                        s.round_id, s.identity, self.stake_cost, s.balance, prompt.text)
            return RoundStart(prompt_id=prompt.prompt_id, prompt=prompt.text,
                              deadline_seconds=self.settings.round_seconds)

    def update_draft(self, text: str) -> None:
        with self._lock:
            if self.session.state != RoundPhase.QUESTION_ACTIVE:
                raise InvalidStateTransition("update the answer", self.session.state.value)
            self.session.draft = text

    def submit_answer(self, text: str) -> Verdict:
        with self._lock:
            s = self.session
            if s.state != RoundPhase.QUESTION_ACTIVE:
                raise InvalidStateTransition("submit an answer", s.state.value)
            if not text or not text.strip():
                raise ValueError("Please provide an answer before submitting.")
            self._cancel_timer()
            if s.deadline is not None and self.clock() >= s.deadline:
                # The timer lost the race for the lock; settle with what was
                # typed before time ran out.
                logger.info("Answer from %s arrived after the deadline", s.identity)
                verdict = self._deadline_reached()
                if verdict is None:
                    raise DeadlineExpired()
                return verdict
            s.draft = text
            return self._submit(text)

    def acknowledge(self) -> RoundPhase:
        with self._lock:
            s = self.session
            if s.state != RoundPhase.RESULT:
                raise InvalidStateTransition("acknowledge a result", s.state.value)
            self._settle_idle()
            return s.state

    def force_reset(self) -> ReconciliationReport:
        """
        Abandons whatever round is in flight and reconciles the ledger.
        The stake of an abandoned round is not refunded.
        """
        with self._lock:
            s = self.session
            if s.state == RoundPhase.TERMINATED:
                raise InvalidStateTransition("reset", s.state.value)
            self._cancel_timer()
            if s.state != RoundPhase.IDLE:
                logger.info("Force reset of %s abandons round %s in %s", s.identity, s.round_id, s.state.value)
            s.clear_prompt()
            self._settle_idle()

            report = self.reconciler.ensure_clean(s.identity)
            if report.outcome == Outcome.CANNOT_CLEAR:
                err = CannotClear()
                s.last_error = str(err)
                raise err
            s.needs_reset = False
            s.last_error = None
            return report

    def shutdown(self) -> None:
        with self._lock:
            self._cancel_timer()
            self.session.clear_prompt()
            self._transition(RoundPhase.TERMINATED)

    # ---------- Countdown ----------
    def _arm_timer(self, round_id: int) -> None:
        t = self.timer_factory(self.settings.round_seconds, self._on_deadline, args=(round_id,))
        t.daemon = True
        self._timer = t
        t.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_deadline(self, round_id: int) -> None:
        with self._lock:
            s = self.session
            if s.state != RoundPhase.QUESTION_ACTIVE or s.round_id != round_id:
                return
            self._timer = None
            try:
                self._deadline_reached()
            except GameError as e:
                # Recorded on the session; nobody is waiting on this thread.
                logger.warning("Auto-submit for %s failed: %s", s.identity, e)

    def _deadline_reached(self) -> Optional[Verdict]:
        """Submits a non-empty draft, otherwise settles the round as a timeout loss."""
        s = self.session
        if s.draft.strip():
            logger.info("Time is up for %s; submitting draft answer", s.identity)
            return self._submit(s.draft)
        self._expire()
        return None

    def _expire(self) -> None:
        s = self.session
        s.streak = 0
        s.last_result = RoundResult(is_winner=False, win_amount=0, streak=0, timed_out=True)
        s.clear_prompt()
        self._transition(RoundPhase.RESULT)

        # Best effort: release the bet on the ledger so the next round is not blocked.
        payload = sentinel(TIMEOUT_SENTINEL_PREFIX)
        res = self.gateway.submit_answer(s.identity, payload)
        if not res.ok:
            logger.info("Timeout sentinel for %s not accepted (%s); ignoring", s.identity, res.reason.value)

    # ---------- helpers ----------
    def _place_bet(self) -> None:
        self._ensure_clean()
        try:
            self._try_bet()
        except AlreadyHasBet as e:
            # Nothing was placed, so one more attempt after reconciling is safe.
            logger.info("Ledger still holds a bet for %s (%s); reconciling again", self.session.identity, e)
            self._ensure_clean()
            try:
                self._try_bet()
            except AlreadyHasBet as again:
                raise CannotClear() from again

    def _try_bet(self) -> None:
        res = self.gateway.place_bet(self.session.identity, self.stake_cost)
        if not res.ok:
            raise self._bet_error(res)

    def _ensure_clean(self) -> None:
        report = self.reconciler.ensure_clean(self.session.identity)
        if report.outcome == Outcome.CANNOT_CLEAR:
            raise CannotClear()

    def _bet_error(self, res: LedgerResult) -> GameError:
        if res.reason == LedgerFailure.ALREADY_HAS_BET:
            return AlreadyHasBet(res.detail or res.reason.value)
        if res.reason == LedgerFailure.INSUFFICIENT_FUNDS:
            self._refresh_balance()
            return InsufficientFunds(self.session.balance, self.stake_cost)
        return LedgerUnreachable("place_bet", res.detail)

    def _refresh_balance(self) -> None:
        """Adopts the ledger's balance when the two disagree about affordability."""
        s = self.session
        res = self.gateway.get_balance(s.identity)
        if res.ok and int(res.value) != s.balance:
            logger.warning("Balance for %s out of sync: session %s, ledger %s; using ledger",
                           s.identity, s.balance, res.value)
            s.balance = max(0, int(res.value))

    def _pay_out(self, win_amount: int) -> None:
        s = self.session
        if win_amount <= 0:
            return
        s.credit(win_amount)
        res = self.gateway.credit_winnings(s.identity, win_amount)
        if not res.ok:
            logger.warning("Ledger did not record winnings of %s for %s (%s: %s)",
                           win_amount, s.identity, res.reason.value, res.detail)

    def _submit(self, text: str) -> Verdict:
        s = self.session
        self._transition(RoundPhase.ANSWER_SUBMITTING)
        res = self.gateway.submit_answer(s.identity, text)
        if not res.ok:
            err = AnswerSubmissionFailed(res.reason.value, res.detail)
            s.clear_prompt()
            s.needs_reset = True
            s.last_error = str(err)
            self._transition(RoundPhase.IDLE)
            logger.warning("Round %s for %s abandoned: %s", s.round_id, s.identity, err)
            raise err

        self._transition(RoundPhase.EVALUATING)
        verdict = self.evaluator.evaluate(s.active_prompt.text, text)
        win_amount, new_streak = self.payout(verdict.is_winner, s.streak)
        self._pay_out(win_amount)
        s.streak = new_streak
        s.last_result = RoundResult(is_winner=verdict.is_winner, win_amount=win_amount,
                                    streak=new_streak, answer=text, verdict=verdict)
        s.clear_prompt()
        self._transition(RoundPhase.RESULT)
        logger.info("Round %s for %s: %s score=%.3f win=%s balance=%s streak=%s%s",
                    s.round_id, s.identity, "WIN" if verdict.is_winner else "LOSS",
                    verdict.score, win_amount, s.balance, s.streak,
                    " (fallback)" if verdict.used_fallback else "")
        return verdict

    def _settle_idle(self) -> None:
        s = self.session
        if s.balance < self.stake_cost:
            s.exhausted = True
            self._transition(RoundPhase.TERMINATED)
        else:
            self._transition(RoundPhase.IDLE)

    def _transition(self, new: RoundPhase) -> None:
        old = self.session.state
        self.session.state = new
        if old != new:
            logger.info("Session %s: %s -> %s", self.session.identity, old.value, new.value)

class GameEngine:
    """
    Registry of one SessionStateMachine per player identity; the surface the API calls.
    """
    def __init__(
        self,
        gateway: LedgerGateway,
        evaluator: EvaluationClient,
        settings: Optional[GameSettings] = None,
        reconciler: Optional[ReconciliationPolicy] = None,
        prompts: Optional[PromptSource] = None,
        payout: Optional[PayoutCalculator] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.settings = settings or GameSettings()
        self.gateway = gateway
        self.evaluator = evaluator
        self.reconciler = reconciler or ReconciliationPolicy(
            gateway,
            max_attempts=self.settings.reconcile_attempts,
            delay=self.settings.reconcile_delay,
        )
        self.prompts = prompts or PromptSource()
        self.payout = payout or PayoutCalculator()
        self.clock = clock
        self.timer_factory = timer_factory
        self._machines: Dict[str, SessionStateMachine] = {}
        self._lock = threading.Lock()

    # ---------- Session lifecycle ----------
    def connect(self, identity: str) -> Session:
        with self._lock:
            machine = self._machines.get(identity)
            if machine and machine.session.state != RoundPhase.TERMINATED:
                return machine.session

        res = self.gateway.get_balance(identity)
        if not res.ok:
            raise LedgerUnreachable("get_balance", res.detail)
        session = Session(identity=identity, balance=int(res.value))
        machine = SessionStateMachine(
            session, self.gateway, self.reconciler, self.evaluator,
            payout=self.payout, prompts=self.prompts, settings=self.settings,
            clock=self.clock, timer_factory=self.timer_factory,
        )
        with self._lock:
            current = self._machines.get(identity)
            if current and current.session.state != RoundPhase.TERMINATED:
                return current.session
            self._machines[identity] = machine
        logger.info("Connected %s with balance %s", identity, session.balance)
        return session

    def get_state(self, identity: str) -> Session:
        return self._require(identity).session

    def get_balance(self, identity: str) -> int:
        return self._require(identity).session.balance

    # ---------- Round handling ----------
    def start_round(self, identity: str) -> RoundStart:
        return self._require(identity).start_round()

    def update_draft(self, identity: str, text: str) -> None:
        self._require(identity).update_draft(text)

    def submit_answer(self, identity: str, text: str) -> Verdict:
        return self._require(identity).submit_answer(text)

    def acknowledge(self, identity: str) -> RoundPhase:
        return self._require(identity).acknowledge()

    def force_reset(self, identity: str) -> ReconciliationReport:
        return self._require(identity).force_reset()

    def shutdown(self, identity: str) -> None:
        self._require(identity).shutdown()

    # ---------- helpers ----------
    def _require(self, identity: str) -> SessionStateMachine:
        m = self._machines.get(identity)
        if not m:
            raise UnknownSession(identity)
        return m
