from __future__ import annotations
from typing import List, Optional, Sequence

from evaluation_client import EvaluationClient
from ledger import LedgerBackend, LedgerError, SimulatedLedger
from models import LedgerBetStatus, LedgerFailure, Verdict

CLEAN = LedgerBetStatus(has_unresolved_bet=False, has_submitted_answer=False)
BLOCKED = LedgerBetStatus(has_unresolved_bet=True, has_submitted_answer=False)
STUCK = LedgerBetStatus(has_unresolved_bet=True, has_submitted_answer=True)

def win(score: float = 0.9) -> Verdict:
    return Verdict(is_winner=True, score=score, diagnostics={"final_score": score})

def loss(score: float = 0.1) -> Verdict:
    return Verdict(is_winner=False, score=score, diagnostics={"final_score": score})

class FakeTimer:
    """Stands in for threading.Timer; fire() runs the callback on the calling thread."""
    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args, **self.kwargs)

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

class TimerBox:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        t = FakeTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(t)
        return t

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]

class DummyEvaluator(EvaluationClient):
    def __init__(self, verdicts: Sequence[Verdict] = ()):
        self.verdicts = list(verdicts)
        self.calls = []

    def evaluate(self, prompt, answer):
        self.calls.append((prompt, answer))
        if self.verdicts:
            return self.verdicts.pop(0)
        return loss()

class RecordingLedger(SimulatedLedger):
    """SimulatedLedger that records every call and can fail chosen operations."""
    def __init__(self, *args, fail_place: int = 0, fail_submit: int = 0, fail_credit: int = 0, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: List[tuple] = []
        self.fail_place = fail_place
        self.fail_submit = fail_submit
        self.fail_credit = fail_credit

    def get_balance(self, identity):
        self.calls.append(("get_balance", identity))
        return super().get_balance(identity)

    def get_bet_status(self, identity):
        self.calls.append(("get_bet_status", identity))
        return super().get_bet_status(identity)

    def place_bet(self, identity, amount):
        self.calls.append(("place_bet", identity, amount))
        if self.fail_place > 0:
            self.fail_place -= 1
            raise ConnectionError("node went away")
        return super().place_bet(identity, amount)

    def submit_answer(self, identity, answer_payload):
        self.calls.append(("submit_answer", identity, answer_payload))
        if self.fail_submit > 0:
            self.fail_submit -= 1
            raise ConnectionError("node went away")
        return super().submit_answer(identity, answer_payload)

    def credit_winnings(self, identity, amount):
        self.calls.append(("credit_winnings", identity, amount))
        if self.fail_credit > 0:
            self.fail_credit -= 1
            raise ConnectionError("node went away")
        return super().credit_winnings(identity, amount)

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def submitted_payloads(self) -> List[str]:
        return [c[2] for c in self.calls if c[0] == "submit_answer"]

class ScriptedLedger(LedgerBackend):
    """Returns bet statuses from a script; the last one repeats."""
    def __init__(self, statuses: Sequence[LedgerBetStatus], submit_error: Optional[LedgerFailure] = None,
                 status_errors: int = 0):
        self.statuses = list(statuses)
        self.submit_error = submit_error
        self.status_errors = status_errors
        self.calls: List[tuple] = []

    def get_balance(self, identity):
        self.calls.append(("get_balance", identity))
        return 10

    def get_bet_status(self, identity):
        self.calls.append(("get_bet_status", identity))
        if self.status_errors > 0:
            self.status_errors -= 1
            raise ConnectionError("rpc timeout")
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    def place_bet(self, identity, amount):
        self.calls.append(("place_bet", identity, amount))

    def submit_answer(self, identity, answer_payload):
        self.calls.append(("submit_answer", identity, answer_payload))
        if self.submit_error:
            raise LedgerError(self.submit_error)

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]
