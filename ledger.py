from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from models import LedgerBetStatus, LedgerFailure, LedgerResult

logger = logging.getLogger(__name__)

class LedgerError(Exception):
    """Raised by a ledger backend when the contract rejects a call."""
    def __init__(self, reason: LedgerFailure, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail or reason.value

class LedgerBackend:
    """
    Boundary of the external stake ledger (the game contract).
    Implementations raise LedgerError for contract-level rejections; any other
    exception is treated by the gateway as the ledger being unreachable.
    """
    def get_balance(self, identity: str) -> int:
        raise NotImplementedError

    def get_bet_status(self, identity: str) -> LedgerBetStatus:
        raise NotImplementedError

    def place_bet(self, identity: str, amount: int) -> None:
        raise NotImplementedError

    def submit_answer(self, identity: str, answer_payload: str) -> None:
        raise NotImplementedError

    def credit_winnings(self, identity: str, amount: int) -> int:
        """Pays out a round's winnings; returns the new ledger balance."""
        raise NotImplementedError

@dataclass
class _Account:
    balance: int
    bet: int = 0
    submitted: bool = False
    stale_left: int = 0
    snapshot: Optional[LedgerBetStatus] = None

class SimulatedLedger(LedgerBackend):
    """
    In-process stand-in for the game contract.

    - One unresolved bet per identity; a second place_bet is rejected.
    - submit_answer without a bet is rejected with NoPendingBet.
    - With auto_resolve the oracle resolves the game as soon as an answer lands;
      otherwise resolve(identity) must be called.
    - stale_reads > 0 makes get_bet_status keep returning the snapshot taken
      before the last mutation for that many reads.
    """
    def __init__(self, starting_balance: int = 10, auto_resolve: bool = True, stale_reads: int = 0):
        self.starting_balance = starting_balance
        self.auto_resolve = auto_resolve
        self.stale_reads = stale_reads
        self._accounts: Dict[str, _Account] = {}
        self._lock = threading.Lock()

    def _account(self, identity: str) -> _Account:
        acct = self._accounts.get(identity)
        if acct is None:
            acct = _Account(balance=self.starting_balance)
            self._accounts[identity] = acct
        return acct

    def _status(self, acct: _Account) -> LedgerBetStatus:
        return LedgerBetStatus(has_unresolved_bet=acct.bet > 0, has_submitted_answer=acct.submitted)

    def _mark_changed(self, acct: _Account, before: LedgerBetStatus) -> None:
        if self.stale_reads > 0:
            acct.snapshot = before
            acct.stale_left = self.stale_reads

    def get_balance(self, identity: str) -> int:
        with self._lock:
            return self._account(identity).balance

    def get_bet_status(self, identity: str) -> LedgerBetStatus:
        with self._lock:
            acct = self._account(identity)
            if acct.stale_left > 0 and acct.snapshot is not None:
                acct.stale_left -= 1
                return acct.snapshot
            return self._status(acct)

    def place_bet(self, identity: str, amount: int) -> None:
        with self._lock:
            acct = self._account(identity)
            if acct.bet > 0:
                raise LedgerError(LedgerFailure.ALREADY_HAS_BET, "Player already has an unresolved bet")
            if amount <= 0 or acct.balance < amount:
                raise LedgerError(LedgerFailure.INSUFFICIENT_FUNDS,
                                  f"Insufficient balance to play: have {acct.balance}, need {amount}")
            before = self._status(acct)
            acct.balance -= amount
            acct.bet = amount
            acct.submitted = False
            self._mark_changed(acct, before)

    def submit_answer(self, identity: str, answer_payload: str) -> None:
        with self._lock:
            acct = self._account(identity)
            if acct.bet <= 0:
                raise LedgerError(LedgerFailure.NO_PENDING_BET, "Player has not placed a bet")
            before = self._status(acct)
            acct.submitted = True
            if self.auto_resolve:
                acct.bet = 0
                acct.submitted = False
            self._mark_changed(acct, before)

    def credit_winnings(self, identity: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("Cannot credit negative winnings")
        with self._lock:
            acct = self._account(identity)
            acct.balance += amount
            return acct.balance

    def resolve(self, identity: str) -> None:
        """Oracle-side resolution of a submitted game."""
        with self._lock:
            acct = self._account(identity)
            before = self._status(acct)
            acct.bet = 0
            acct.submitted = False
            self._mark_changed(acct, before)

class LedgerGateway:
    """
    The only component that talks to the ledger backend.
    Every call returns a LedgerResult; nothing is retried here, and each call is
    bounded by its own timeout so a hung ledger cannot freeze a session.
    """
    def __init__(
        self,
        backend: LedgerBackend,
        timeout: float = 10.0,
        timeouts: Optional[Dict[str, float]] = None,
    ):
        self.backend = backend
        self.timeout = timeout
        self.timeouts = dict(timeouts or {})
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="ledger")

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    # ---------- Operations ----------
    def get_balance(self, identity: str) -> LedgerResult:
        return self._call("get_balance", self.backend.get_balance, identity)

    def get_bet_status(self, identity: str) -> LedgerResult:
        return self._call("get_bet_status", self.backend.get_bet_status, identity)

    def place_bet(self, identity: str, amount: int) -> LedgerResult:
        return self._call("place_bet", self.backend.place_bet, identity, amount)

    def submit_answer(self, identity: str, answer_payload: str) -> LedgerResult:
        return self._call("submit_answer", self.backend.submit_answer, identity, answer_payload)

    def credit_winnings(self, identity: str, amount: int) -> LedgerResult:
        return self._call("credit_winnings", self.backend.credit_winnings, identity, amount)

    # ---------- helpers ----------
    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> LedgerResult:
        limit = self.timeouts.get(operation, self.timeout)
        future = self._pool.submit(fn, *args)
        try:
            value = future.result(timeout=limit)
        except FutureTimeout:
            future.cancel()
            logger.warning("Ledger %s timed out after %ss", operation, limit)
            return LedgerResult.failure(LedgerFailure.UNREACHABLE, f"{operation} timed out after {limit}s")
        except LedgerError as e:
            logger.info("Ledger rejected %s: %s (%s)", operation, e.reason.value, e.detail)
            return LedgerResult.failure(e.reason, e.detail)
        except Exception as e:
            logger.warning("Ledger %s failed: %s", operation, e)
            return LedgerResult.failure(LedgerFailure.UNREACHABLE, f"{operation} failed: {e}")
        return LedgerResult.success(value)
