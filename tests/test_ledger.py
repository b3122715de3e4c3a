import threading

from ledger import LedgerBackend, LedgerGateway, SimulatedLedger
from models import LedgerFailure

def test_simulated_ledger_round_trip():
    gw = LedgerGateway(SimulatedLedger(starting_balance=3))
    assert gw.get_balance("p1").value == 3
    assert gw.place_bet("p1", 1).ok
    status = gw.get_bet_status("p1").value
    assert status.pending_bet_blocks_new_round
    assert gw.get_balance("p1").value == 2
    assert gw.submit_answer("p1", "rope").ok
    assert gw.get_bet_status("p1").value.clean

def test_second_bet_rejected():
    gw = LedgerGateway(SimulatedLedger())
    assert gw.place_bet("p1", 1).ok
    res = gw.place_bet("p1", 1)
    assert not res.ok
    assert res.reason == LedgerFailure.ALREADY_HAS_BET

def test_unaffordable_bet_rejected():
    gw = LedgerGateway(SimulatedLedger(starting_balance=0))
    res = gw.place_bet("p1", 1)
    assert res.reason == LedgerFailure.INSUFFICIENT_FUNDS

def test_answer_without_bet_rejected():
    gw = LedgerGateway(SimulatedLedger())
    res = gw.submit_answer("p1", "anything")
    assert res.reason == LedgerFailure.NO_PENDING_BET
    assert "not placed a bet" in res.detail

def test_manual_resolution_leaves_stuck_state():
    ledger = SimulatedLedger(auto_resolve=False)
    gw = LedgerGateway(ledger)
    gw.place_bet("p1", 1)
    gw.submit_answer("p1", "x")
    assert gw.get_bet_status("p1").value.stuck_resolved
    ledger.resolve("p1")
    assert gw.get_bet_status("p1").value.clean

def test_stale_reads_lag_behind():
    gw = LedgerGateway(SimulatedLedger(stale_reads=2))
    gw.place_bet("p1", 1)
    assert gw.get_bet_status("p1").value.clean
    assert gw.get_bet_status("p1").value.clean
    assert gw.get_bet_status("p1").value.pending_bet_blocks_new_round

def test_unexpected_error_maps_to_unreachable():
    class Broken(LedgerBackend):
        def get_balance(self, identity):
            raise ConnectionError("connection refused")

    res = LedgerGateway(Broken()).get_balance("p1")
    assert res.reason == LedgerFailure.UNREACHABLE
    assert "connection refused" in res.detail

def test_hung_call_times_out():
    release = threading.Event()

    class Hung(LedgerBackend):
        def place_bet(self, identity, amount):
            release.wait(5)

    gw = LedgerGateway(Hung(), timeout=5.0, timeouts={"place_bet": 0.05})
    try:
        res = gw.place_bet("p1", 1)
    finally:
        release.set()
        gw.close()
    assert res.reason == LedgerFailure.UNREACHABLE
    assert "timed out" in res.detail

def test_winnings_credited_to_ledger_balance():
    gw = LedgerGateway(SimulatedLedger(starting_balance=1))
    gw.place_bet("p1", 1)
    gw.submit_answer("p1", "x")
    res = gw.credit_winnings("p1", 10)
    assert res.ok and res.value == 10
    assert gw.place_bet("p1", 1).ok
    assert gw.get_balance("p1").value == 9

