from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from config import GameSettings
from engine import GameEngine
from errors import (
    AnswerSubmissionFailed,
    CannotClear,
    GameError,
    InsufficientFunds,
    InvalidStateTransition,
    LedgerUnreachable,
    UnknownSession,
)
from evaluation_client import EvaluationClient
from ledger import LedgerGateway, SimulatedLedger
from models import RoundResult, Session, Verdict

# ---------- Pydantic IO models ----------
class ConnectIn(BaseModel):
    identity: str = Field(..., min_length=1, examples=["0x742d35Cc6634C0532925a3b844Bc454e4438f44e"])

class ConnectOut(BaseModel):
    identity: str
    balance: int
    streak: int
    state: str

class RoundOut(BaseModel):
    prompt_id: str
    prompt: str
    deadline_seconds: float

class AnswerIn(BaseModel):
    text: str = Field(..., examples=["Moby-Dick, but only the chapters about rope."])

class VerdictOut(BaseModel):
    is_winner: bool
    score: float
    used_fallback: bool
    diagnostics: Dict[str, Any] = {}

class ResultOut(BaseModel):
    is_winner: bool
    win_amount: int
    streak: int
    timed_out: bool
    used_fallback: bool
    answer: str = ""
    verdict: Optional[VerdictOut] = None

class AnswerOut(BaseModel):
    verdict: VerdictOut
    result: ResultOut
    balance: int

class SessionStateOut(BaseModel):
    identity: str
    state: str
    balance: int
    streak: int
    prompt_id: Optional[str] = None
    prompt: Optional[str] = None
    seconds_left: Optional[float] = None
    last_result: Optional[ResultOut] = None
    last_error: Optional[str] = None
    needs_reset: bool = False

class BalanceOut(BaseModel):
    identity: str
    balance: int

class ResetOut(BaseModel):
    state: str
    outcome: str
    sentinels: list[str]

# ---------- App ----------
app = FastAPI(title="Are You Basic? Wager API", version="1.0.0")

_settings = GameSettings()
_gateway = LedgerGateway(SimulatedLedger(starting_balance=_settings.starting_balance),
                         timeout=_settings.ledger_timeout)
_engine = GameEngine(gateway=_gateway, evaluator=EvaluationClient(settings=_settings), settings=_settings)

def _to_verdict_out(v: Verdict) -> VerdictOut:
    return VerdictOut(is_winner=v.is_winner, score=v.score,
                      used_fallback=v.used_fallback, diagnostics=dict(v.diagnostics))

def _to_result_out(r: RoundResult) -> ResultOut:
    return ResultOut(
        is_winner=r.is_winner,
        win_amount=r.win_amount,
        streak=r.streak,
        timed_out=r.timed_out,
        used_fallback=r.used_fallback,
        answer=r.answer,
        verdict=_to_verdict_out(r.verdict) if r.verdict else None,
    )

def _to_state_out(st: Session) -> SessionStateOut:
    seconds_left = None
    if st.deadline is not None:
        seconds_left = max(0.0, st.deadline - _engine.clock())
    return SessionStateOut(
        identity=st.identity,
        state=st.state.value,
        balance=st.balance,
        streak=st.streak,
        prompt_id=st.active_prompt.prompt_id if st.active_prompt else None,
        prompt=st.active_prompt.text if st.active_prompt else None,
        seconds_left=seconds_left,
        last_result=_to_result_out(st.last_result) if st.last_result else None,
        last_error=st.last_error,
        needs_reset=st.needs_reset,
    )

def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, UnknownSession):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InsufficientFunds):
        return HTTPException(status_code=402, detail=str(e))
    if isinstance(e, (InvalidStateTransition, CannotClear)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, LedgerUnreachable):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, AnswerSubmissionFailed):
        # Forward the ledger message to the client (bad gateway)
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))

@app.post("/v1/sessions", response_model=ConnectOut)
def connect(payload: ConnectIn):
    try:
        st = _engine.connect(payload.identity)
    except GameError as e:
        raise _http_error(e)
    return ConnectOut(identity=st.identity, balance=st.balance, streak=st.streak, state=st.state.value)

@app.get("/v1/sessions/{identity}", response_model=SessionStateOut, response_model_exclude_none=True)
def get_state(identity: str):
    try:
        return _to_state_out(_engine.get_state(identity))
    except GameError as e:
        raise _http_error(e)

@app.get("/v1/sessions/{identity}/balance", response_model=BalanceOut)
def get_balance(identity: str):
    try:
        return BalanceOut(identity=identity, balance=_engine.get_balance(identity))
    except GameError as e:
        raise _http_error(e)

@app.post("/v1/sessions/{identity}/rounds", response_model=RoundOut)
def start_round(identity: str):
    try:
        rs = _engine.start_round(identity)
    except GameError as e:
        raise _http_error(e)
    return RoundOut(prompt_id=rs.prompt_id, prompt=rs.prompt, deadline_seconds=rs.deadline_seconds)

@app.put("/v1/sessions/{identity}/draft", response_model=SessionStateOut, response_model_exclude_none=True)
def update_draft(identity: str, payload: AnswerIn):
    try:
        _engine.update_draft(identity, payload.text)
        return _to_state_out(_engine.get_state(identity))
    except GameError as e:
        raise _http_error(e)

@app.post("/v1/sessions/{identity}/answer", response_model=AnswerOut, response_model_exclude_none=True)
def submit_answer(identity: str, payload: AnswerIn):
    try:
        verdict = _engine.submit_answer(identity, payload.text)
    except (GameError, ValueError) as e:
        raise _http_error(e)
    st = _engine.get_state(identity)
    return AnswerOut(verdict=_to_verdict_out(verdict), result=_to_result_out(st.last_result), balance=st.balance)

@app.post("/v1/sessions/{identity}/acknowledge", response_model=SessionStateOut, response_model_exclude_none=True)
def acknowledge(identity: str):
    try:
        _engine.acknowledge(identity)
        return _to_state_out(_engine.get_state(identity))
    except GameError as e:
        raise _http_error(e)

@app.post("/v1/sessions/{identity}/reset", response_model=ResetOut)
def force_reset(identity: str):
    try:
        report = _engine.force_reset(identity)
    except GameError as e:
        raise _http_error(e)
    return ResetOut(state=_engine.get_state(identity).state.value,
                    outcome=report.outcome.value, sentinels=report.sentinels)

@app.delete("/v1/sessions/{identity}", response_model=SessionStateOut, response_model_exclude_none=True)
def shutdown(identity: str):
    try:
        _engine.shutdown(identity)
        return _to_state_out(_engine.get_state(identity))
    except GameError as e:
        raise _http_error(e)
