from __future__ import annotations
import os
from dataclasses import dataclass, field
from dotenv import load_dotenv
load_dotenv()


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class GameSettings:
    """Environment-driven settings with defaults that match the simulation mode."""

    # Wager
    stake_cost: int = field(default_factory=lambda: _int("GAME_STAKE_COST", 1))
    starting_balance: int = field(default_factory=lambda: _int("GAME_STARTING_BALANCE", 10))
    round_seconds: float = field(default_factory=lambda: _float("GAME_ROUND_SECONDS", 15.0))
    win_threshold: float = field(default_factory=lambda: _float("GAME_WIN_THRESHOLD", 0.5))

    # Evaluator
    evaluator_url: str = field(default_factory=lambda: os.getenv("EVALUATOR_URL", "http://localhost:8000/evaluate"))
    evaluator_timeout: float = field(default_factory=lambda: _float("GAME_EVALUATOR_TIMEOUT", 12.0))

    # Ledger
    ledger_timeout: float = field(default_factory=lambda: _float("GAME_LEDGER_TIMEOUT", 10.0))
    reconcile_attempts: int = field(default_factory=lambda: _int("GAME_RECONCILE_ATTEMPTS", 3))
    reconcile_delay: float = field(default_factory=lambda: _float("GAME_RECONCILE_DELAY", 1.0))


DEFAULT_BASE_URL = os.getenv("GAME_BASE_URL", "http://127.0.0.1:8001")
