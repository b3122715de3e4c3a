from __future__ import annotations
from typing import Sequence, Tuple

# Winnings for the 1st, 2nd and 3rd-or-later consecutive win.
DEFAULT_TIERS: Tuple[int, ...] = (10, 20, 50)

def payout(is_winner: bool, streak: int, tiers: Sequence[int] = DEFAULT_TIERS) -> Tuple[int, int]:
    """
    Returns (win_amount, new_streak).
    A loss pays nothing and resets the streak; a win extends the streak and pays
    the tier for the new streak length, the last tier repeating from then on.
    """
    if streak < 0:
        raise ValueError("streak must be >= 0")
    if not is_winner:
        return 0, 0
    new_streak = streak + 1
    idx = min(new_streak, len(tiers)) - 1
    return tiers[idx], new_streak

class PayoutCalculator:
    def __init__(self, tiers: Sequence[int] = DEFAULT_TIERS):
        if not tiers:
            raise ValueError("At least one payout tier is required")
        self.tiers = tuple(tiers)

    def __call__(self, is_winner: bool, streak: int) -> Tuple[int, int]:
        return payout(is_winner, streak, self.tiers)
