import pytest
from payout import PayoutCalculator, payout

@pytest.mark.parametrize("streak", [0, 1, 2, 3, 10])
def test_loss_pays_nothing_and_resets_streak(streak):
    assert payout(False, streak) == (0, 0)

def test_win_tiers():
    assert payout(True, 0) == (10, 1)
    assert payout(True, 1) == (20, 2)
    assert payout(True, 2) == (50, 3)

@pytest.mark.parametrize("streak", [2, 3, 4, 25])
def test_top_tier_repeats(streak):
    assert payout(True, streak) == (50, streak + 1)

def test_negative_streak_rejected():
    with pytest.raises(ValueError):
        payout(True, -1)

def test_calculator_custom_tiers():
    calc = PayoutCalculator(tiers=(1, 2))
    assert calc(True, 0) == (1, 1)
    assert calc(True, 5) == (2, 6)
    assert calc(False, 5) == (0, 0)
