import pytest

from tla_api.records import AttemptRecord
from tla_api.scoring import (
    accuracy,
    display_accuracy,
    is_correct_answer,
    level_for_xp,
    summarize_attempts,
    xp_for_attempt,
)


@pytest.mark.parametrize(
    "user_answer,correct_answer,expected",
    [
        (" api ", "API", True),
        ("API", "API", True),
        ("application programming interface", "Application Programming Interface", True),
        ("\tSql\n", "SQL", True),
        ("AP I", "API", False),
        ("", "API", False),
    ],
)
def test_answer_matching(user_answer, correct_answer, expected):
    assert is_correct_answer(user_answer, correct_answer) is expected


def test_xp_only_for_correct_answers():
    assert xp_for_attempt(True, 20) == 20
    assert xp_for_attempt(False, 20) == 0


def test_accuracy_without_attempts_is_zero():
    value = accuracy(0, 0)
    assert value == 0.0
    assert value == value  # not NaN


def test_accuracy_keeps_precision_until_display():
    value = accuracy(1, 3)
    assert value == pytest.approx(33.3333, rel=1e-4)
    assert display_accuracy(value) == 33
    assert display_accuracy(accuracy(2, 3)) == 67
    assert display_accuracy(50.5) == 51


def _attempt(challenge_id, correct, xp):
    return AttemptRecord(
        session_id="s1",
        challenge_id=challenge_id,
        user_answer="x",
        is_correct=correct,
        xp_earned=xp,
    )


def test_summarize_sums_ledger_xp():
    totals = summarize_attempts([_attempt("a", True, 10), _attempt("b", False, 0), _attempt("c", True, 30)])
    assert totals.attempts == 3
    assert totals.correct == 2
    assert totals.xp == 40
    assert totals.accuracy == pytest.approx(200 / 3)


def test_summarize_empty_ledger():
    totals = summarize_attempts([])
    assert (totals.attempts, totals.correct, totals.xp, totals.accuracy) == (0, 0, 0, 0.0)


@pytest.mark.parametrize("xp,level", [(0, 1), (99, 1), (100, 2), (250, 3), (-5, 1)])
def test_level_for_xp(xp, level):
    assert level_for_xp(xp) == level
