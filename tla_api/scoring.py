"""Scoring and aggregation for challenge attempts."""

from dataclasses import dataclass
from typing import Iterable

from .config import XP_PER_LEVEL
from .records import AttemptRecord


@dataclass(frozen=True)
class SessionTotals:
    attempts: int
    correct: int
    accuracy: float
    xp: int


def normalize_answer(answer: str) -> str:
    return (answer or "").strip().lower()


def is_correct_answer(user_answer: str, correct_answer: str) -> bool:
    """Case-insensitive comparison that ignores leading/trailing whitespace."""
    return normalize_answer(user_answer) == normalize_answer(correct_answer)


def xp_for_attempt(is_correct: bool, xp_reward: int) -> int:
    return int(xp_reward) if is_correct else 0


def accuracy(correct: int, attempts: int) -> float:
    """
    Percentage of correct attempts.

    Returns 0.0 when there are no attempts. The value keeps full precision;
    rounding belongs to presentation (see `display_accuracy`).
    """
    if attempts <= 0:
        return 0.0
    return correct / attempts * 100


def display_accuracy(value: float) -> int:
    # round half up, Python's round() would send 50.5 to 50
    return int(value + 0.5)


def summarize_attempts(attempts: Iterable[AttemptRecord]) -> SessionTotals:
    """Aggregate ledger entries; XP is summed from the attempts themselves."""
    total = 0
    correct = 0
    xp = 0
    for attempt in attempts:
        total += 1
        if attempt.is_correct:
            correct += 1
        xp += int(attempt.xp_earned or 0)
    return SessionTotals(
        attempts=total,
        correct=correct,
        accuracy=accuracy(correct, total),
        xp=xp,
    )


def level_for_xp(total_xp: int) -> int:
    return 1 + max(0, int(total_xp)) // XP_PER_LEVEL
