from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Tuple

from .errors import PersistenceError


@dataclass(frozen=True)
class SubjectRecord:
    id: str
    name: str
    description: Optional[str] = None
    difficulty: int = 1
    is_active: bool = True


@dataclass(frozen=True)
class ChallengeRecord:
    id: str
    subject_id: str
    prompt: str
    correct_answer: str
    distractors: Tuple[str, ...] = ()
    level: int = 1
    difficulty_level: int = 1
    type: str = "multiple_choice"
    time_limit: int = 30
    xp_reward: int = 10
    is_active: bool = True


@dataclass(frozen=True)
class SessionPlan:
    """Frozen, ordered challenge ids of a session plus the index of the next one to serve."""

    challenge_ids: Tuple[str, ...]
    cursor: int = 0

    @classmethod
    def from_stored(cls, challenge_ids: Any, cursor: Any, total_challenges: Any) -> "SessionPlan":
        if not isinstance(challenge_ids, (list, tuple)):
            raise PersistenceError("Corrupt session plan: challenge ids are not a list")
        if not all(isinstance(c, str) and c for c in challenge_ids):
            raise PersistenceError("Corrupt session plan: invalid challenge id")
        if len(set(challenge_ids)) != len(challenge_ids):
            raise PersistenceError("Corrupt session plan: duplicate challenge id")
        if isinstance(cursor, bool) or not isinstance(cursor, int):
            raise PersistenceError("Corrupt session plan: cursor is not an integer")
        if not 0 <= cursor <= len(challenge_ids):
            raise PersistenceError("Corrupt session plan: cursor out of range")
        if total_challenges != len(challenge_ids):
            raise PersistenceError("Corrupt session plan: total does not match plan length")
        return cls(challenge_ids=tuple(challenge_ids), cursor=cursor)

    @property
    def total(self) -> int:
        return len(self.challenge_ids)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= self.total

    @property
    def current(self) -> Optional[str]:
        if self.exhausted:
            return None
        return self.challenge_ids[self.cursor]

    def advance(self) -> "SessionPlan":
        if self.exhausted:
            raise PersistenceError("Session plan is already exhausted")
        return replace(self, cursor=self.cursor + 1)


@dataclass(frozen=True)
class SessionRecord:
    id: str
    user_id: str
    subject_id: str
    session_type: str
    plan: SessionPlan
    correct_answers: int = 0
    xp_earned: int = 0
    accuracy: Optional[float] = None
    is_completed: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_challenges(self) -> int:
        return self.plan.total


@dataclass(frozen=True)
class AttemptRecord:
    session_id: str
    challenge_id: str
    user_answer: str
    is_correct: bool
    xp_earned: int
    time_taken: Optional[int] = None
    attempted_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ProgressRecord:
    user_id: str
    subject_id: str
    total_xp: int = 0
    last_studied: Optional[datetime] = None
    subject_name: Optional[str] = None


@dataclass
class ReviewItem:
    challenge_id: str
    challenge_prompt: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    xp_earned: int
    time_taken: Optional[int] = None

