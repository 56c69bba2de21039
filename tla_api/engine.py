"""
Game session engine.

A session moves NotStarted -> Active -> Completed. While active, its frozen
plan and cursor decide which challenge is current; every challenge of the
plan can be answered exactly once and completion is an explicit, one-shot
step that credits the ledger's XP to the user.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .config import SESSION_SIZE, SESSION_TYPES
from .errors import ConflictError, NotFoundError, ValidationError
from .records import (
    AttemptRecord,
    ChallengeRecord,
    ReviewItem,
    SessionPlan,
    SessionRecord,
)
from .scoring import is_correct_answer, normalize_answer, summarize_attempts, xp_for_attempt
from .store import GameStore

_log = logging.getLogger("tla_api.engine")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChallengePresentation:
    id: str
    type: str
    prompt: str
    options: List[str]
    time_limit: int
    xp_reward: int


@dataclass
class StartResult:
    session: SessionRecord
    subject_name: str
    challenge: ChallengePresentation


@dataclass
class AttemptResult:
    is_correct: bool
    correct_answer: str
    xp_earned: int
    time_taken: Optional[int]
    correct_answers: int
    total_xp: int
    challenges_completed: int
    total_challenges: int
    next_challenge: Optional[ChallengePresentation] = None


@dataclass
class SessionResults:
    session_id: str
    subject_name: str
    total_challenges: int
    correct_answers: int
    accuracy: float
    xp_earned: int
    completed_at: datetime
    user_total_xp: int
    attempts: List[ReviewItem] = field(default_factory=list)


@dataclass
class SessionView:
    session: SessionRecord
    subject_name: str
    attempts: List[ReviewItem] = field(default_factory=list)
    current_challenge: Optional[ChallengePresentation] = None


def select_plan(pool: Iterable[ChallengeRecord], limit: int) -> List[ChallengeRecord]:
    """Order by level then difficulty (stable for ties) and keep the first ``limit``."""
    ordered = sorted(pool, key=lambda c: (c.level, c.difficulty_level))
    return ordered[: max(0, limit)]


def build_options(challenge: ChallengeRecord, rng: random.Random) -> List[str]:
    options: List[str] = []
    seen = set()
    for option in (challenge.correct_answer, *challenge.distractors):
        key = normalize_answer(option)
        if key in seen:
            continue
        seen.add(key)
        options.append(option)
    rng.shuffle(options)
    return options


class SessionEngine:
    def __init__(
        self,
        store: GameStore,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        session_size: int = SESSION_SIZE,
    ):
        self.store = store
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock or _utcnow
        self.session_size = session_size

    def present(self, challenge: ChallengeRecord) -> ChallengePresentation:
        return ChallengePresentation(
            id=challenge.id,
            type=challenge.type,
            prompt=challenge.prompt,
            options=build_options(challenge, self.rng),
            time_limit=challenge.time_limit,
            xp_reward=challenge.xp_reward,
        )

    def start_session(self, user_id: str, subject_id: str, session_type: str = "main_path") -> StartResult:
        if session_type not in SESSION_TYPES:
            raise ValidationError(f"Unknown session type: {session_type}")

        with self.store.transaction():
            subject = self.store.get_subject(subject_id)
            if subject is None or not subject.is_active:
                raise NotFoundError("Subject not found")

            plan = select_plan(self.store.list_active_challenges(subject_id), self.session_size)
            if not plan:
                raise ValidationError("No challenges available for this subject")

            session = SessionRecord(
                id=uuid.uuid4().hex,
                user_id=user_id,
                subject_id=subject_id,
                session_type=session_type,
                plan=SessionPlan(challenge_ids=tuple(c.id for c in plan)),
                started_at=self.clock(),
            )
            self.store.add_session(session)

        _log.info(
            "session %s started: user=%s subject=%s challenges=%d",
            session.id,
            user_id,
            subject_id,
            session.total_challenges,
        )
        return StartResult(session=session, subject_name=subject.name, challenge=self.present(plan[0]))

    def submit_attempt(
        self,
        session_id: str,
        challenge_id: str,
        user_answer: str,
        time_taken: Optional[int],
        caller_user_id: str,
    ) -> AttemptResult:
        with self.store.transaction():
            session = self.store.find_session(session_id, caller_user_id, lock=True)
            if session is None or session.is_completed:
                raise NotFoundError("Active session not found")

            challenge = self.store.get_challenge(challenge_id)
            if challenge is None or challenge_id not in session.plan.challenge_ids:
                raise NotFoundError("Challenge not found")

            if self.store.find_attempt(session_id, challenge_id) is not None:
                _log.warning("duplicate attempt rejected: session=%s challenge=%s", session_id, challenge_id)
                raise ConflictError("Challenge already attempted")

            if challenge_id != session.plan.current:
                raise ValidationError("Challenge is not the current challenge of this session")

            correct = is_correct_answer(user_answer, challenge.correct_answer)
            xp = xp_for_attempt(correct, challenge.xp_reward)
            self.store.append_attempt(
                AttemptRecord(
                    session_id=session_id,
                    challenge_id=challenge_id,
                    user_answer=user_answer,
                    is_correct=correct,
                    xp_earned=xp,
                    time_taken=time_taken,
                    attempted_at=self.clock(),
                )
            )
            session = replace(
                session,
                plan=session.plan.advance(),
                correct_answers=session.correct_answers + (1 if correct else 0),
                xp_earned=session.xp_earned + xp,
            )
            self.store.save_session(session)

            next_record = None
            next_id = session.plan.current
            if next_id is not None:
                next_record = self.store.get_challenge(next_id)
                if next_record is None:
                    _log.warning("session %s: planned challenge %s is gone", session_id, next_id)

        return AttemptResult(
            is_correct=correct,
            correct_answer=challenge.correct_answer,
            xp_earned=xp,
            time_taken=time_taken,
            correct_answers=session.correct_answers,
            total_xp=session.xp_earned,
            challenges_completed=session.plan.cursor,
            total_challenges=session.total_challenges,
            next_challenge=self.present(next_record) if next_record is not None else None,
        )

    def complete_session(self, session_id: str, caller_user_id: str) -> SessionResults:
        with self.store.transaction():
            session = self.store.find_session(session_id, caller_user_id, lock=True)
            if session is None or session.is_completed:
                raise NotFoundError("Active session not found")

            attempts = self.store.list_attempts(session_id)
            totals = summarize_attempts(attempts)
            now = self.clock()
            self.store.save_session(
                replace(
                    session,
                    is_completed=True,
                    completed_at=now,
                    correct_answers=totals.correct,
                    xp_earned=totals.xp,
                    accuracy=totals.accuracy,
                )
            )
            user_total = self.store.credit_user(caller_user_id, totals.xp)
            self.store.credit_progress(caller_user_id, session.subject_id, totals.xp, now)

            subject = self.store.get_subject(session.subject_id)
            review = self._review(attempts)

        _log.info(
            "session %s completed: %d/%d correct, %d xp",
            session_id,
            totals.correct,
            totals.attempts,
            totals.xp,
        )
        return SessionResults(
            session_id=session_id,
            subject_name=subject.name if subject else "",
            total_challenges=totals.attempts,
            correct_answers=totals.correct,
            accuracy=totals.accuracy,
            xp_earned=totals.xp,
            completed_at=now,
            user_total_xp=user_total,
            attempts=review,
        )

    def get_session(self, session_id: str, caller_user_id: str) -> SessionView:
        with self.store.transaction():
            session = self.store.find_session(session_id, caller_user_id)
            if session is None:
                raise NotFoundError("Session not found")
            subject = self.store.get_subject(session.subject_id)
            review = self._review(self.store.list_attempts(session_id))
            current = None
            if not session.is_completed and session.plan.current is not None:
                current = self.store.get_challenge(session.plan.current)

        return SessionView(
            session=session,
            subject_name=subject.name if subject else "",
            attempts=review,
            current_challenge=self.present(current) if current is not None else None,
        )

    def _review(self, attempts: List[AttemptRecord]) -> List[ReviewItem]:
        challenges: Dict[str, ChallengeRecord] = self.store.get_challenges(
            a.challenge_id for a in attempts
        )
        items = []
        for a in attempts:
            challenge = challenges.get(a.challenge_id)
            items.append(
                ReviewItem(
                    challenge_id=a.challenge_id,
                    challenge_prompt=challenge.prompt if challenge else "",
                    user_answer=a.user_answer,
                    correct_answer=challenge.correct_answer if challenge else "",
                    is_correct=a.is_correct,
                    xp_earned=a.xp_earned,
                    time_taken=a.time_taken,
                )
            )
        return items
