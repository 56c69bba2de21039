"""SQLAlchemy implementation of the GameStore contract."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, EngineError, NotFoundError, PersistenceError
from .models import Challenge, ChallengeAttempt, GameSession, Subject, User, UserProgress
from .records import (
    AttemptRecord,
    ChallengeRecord,
    SessionPlan,
    SessionRecord,
    SubjectRecord,
)
from .scoring import level_for_xp
from .store import GameStore

_log = logging.getLogger("tla_api.sql_store")


def _subject_record(row: Subject) -> SubjectRecord:
    return SubjectRecord(
        id=row.id,
        name=row.name,
        description=row.description,
        difficulty=row.difficulty,
        is_active=bool(row.is_active),
    )


def _challenge_record(row: Challenge) -> ChallengeRecord:
    distractors = row.distractors or []
    if not isinstance(distractors, list):
        distractors = []
    return ChallengeRecord(
        id=row.id,
        subject_id=row.subject_id,
        prompt=row.prompt,
        correct_answer=row.correct_answer,
        distractors=tuple(str(d) for d in distractors),
        level=row.level,
        difficulty_level=row.difficulty_level,
        type=row.type,
        time_limit=row.time_limit,
        xp_reward=row.xp_reward,
        is_active=bool(row.is_active),
    )


def _session_record(row: GameSession) -> SessionRecord:
    plan = SessionPlan.from_stored(row.challenge_ids, row.cursor, row.total_challenges)
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        subject_id=row.subject_id,
        session_type=row.session_type,
        plan=plan,
        correct_answers=row.correct_answers,
        xp_earned=row.xp_earned,
        accuracy=row.accuracy,
        is_completed=bool(row.is_completed),
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _attempt_record(row: ChallengeAttempt) -> AttemptRecord:
    return AttemptRecord(
        id=row.id,
        session_id=row.session_id,
        challenge_id=row.challenge_id,
        user_answer=row.user_answer,
        is_correct=bool(row.is_correct),
        xp_earned=row.xp_earned,
        time_taken=row.time_taken,
        attempted_at=row.attempted_at,
    )


class SqlGameStore(GameStore):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except EngineError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            _log.exception("database operation failed")
            raise PersistenceError("Database operation failed") from exc
        except BaseException:
            self.db.rollback()
            raise

    def get_subject(self, subject_id: str) -> Optional[SubjectRecord]:
        row = self.db.get(Subject, subject_id)
        return _subject_record(row) if row is not None else None

    def list_active_challenges(self, subject_id: str) -> List[ChallengeRecord]:
        rows = (
            self.db.query(Challenge)
            .filter(Challenge.subject_id == subject_id, Challenge.is_active.is_(True))
            .order_by(Challenge.position, Challenge.id)
            .all()
        )
        return [_challenge_record(r) for r in rows]

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        row = self.db.get(Challenge, challenge_id)
        return _challenge_record(row) if row is not None else None

    def add_session(self, session: SessionRecord) -> SessionRecord:
        row = GameSession(
            id=session.id,
            user_id=session.user_id,
            subject_id=session.subject_id,
            session_type=session.session_type,
            total_challenges=session.plan.total,
            challenge_ids=list(session.plan.challenge_ids),
            cursor=session.plan.cursor,
            correct_answers=session.correct_answers,
            xp_earned=session.xp_earned,
            accuracy=session.accuracy,
            is_completed=session.is_completed,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )
        self.db.add(row)
        self.db.flush()
        return session

    def find_session(
        self, session_id: str, user_id: str, lock: bool = False
    ) -> Optional[SessionRecord]:
        q = self.db.query(GameSession).filter(
            GameSession.id == session_id, GameSession.user_id == user_id
        )
        if lock:
            # row lock on the session serializes submissions for it
            q = q.with_for_update()
        row = q.first()
        if row is None:
            return None
        return _session_record(row)

    def save_session(self, session: SessionRecord) -> SessionRecord:
        row = self.db.get(GameSession, session.id)
        if row is None:
            raise NotFoundError("Session not found")
        row.cursor = session.plan.cursor
        row.correct_answers = session.correct_answers
        row.xp_earned = session.xp_earned
        row.accuracy = session.accuracy
        row.is_completed = session.is_completed
        row.completed_at = session.completed_at
        self.db.flush()
        return session

    def find_attempt(self, session_id: str, challenge_id: str) -> Optional[AttemptRecord]:
        row = (
            self.db.query(ChallengeAttempt)
            .filter(
                ChallengeAttempt.session_id == session_id,
                ChallengeAttempt.challenge_id == challenge_id,
            )
            .first()
        )
        return _attempt_record(row) if row is not None else None

    def append_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        row = ChallengeAttempt(
            session_id=attempt.session_id,
            challenge_id=attempt.challenge_id,
            user_answer=attempt.user_answer,
            is_correct=attempt.is_correct,
            time_taken=attempt.time_taken,
            xp_earned=attempt.xp_earned,
            attempted_at=attempt.attempted_at,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # unique (session_id, challenge_id) lost a race with another writer
            raise ConflictError("Challenge already attempted") from exc
        return _attempt_record(row)

    def list_attempts(self, session_id: str) -> List[AttemptRecord]:
        rows = (
            self.db.query(ChallengeAttempt)
            .filter(ChallengeAttempt.session_id == session_id)
            .order_by(ChallengeAttempt.id)
            .all()
        )
        return [_attempt_record(r) for r in rows]

    def credit_user(self, user_id: str, xp: int) -> int:
        updated = (
            self.db.query(User)
            .filter(User.id == user_id)
            .update({User.total_xp: User.total_xp + xp}, synchronize_session=False)
        )
        if not updated:
            raise NotFoundError("User not found")
        user = self.db.get(User, user_id, populate_existing=True)
        user.level = level_for_xp(user.total_xp)
        self.db.flush()
        return user.total_xp

    def credit_progress(
        self, user_id: str, subject_id: str, xp: int, studied_at: datetime
    ) -> None:
        row = (
            self.db.query(UserProgress)
            .filter(UserProgress.user_id == user_id, UserProgress.subject_id == subject_id)
            .with_for_update()
            .first()
        )
        if row is None:
            row = UserProgress(
                user_id=user_id, subject_id=subject_id, total_xp=xp, last_studied=studied_at
            )
            self.db.add(row)
        else:
            row.total_xp = row.total_xp + xp
            row.last_studied = studied_at
        self.db.flush()
