"""In-memory GameStore used by the engine tests."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from tla_api.errors import ConflictError, NotFoundError
from tla_api.records import (
    AttemptRecord,
    ChallengeRecord,
    ProgressRecord,
    SessionRecord,
    SubjectRecord,
)
from tla_api.scoring import level_for_xp
from tla_api.store import GameStore


class InMemoryGameStore(GameStore):
    """
    Transactions take one re-entrant lock and snapshot the mutable state,
    restoring it if the block raises. The single lock also covers the
    per-session serialization the engine asks for with ``lock=True``.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.subjects: Dict[str, SubjectRecord] = {}
        self.challenges: Dict[str, ChallengeRecord] = {}
        self.sessions: Dict[str, SessionRecord] = {}
        self.attempts: List[AttemptRecord] = []
        self.user_xp: Dict[str, int] = {}
        self.user_levels: Dict[str, int] = {}
        self.progress: Dict[Tuple[str, str], ProgressRecord] = {}

    # Fixture helpers

    def add_subject(self, subject: SubjectRecord) -> SubjectRecord:
        self.subjects[subject.id] = subject
        return subject

    def add_challenge(self, challenge: ChallengeRecord) -> ChallengeRecord:
        self.challenges[challenge.id] = challenge
        return challenge

    def add_user(self, user_id: str, total_xp: int = 0) -> None:
        self.user_xp[user_id] = total_xp
        self.user_levels[user_id] = level_for_xp(total_xp)

    # GameStore

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise

    def _snapshot(self):
        return (
            dict(self.sessions),
            list(self.attempts),
            dict(self.user_xp),
            dict(self.user_levels),
            dict(self.progress),
        )

    def _restore(self, snapshot) -> None:
        (
            self.sessions,
            self.attempts,
            self.user_xp,
            self.user_levels,
            self.progress,
        ) = snapshot

    def get_subject(self, subject_id: str) -> Optional[SubjectRecord]:
        return self.subjects.get(subject_id)

    def list_active_challenges(self, subject_id: str) -> List[ChallengeRecord]:
        return [
            c for c in self.challenges.values() if c.subject_id == subject_id and c.is_active
        ]

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        return self.challenges.get(challenge_id)

    def add_session(self, session: SessionRecord) -> SessionRecord:
        self.sessions[session.id] = session
        return session

    def find_session(
        self, session_id: str, user_id: str, lock: bool = False
    ) -> Optional[SessionRecord]:
        session = self.sessions.get(session_id)
        if session is None or session.user_id != user_id:
            return None
        return session

    def save_session(self, session: SessionRecord) -> SessionRecord:
        if session.id not in self.sessions:
            raise NotFoundError("Session not found")
        self.sessions[session.id] = session
        return session

    def find_attempt(self, session_id: str, challenge_id: str) -> Optional[AttemptRecord]:
        for attempt in self.attempts:
            if attempt.session_id == session_id and attempt.challenge_id == challenge_id:
                return attempt
        return None

    def append_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        if self.find_attempt(attempt.session_id, attempt.challenge_id) is not None:
            raise ConflictError("Challenge already attempted")
        stored = replace(attempt, id=len(self.attempts) + 1)
        self.attempts.append(stored)
        return stored

    def list_attempts(self, session_id: str) -> List[AttemptRecord]:
        return [a for a in self.attempts if a.session_id == session_id]

    def credit_user(self, user_id: str, xp: int) -> int:
        if user_id not in self.user_xp:
            raise NotFoundError("User not found")
        total = self.user_xp[user_id] + xp
        self.user_xp[user_id] = total
        self.user_levels[user_id] = level_for_xp(total)
        return total

    def credit_progress(
        self, user_id: str, subject_id: str, xp: int, studied_at: datetime
    ) -> None:
        key = (user_id, subject_id)
        current = self.progress.get(key)
        if current is None:
            subject = self.subjects.get(subject_id)
            self.progress[key] = ProgressRecord(
                user_id=user_id,
                subject_id=subject_id,
                total_xp=xp,
                last_studied=studied_at,
                subject_name=subject.name if subject else None,
            )
        else:
            self.progress[key] = replace(
                current, total_xp=current.total_xp + xp, last_studied=studied_at
            )
