"""Storage contract the session engine depends on."""

from __future__ import annotations

import abc
from datetime import datetime
from typing import ContextManager, Dict, Iterable, List, Optional

from .records import (
    AttemptRecord,
    ChallengeRecord,
    SessionRecord,
    SubjectRecord,
)


class GameStore(abc.ABC):
    """
    Gateway over subjects, challenges, sessions and the attempt ledger.

    Everything the engine reads and writes for one operation happens inside
    ``transaction()``: either all writes land or none do. ``find_session``
    with ``lock=True`` must serialize concurrent transactions on the same
    session until the enclosing transaction ends.
    """

    @abc.abstractmethod
    def transaction(self) -> ContextManager[None]:
        ...

    # Read-only catalogue

    @abc.abstractmethod
    def get_subject(self, subject_id: str) -> Optional[SubjectRecord]:
        ...

    @abc.abstractmethod
    def list_active_challenges(self, subject_id: str) -> List[ChallengeRecord]:
        """Active challenges of a subject in stable insertion order."""

    @abc.abstractmethod
    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        ...

    def get_challenges(self, challenge_ids: Iterable[str]) -> Dict[str, ChallengeRecord]:
        out: Dict[str, ChallengeRecord] = {}
        for cid in challenge_ids:
            challenge = self.get_challenge(cid)
            if challenge is not None:
                out[cid] = challenge
        return out

    # Sessions

    @abc.abstractmethod
    def add_session(self, session: SessionRecord) -> SessionRecord:
        ...

    @abc.abstractmethod
    def find_session(
        self, session_id: str, user_id: str, lock: bool = False
    ) -> Optional[SessionRecord]:
        """Session owned by ``user_id``; None when missing or owned by someone else."""

    @abc.abstractmethod
    def save_session(self, session: SessionRecord) -> SessionRecord:
        ...

    # Attempt ledger

    @abc.abstractmethod
    def find_attempt(self, session_id: str, challenge_id: str) -> Optional[AttemptRecord]:
        ...

    @abc.abstractmethod
    def append_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        """Append to the ledger; raises ConflictError if the pair already exists."""

    @abc.abstractmethod
    def list_attempts(self, session_id: str) -> List[AttemptRecord]:
        """Attempts of a session in submission order."""

    # User totals

    @abc.abstractmethod
    def credit_user(self, user_id: str, xp: int) -> int:
        """Add XP to the user's cumulative total and return the new total."""

    @abc.abstractmethod
    def credit_progress(
        self, user_id: str, subject_id: str, xp: int, studied_at: datetime
    ) -> None:
        """Create or increment the per-(user, subject) progress record."""
