from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    total_xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    streak = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String, nullable=True)
    color = Column(String(7), nullable=True)
    difficulty = Column(Integer, nullable=False, default=1)  # 1..5
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vocabulary = relationship("Vocabulary", back_populates="subject")
    challenges = relationship("Challenge", back_populates="subject")


class Vocabulary(Base):
    __tablename__ = "vocabulary"

    id = Column(String(32), primary_key=True, default=_new_id)
    subject_id = Column(String(32), ForeignKey("subjects.id"), index=True, nullable=False)
    term = Column(String, index=True, nullable=False)
    definition = Column(Text, nullable=False)
    full_form = Column(String, nullable=True)
    example = Column(Text, nullable=True)
    difficulty = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    subject = relationship("Subject", back_populates="vocabulary")


class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(String(32), primary_key=True, default=_new_id)
    subject_id = Column(String(32), ForeignKey("subjects.id"), index=True, nullable=False)
    vocabulary_id = Column(String(32), ForeignKey("vocabulary.id"), nullable=True)
    type = Column(String, nullable=False, default="multiple_choice")
    level = Column(Integer, nullable=False, default=1)
    difficulty_level = Column(Integer, nullable=False, default=1)
    prompt = Column(Text, nullable=False)
    correct_answer = Column(String, nullable=False)
    distractors = Column(JSON, nullable=False, default=list)
    time_limit = Column(Integer, nullable=False, default=30)  # seconds
    xp_reward = Column(Integer, nullable=False, default=10)
    is_active = Column(Boolean, nullable=False, default=True)
    # insertion order, breaks ties when ordering the pool
    position = Column(Integer, nullable=False, default=0)

    subject = relationship("Subject", back_populates="challenges")


class GameSession(Base):
    __tablename__ = "game_sessions"

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    subject_id = Column(String(32), ForeignKey("subjects.id"), index=True, nullable=False)
    session_type = Column(String, nullable=False, default="main_path")  # 'main_path' | 'practice'
    total_challenges = Column(Integer, nullable=False)
    # Frozen plan: ordered challenge ids + index of the next one to serve
    challenge_ids = Column(JSON, nullable=False)
    cursor = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    xp_earned = Column(Integer, nullable=False, default=0)
    accuracy = Column(Float, nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    subject = relationship("Subject")


class ChallengeAttempt(Base):
    __tablename__ = "challenge_attempts"
    __table_args__ = (
        UniqueConstraint("session_id", "challenge_id", name="uq_attempt_session_challenge"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(32), ForeignKey("game_sessions.id"), index=True, nullable=False)
    challenge_id = Column(String(32), ForeignKey("challenges.id"), nullable=False)
    user_answer = Column(String, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    time_taken = Column(Integer, nullable=True)
    xp_earned = Column(Integer, nullable=False, default=0)
    attempted_at = Column(DateTime(timezone=True), nullable=False)

    challenge = relationship("Challenge")


class UserProgress(Base):
    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "subject_id", name="uq_progress_user_subject"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    subject_id = Column(String(32), ForeignKey("subjects.id"), nullable=False)
    total_xp = Column(Integer, nullable=False, default=0)
    last_studied = Column(DateTime(timezone=True), nullable=True)

    subject = relationship("Subject")
