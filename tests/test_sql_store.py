import random
from datetime import datetime, timezone

import pytest

from tla_api.engine import SessionEngine
from tla_api.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from tla_api.models import Challenge, GameSession, Subject, User, UserProgress
from tla_api.records import AttemptRecord
from tla_api.sql_store import SqlGameStore

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _subject(db, name="Technology"):
    return db.query(Subject).filter(Subject.name == name).one()


def _test_user(db):
    return db.query(User).filter(User.email == "test@example.com").one()


@pytest.fixture
def game(seeded):
    return SessionEngine(SqlGameStore(seeded), rng=random.Random(5), clock=lambda: NOW)


def test_full_session_against_database(seeded, game):
    user = _test_user(seeded)
    tech = _subject(seeded)

    started = game.start_session(user.id, tech.id, "practice")
    assert started.session.total_challenges == 3
    assert started.challenge.prompt == "What does API stand for?"
    assert "Application Programming Interface" in started.challenge.options

    challenge_id = started.challenge.id
    for answer in (" application programming interface ", "Standard Query Language", "Rest"):
        outcome = game.submit_attempt(started.session.id, challenge_id, answer, 7, user.id)
        challenge_id = outcome.next_challenge.id if outcome.next_challenge else None
    assert challenge_id is None

    results = game.complete_session(started.session.id, user.id)
    assert results.correct_answers == 1
    assert results.total_challenges == 3
    assert round(results.accuracy) == 33
    assert results.xp_earned == 10
    assert results.user_total_xp == 10

    seeded.expire_all()
    row = seeded.get(GameSession, started.session.id)
    assert row.is_completed is True
    assert row.cursor == 3
    assert row.total_challenges == len(row.challenge_ids) == 3
    assert row.accuracy == pytest.approx(100 / 3)
    assert (row.correct_answers, row.xp_earned) == (1, 10)

    user = seeded.get(User, user.id)
    assert user.total_xp == 10
    assert user.level == 1
    progress = seeded.query(UserProgress).filter(UserProgress.user_id == user.id).one()
    assert progress.subject_id == tech.id
    assert progress.total_xp == 10


def test_duplicate_attempt_is_rejected(seeded, game):
    user = _test_user(seeded)
    started = game.start_session(user.id, _subject(seeded).id)
    cid = started.challenge.id
    game.submit_attempt(started.session.id, cid, "Application Programming Interface", 3, user.id)

    with pytest.raises(ConflictError):
        game.submit_attempt(started.session.id, cid, "Application Programming Interface", 3, user.id)

    seeded.expire_all()
    row = seeded.get(GameSession, started.session.id)
    assert (row.cursor, row.correct_answers, row.xp_earned) == (1, 1, 10)


def test_unique_ledger_constraint_backs_up_engine_check(seeded, game):
    user = _test_user(seeded)
    started = game.start_session(user.id, _subject(seeded).id)
    store = SqlGameStore(seeded)
    attempt = AttemptRecord(
        session_id=started.session.id,
        challenge_id=started.challenge.id,
        user_answer="x",
        is_correct=False,
        xp_earned=0,
        attempted_at=NOW,
    )

    with pytest.raises(ConflictError):
        with store.transaction():
            store.append_attempt(attempt)
            store.append_attempt(attempt)

    assert store.list_attempts(started.session.id) == []


def test_no_active_challenges_creates_no_session(seeded, game):
    user = _test_user(seeded)
    tech = _subject(seeded)
    for challenge in seeded.query(Challenge).filter(Challenge.subject_id == tech.id):
        challenge.is_active = False
    seeded.commit()

    with pytest.raises(ValidationError):
        game.start_session(user.id, tech.id, "main_path")
    assert seeded.query(GameSession).count() == 0


def test_missing_or_inactive_subject(seeded, game):
    user = _test_user(seeded)
    with pytest.raises(NotFoundError):
        game.start_session(user.id, "does-not-exist")

    medical = _subject(seeded, "Medical")
    medical.is_active = False
    seeded.commit()
    with pytest.raises(NotFoundError):
        game.start_session(user.id, medical.id)


def test_corrupt_plan_is_rejected(seeded, game):
    user = _test_user(seeded)
    started = game.start_session(user.id, _subject(seeded).id)
    row = seeded.get(GameSession, started.session.id)
    row.cursor = 7
    seeded.commit()

    with pytest.raises(PersistenceError):
        game.submit_attempt(started.session.id, started.challenge.id, "x", None, user.id)
    with pytest.raises(PersistenceError):
        game.complete_session(started.session.id, user.id)


def test_completion_for_unknown_user_rolls_back(seeded, game):
    tech = _subject(seeded)
    started = game.start_session("ghost", tech.id)

    with pytest.raises(NotFoundError):
        game.complete_session(started.session.id, "ghost")

    seeded.expire_all()
    assert seeded.get(GameSession, started.session.id).is_completed is False
    assert seeded.query(UserProgress).count() == 0
