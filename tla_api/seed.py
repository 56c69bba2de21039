"""Sample subjects, vocabulary and challenges. Run with ``python -m tla_api.seed``."""

import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from .auth import hash_password
from .db import Base, SessionLocal, engine
from .models import Challenge, Subject, User, Vocabulary

_log = logging.getLogger("tla_api.seed")

SUBJECTS = [
    {
        "name": "Technology",
        "description": "Common technology and software development acronyms",
        "icon": "laptop",
        "color": "#3B82F6",
        "difficulty": 2,
        "vocabulary": [
            ("API", "A set of protocols and tools for building software applications",
             "Application Programming Interface",
             "The weather app uses an API to get current weather data", 1),
            ("SQL", "A programming language designed for managing data in relational databases",
             "Structured Query Language", "We use SQL to query the user database", 2),
            ("REST", "An architectural style for designing networked applications",
             "Representational State Transfer", "Our REST API follows standard HTTP methods", 3),
        ],
    },
    {
        "name": "Medical",
        "description": "Medical and healthcare terminology",
        "icon": "heart",
        "color": "#EF4444",
        "difficulty": 3,
        "vocabulary": [
            ("CPR", "An emergency procedure to restore blood circulation and breathing",
             "Cardiopulmonary Resuscitation", "The paramedic performed CPR on the patient", 1),
            ("MRI", "A medical imaging technique using magnetic fields and radio waves",
             "Magnetic Resonance Imaging", "The doctor ordered an MRI to examine the brain injury", 2),
        ],
    },
    {
        "name": "Business",
        "description": "Business and finance acronyms",
        "icon": "briefcase",
        "color": "#10B981",
        "difficulty": 2,
        "vocabulary": [
            ("ROI", "A measure of the efficiency of an investment",
             "Return on Investment", "The marketing campaign had a 300% ROI", 1),
            ("KPI", "A measurable value that demonstrates effectiveness in achieving objectives",
             "Key Performance Indicator", "Customer satisfaction is our primary KPI", 2),
        ],
    },
]

TEST_USER = {
    "email": "test@example.com",
    "username": "testuser",
    "password": "TestPassword123",
    "first_name": "Test",
    "last_name": "User",
}

MAX_DISTRACTORS = 3


def build_challenges(db: Session, subject: Subject) -> List[Challenge]:
    """One multiple-choice challenge per active term: pick its full form among the others."""
    vocab = (
        db.query(Vocabulary)
        .filter(Vocabulary.subject_id == subject.id, Vocabulary.is_active.is_(True))
        .order_by(Vocabulary.difficulty, Vocabulary.term)
        .all()
    )
    challenges = []
    for position, v in enumerate(vocab):
        distractors = [o.full_form for o in vocab if o.id != v.id and o.full_form][:MAX_DISTRACTORS]
        challenge = Challenge(
            subject_id=subject.id,
            vocabulary_id=v.id,
            type="multiple_choice",
            level=1,
            difficulty_level=v.difficulty,
            prompt=f"What does {v.term} stand for?",
            correct_answer=v.full_form or v.term,
            distractors=distractors,
            time_limit=30,
            xp_reward=10 * v.difficulty,
            is_active=True,
            position=position,
        )
        db.add(challenge)
        challenges.append(challenge)
    return challenges


def seed_database(db: Session) -> Dict[str, int]:
    if db.query(Subject.id).first() is not None:
        _log.info("database already seeded, skipping")
        return {"subjects": 0, "vocabulary": 0, "challenges": 0, "users": 0}

    counts = {"subjects": 0, "vocabulary": 0, "challenges": 0, "users": 0}
    for entry in SUBJECTS:
        subject = Subject(
            name=entry["name"],
            description=entry["description"],
            icon=entry["icon"],
            color=entry["color"],
            difficulty=entry["difficulty"],
            is_active=True,
        )
        db.add(subject)
        db.flush()
        counts["subjects"] += 1
        for term, definition, full_form, example, difficulty in entry["vocabulary"]:
            db.add(
                Vocabulary(
                    subject_id=subject.id,
                    term=term,
                    definition=definition,
                    full_form=full_form,
                    example=example,
                    difficulty=difficulty,
                    is_active=True,
                )
            )
            counts["vocabulary"] += 1
        db.flush()
        counts["challenges"] += len(build_challenges(db, subject))

    if db.query(User.id).filter(User.email == TEST_USER["email"]).first() is None:
        db.add(
            User(
                email=TEST_USER["email"],
                username=TEST_USER["username"],
                password_hash=hash_password(TEST_USER["password"]),
                first_name=TEST_USER["first_name"],
                last_name=TEST_USER["last_name"],
                total_xp=0,
                level=1,
                streak=0,
            )
        )
        counts["users"] += 1

    db.commit()
    return counts


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        counts = seed_database(db)
    finally:
        db.close()
    _log.info(
        "seeded %d subjects, %d vocabulary terms, %d challenges, %d users",
        counts["subjects"],
        counts["vocabulary"],
        counts["challenges"],
        counts["users"],
    )


if __name__ == "__main__":
    main()
