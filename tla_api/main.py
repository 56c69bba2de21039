import logging
import math
import random
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import create_token, get_current_user_id, hash_password, verify_password
from .config import cors_origins
from .db import Base, engine, get_db
from .engine import ChallengePresentation, SessionEngine
from .errors import EngineError, PersistenceError
from .models import Subject, User, UserProgress, Vocabulary
from .records import ReviewItem, SessionRecord
from .schemas import (
    AttemptOutcome,
    AttemptReview,
    AuthResponse,
    ChallengeOut,
    CompleteSessionResponse,
    LoginRequest,
    MessageResponse,
    Pagination,
    ProfileResponse,
    ProgressOut,
    ProgressResponse,
    RegisterRequest,
    SessionDetailResponse,
    SessionProgress,
    SessionResultsOut,
    SessionSummary,
    StartSessionRequest,
    StartSessionResponse,
    SubjectCreate,
    SubjectDetail,
    SubjectListResponse,
    SubjectOut,
    SubjectResponse,
    SubjectUpdate,
    SubmitAttemptRequest,
    SubmitAttemptResponse,
    UserOut,
    VocabularyBrief,
    VocabularyCreate,
    VocabularyOut,
    VocabularyPage,
    VocabularyResponse,
    VocabularySearchResponse,
    VocabularyUpdate,
)
from .scoring import display_accuracy
from .sql_store import SqlGameStore

app = FastAPI(title="TLA API", version="2.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

Base.metadata.create_all(bind=engine)
_log = logging.getLogger("tla_api.main")

# Shared option shuffler; tests swap it through dependency_overrides
_rng = random.Random()


def get_rng() -> random.Random:
    return _rng


def get_session_engine(
    db: Session = Depends(get_db),
    rng: random.Random = Depends(get_rng),
) -> SessionEngine:
    return SessionEngine(SqlGameStore(db), rng=rng)


# Error payloads: {"error": message}


@app.exception_handler(EngineError)
def handle_engine_error(request: Request, exc: EngineError):
    message = exc.message
    if isinstance(exc, PersistenceError):
        _log.error("persistence failure on %s %s: %s", request.method, request.url.path, exc.message)
        message = "Internal server error"
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation failed", "details": details})


@app.exception_handler(SQLAlchemyError)
def handle_db_error(request: Request, exc: SQLAlchemyError):
    _log.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "TLA API",
        "version": app.version,
    }


# Auth


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        total_xp=user.total_xp or 0,
        level=user.level or 1,
        streak=user.streak or 0,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )


@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    email = req.email.strip().lower()
    exists = (
        db.query(User.id)
        .filter(or_(User.email == email, User.username == req.username))
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Resource already exists")
    user = User(
        email=email,
        username=req.username,
        password_hash=hash_password(req.password),
        first_name=req.first_name,
        last_name=req.last_name,
        total_xp=0,
        level=1,
        streak=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return AuthResponse(
        message="User registered successfully",
        user=_user_out(user),
        token=create_token(user.id),
    )


@app.post("/api/auth/login", response_model=AuthResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email.strip().lower()).first()
    if user is None or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return AuthResponse(message="Login successful", user=_user_out(user), token=create_token(user.id))


@app.get("/api/auth/profile", response_model=ProfileResponse)
def profile(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return ProfileResponse(user=_user_out(user))


# Subjects


def _vocabulary_counts(db: Session) -> Dict[str, int]:
    rows = (
        db.query(Vocabulary.subject_id, func.count(Vocabulary.id))
        .filter(Vocabulary.is_active.is_(True))
        .group_by(Vocabulary.subject_id)
        .all()
    )
    return {subject_id: int(n or 0) for subject_id, n in rows}


def _subject_detail(db: Session, subject: Subject) -> SubjectDetail:
    vocab = (
        db.query(Vocabulary)
        .filter(Vocabulary.subject_id == subject.id, Vocabulary.is_active.is_(True))
        .order_by(Vocabulary.term)
        .all()
    )
    return SubjectDetail(
        id=subject.id,
        name=subject.name,
        description=subject.description,
        icon=subject.icon,
        color=subject.color,
        difficulty=subject.difficulty,
        is_active=bool(subject.is_active),
        vocabulary_count=len(vocab),
        vocabulary=[
            VocabularyBrief(
                id=v.id,
                term=v.term,
                definition=v.definition,
                full_form=v.full_form,
                difficulty=v.difficulty,
            )
            for v in vocab
        ],
    )


def _get_subject_or_404(db: Session, subject_id: str) -> Subject:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return subject


@app.get("/api/subjects", response_model=SubjectListResponse)
def list_subjects(db: Session = Depends(get_db)):
    counts = _vocabulary_counts(db)
    rows = db.query(Subject).filter(Subject.is_active.is_(True)).order_by(Subject.name).all()
    return SubjectListResponse(
        subjects=[
            SubjectOut(
                id=s.id,
                name=s.name,
                description=s.description,
                icon=s.icon,
                color=s.color,
                difficulty=s.difficulty,
                is_active=bool(s.is_active),
                vocabulary_count=counts.get(s.id, 0),
            )
            for s in rows
        ]
    )


@app.get("/api/subjects/{subject_id}", response_model=SubjectResponse)
def get_subject(subject_id: str, db: Session = Depends(get_db)):
    subject = _get_subject_or_404(db, subject_id)
    return SubjectResponse(subject=_subject_detail(db, subject))


@app.post("/api/subjects", response_model=SubjectResponse, status_code=201)
def create_subject(
    req: SubjectCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if db.query(Subject.id).filter(Subject.name == req.name).first():
        raise HTTPException(status_code=409, detail="Resource already exists")
    subject = Subject(**req.model_dump(), is_active=True)
    db.add(subject)
    db.commit()
    db.refresh(subject)
    _log.info("subject %s created by %s", subject.id, user_id)
    return SubjectResponse(message="Subject created successfully", subject=_subject_detail(db, subject))


@app.put("/api/subjects/{subject_id}", response_model=SubjectResponse)
def update_subject(
    subject_id: str,
    req: SubjectUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    subject = _get_subject_or_404(db, subject_id)
    changes = req.model_dump(exclude_unset=True)
    if "name" in changes:
        taken = (
            db.query(Subject.id)
            .filter(Subject.name == changes["name"], Subject.id != subject.id)
            .first()
        )
        if taken:
            raise HTTPException(status_code=409, detail="Resource already exists")
    for key, value in changes.items():
        setattr(subject, key, value)
    db.commit()
    db.refresh(subject)
    return SubjectResponse(message="Subject updated successfully", subject=_subject_detail(db, subject))


@app.delete("/api/subjects/{subject_id}", response_model=MessageResponse)
def delete_subject(
    subject_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    subject = _get_subject_or_404(db, subject_id)
    # Soft delete
    subject.is_active = False
    db.commit()
    return MessageResponse(message="Subject deleted successfully")


# Vocabulary


def _vocabulary_out(v: Vocabulary) -> VocabularyOut:
    return VocabularyOut(
        id=v.id,
        subject_id=v.subject_id,
        subject_name=v.subject.name if v.subject is not None else None,
        term=v.term,
        definition=v.definition,
        full_form=v.full_form,
        example=v.example,
        difficulty=v.difficulty,
    )


def _get_vocabulary_or_404(db: Session, vocabulary_id: str) -> Vocabulary:
    vocab = db.get(Vocabulary, vocabulary_id)
    if vocab is None:
        raise HTTPException(status_code=404, detail="Vocabulary term not found")
    return vocab


@app.get("/api/vocabulary/subject/{subject_id}", response_model=VocabularyPage)
def vocabulary_by_subject(
    subject_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    difficulty: Optional[int] = Query(None, ge=1, le=5),
    db: Session = Depends(get_db),
):
    q = db.query(Vocabulary).filter(
        Vocabulary.subject_id == subject_id, Vocabulary.is_active.is_(True)
    )
    if difficulty:
        q = q.filter(Vocabulary.difficulty == difficulty)
    total = q.count()
    rows = q.order_by(Vocabulary.term).offset((page - 1) * limit).limit(limit).all()
    return VocabularyPage(
        vocabulary=[_vocabulary_out(v) for v in rows],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@app.get("/api/vocabulary/search", response_model=VocabularySearchResponse)
def search_vocabulary(
    q: Optional[str] = None,
    subject_id: Optional[str] = None,
    difficulty: Optional[int] = Query(None, ge=1, le=5),
    db: Session = Depends(get_db),
):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query required")
    pattern = f"%{q.strip().lower()}%"
    query = db.query(Vocabulary).filter(
        Vocabulary.is_active.is_(True),
        or_(
            func.lower(Vocabulary.term).like(pattern),
            func.lower(Vocabulary.definition).like(pattern),
            func.lower(Vocabulary.full_form).like(pattern),
        ),
    )
    if subject_id:
        query = query.filter(Vocabulary.subject_id == subject_id)
    if difficulty:
        query = query.filter(Vocabulary.difficulty == difficulty)
    # Limit search results
    rows = query.order_by(Vocabulary.term).limit(50).all()
    return VocabularySearchResponse(vocabulary=[_vocabulary_out(v) for v in rows], query=q)


@app.get("/api/vocabulary/{vocabulary_id}", response_model=VocabularyResponse)
def get_vocabulary(vocabulary_id: str, db: Session = Depends(get_db)):
    return VocabularyResponse(vocabulary=_vocabulary_out(_get_vocabulary_or_404(db, vocabulary_id)))


@app.post("/api/vocabulary", response_model=VocabularyResponse, status_code=201)
def create_vocabulary(
    req: VocabularyCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _get_subject_or_404(db, req.subject_id)
    vocab = Vocabulary(**req.model_dump(), is_active=True)
    db.add(vocab)
    db.commit()
    db.refresh(vocab)
    return VocabularyResponse(message="Vocabulary term created successfully", vocabulary=_vocabulary_out(vocab))


@app.put("/api/vocabulary/{vocabulary_id}", response_model=VocabularyResponse)
def update_vocabulary(
    vocabulary_id: str,
    req: VocabularyUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    vocab = _get_vocabulary_or_404(db, vocabulary_id)
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(vocab, key, value)
    db.commit()
    db.refresh(vocab)
    return VocabularyResponse(message="Vocabulary term updated successfully", vocabulary=_vocabulary_out(vocab))


@app.delete("/api/vocabulary/{vocabulary_id}", response_model=MessageResponse)
def delete_vocabulary(
    vocabulary_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    vocab = _get_vocabulary_or_404(db, vocabulary_id)
    vocab.is_active = False
    db.commit()
    return MessageResponse(message="Vocabulary term deleted successfully")


# Game sessions


def _challenge_out(c: ChallengePresentation) -> ChallengeOut:
    return ChallengeOut(
        id=c.id,
        type=c.type,
        prompt=c.prompt,
        options=list(c.options),
        time_limit=c.time_limit,
        xp_reward=c.xp_reward,
    )


def _session_summary(session: SessionRecord, subject_name: str) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        subject_id=session.subject_id,
        subject_name=subject_name,
        session_type=session.session_type,
        total_challenges=session.total_challenges,
        current_challenge=session.plan.cursor,
        correct_answers=session.correct_answers,
        xp_earned=session.xp_earned,
        accuracy=display_accuracy(session.accuracy) if session.accuracy is not None else None,
        is_completed=session.is_completed,
        started_at=session.started_at,
        completed_at=session.completed_at,
    )


def _review_out(item: ReviewItem) -> AttemptReview:
    return AttemptReview(
        challenge_id=item.challenge_id,
        challenge_prompt=item.challenge_prompt,
        user_answer=item.user_answer,
        correct_answer=item.correct_answer,
        is_correct=item.is_correct,
        xp_earned=item.xp_earned,
        time_taken=item.time_taken,
    )


@app.post("/api/game/sessions/start", response_model=StartSessionResponse, status_code=201)
def start_session(
    req: StartSessionRequest,
    user_id: str = Depends(get_current_user_id),
    game: SessionEngine = Depends(get_session_engine),
):
    started = game.start_session(user_id, req.subject_id, req.session_type)
    return StartSessionResponse(
        message="Game session started successfully",
        session=_session_summary(started.session, started.subject_name),
        challenge=_challenge_out(started.challenge),
    )


@app.get("/api/game/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    game: SessionEngine = Depends(get_session_engine),
):
    view = game.get_session(session_id, user_id)
    return SessionDetailResponse(
        session=_session_summary(view.session, view.subject_name),
        attempts=[_review_out(a) for a in view.attempts],
        current_challenge=_challenge_out(view.current_challenge) if view.current_challenge else None,
    )


@app.post(
    "/api/game/sessions/{session_id}/challenges/{challenge_id}/attempt",
    response_model=SubmitAttemptResponse,
)
def submit_attempt(
    session_id: str,
    challenge_id: str,
    req: SubmitAttemptRequest,
    user_id: str = Depends(get_current_user_id),
    game: SessionEngine = Depends(get_session_engine),
):
    outcome = game.submit_attempt(session_id, challenge_id, req.user_answer, req.time_taken, user_id)
    return SubmitAttemptResponse(
        message="Answer submitted successfully",
        result=AttemptOutcome(
            is_correct=outcome.is_correct,
            correct_answer=outcome.correct_answer,
            xp_earned=outcome.xp_earned,
            time_taken=outcome.time_taken,
        ),
        session=SessionProgress(
            correct_answers=outcome.correct_answers,
            total_xp=outcome.total_xp,
            challenges_completed=outcome.challenges_completed,
            total_challenges=outcome.total_challenges,
        ),
        next_challenge=_challenge_out(outcome.next_challenge) if outcome.next_challenge else None,
    )


@app.post("/api/game/sessions/{session_id}/complete", response_model=CompleteSessionResponse)
def complete_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    game: SessionEngine = Depends(get_session_engine),
):
    results = game.complete_session(session_id, user_id)
    return CompleteSessionResponse(
        message="Session completed successfully",
        results=SessionResultsOut(
            session_id=results.session_id,
            subject_name=results.subject_name,
            total_challenges=results.total_challenges,
            correct_answers=results.correct_answers,
            accuracy=display_accuracy(results.accuracy),
            xp_earned=results.xp_earned,
            completed_at=results.completed_at,
            user_total_xp=results.user_total_xp,
            attempts=[_review_out(a) for a in results.attempts],
        ),
    )


# Progress


@app.get("/api/progress", response_model=ProgressResponse)
def progress(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    rows = (
        db.query(UserProgress)
        .filter(UserProgress.user_id == user_id)
        .order_by(UserProgress.last_studied.desc())
        .all()
    )
    return ProgressResponse(
        total_xp=user.total_xp or 0,
        level=user.level or 1,
        subjects=[
            ProgressOut(
                subject_id=p.subject_id,
                subject_name=p.subject.name if p.subject is not None else None,
                total_xp=p.total_xp,
                last_studied=p.last_studied,
            )
            for p in rows
        ],
    )
