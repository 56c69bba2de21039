from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, conint, field_validator

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


def _reject_null(value):
    # Omitted fields are left alone; an explicit null would clear a required column
    if value is None:
        raise ValueError("may not be null")
    return value


# Auth


class RegisterRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=254)
    username: str = Field(min_length=3, max_length=30)
    password: str = Field(min_length=8, max_length=128)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: str
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    total_xp: int
    level: int
    streak: int = 0
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    message: str
    user: UserOut
    token: str


class ProfileResponse(BaseModel):
    user: UserOut


# Subjects and vocabulary


class SubjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=_COLOR_PATTERN)
    difficulty: conint(ge=1, le=5) = 1


class SubjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=_COLOR_PATTERN)
    difficulty: Optional[conint(ge=1, le=5)] = None

    reject_null = field_validator("name", "difficulty")(_reject_null)


class VocabularyBrief(BaseModel):
    id: str
    term: str
    definition: str
    full_form: Optional[str] = None
    difficulty: int


class SubjectOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    difficulty: int
    is_active: bool
    vocabulary_count: int = 0


class SubjectDetail(SubjectOut):
    vocabulary: List[VocabularyBrief] = Field(default_factory=list)


class SubjectListResponse(BaseModel):
    subjects: List[SubjectOut]


class SubjectResponse(BaseModel):
    message: Optional[str] = None
    subject: SubjectDetail


class VocabularyCreate(BaseModel):
    subject_id: str
    term: str = Field(min_length=1, max_length=20)
    definition: str = Field(min_length=1, max_length=1000)
    full_form: str = Field(min_length=1, max_length=200)
    example: Optional[str] = Field(default=None, max_length=500)
    difficulty: conint(ge=1, le=5) = 1


class VocabularyUpdate(BaseModel):
    term: Optional[str] = Field(default=None, min_length=1, max_length=20)
    definition: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    full_form: Optional[str] = Field(default=None, min_length=1, max_length=200)
    example: Optional[str] = Field(default=None, max_length=500)
    difficulty: Optional[conint(ge=1, le=5)] = None

    reject_null = field_validator("term", "definition", "difficulty")(_reject_null)


class VocabularyOut(BaseModel):
    id: str
    subject_id: str
    subject_name: Optional[str] = None
    term: str
    definition: str
    full_form: Optional[str] = None
    example: Optional[str] = None
    difficulty: int


class VocabularyResponse(BaseModel):
    message: Optional[str] = None
    vocabulary: VocabularyOut


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class VocabularyPage(BaseModel):
    vocabulary: List[VocabularyOut]
    pagination: Pagination


class VocabularySearchResponse(BaseModel):
    vocabulary: List[VocabularyOut]
    query: str


class MessageResponse(BaseModel):
    message: str


# Game sessions


class StartSessionRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    session_type: Literal["main_path", "practice"] = "main_path"


class SubmitAttemptRequest(BaseModel):
    user_answer: str = Field(min_length=1)
    time_taken: Optional[conint(ge=0)] = None


class ChallengeOut(BaseModel):
    id: str
    type: str
    prompt: str
    options: List[str]
    time_limit: int
    xp_reward: int


class SessionSummary(BaseModel):
    id: str
    subject_id: str
    subject_name: str
    session_type: str
    total_challenges: int
    current_challenge: int
    correct_answers: int = 0
    xp_earned: int = 0
    accuracy: Optional[int] = None
    is_completed: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StartSessionResponse(BaseModel):
    message: str
    session: SessionSummary
    challenge: ChallengeOut


class AttemptOutcome(BaseModel):
    is_correct: bool
    correct_answer: str
    xp_earned: int
    time_taken: Optional[int] = None


class SessionProgress(BaseModel):
    correct_answers: int
    total_xp: int
    challenges_completed: int
    total_challenges: int


class SubmitAttemptResponse(BaseModel):
    message: str
    result: AttemptOutcome
    session: SessionProgress
    next_challenge: Optional[ChallengeOut] = None


class AttemptReview(BaseModel):
    challenge_id: str
    challenge_prompt: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    xp_earned: int
    time_taken: Optional[int] = None


class SessionResultsOut(BaseModel):
    session_id: str
    subject_name: str
    total_challenges: int
    correct_answers: int
    accuracy: int
    xp_earned: int
    completed_at: datetime
    user_total_xp: int
    attempts: List[AttemptReview]


class CompleteSessionResponse(BaseModel):
    message: str
    results: SessionResultsOut


class SessionDetailResponse(BaseModel):
    session: SessionSummary
    attempts: List[AttemptReview]
    current_challenge: Optional[ChallengeOut] = None


# Progress


class ProgressOut(BaseModel):
    subject_id: str
    subject_name: Optional[str] = None
    total_xp: int
    last_studied: Optional[datetime] = None


class ProgressResponse(BaseModel):
    total_xp: int
    level: int
    subjects: List[ProgressOut]
