from __future__ import annotations

import random
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuestionType(str, Enum):
    SINGLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_TEXT = "short-answer"
    LONG_TEXT = "essay"


class AttemptStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMER_EXPIRY = "timer-expiry"


class ShowResults(str, Enum):
    IMMEDIATELY = "immediately"
    AFTER_SUBMISSION = "after-submission"
    AFTER_DUE_DATE = "after-due-date"
    NEVER = "never"


class _WireModel(BaseModel):
    """Immutable model read from the backend's camelCase / `_id` payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Option(_WireModel):
    text: str
    id: Optional[str] = Field(default=None, alias="_id")
    # Never exposed to the learner; the backend strips it before an attempt.
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect", exclude=True)


class Question(_WireModel):
    id: str = Field(alias="_id")
    prompt: str = Field(alias="question")
    type: QuestionType
    options: tuple[Option, ...] = ()
    points: float = 1
    explanation: Optional[str] = None

    @property
    def is_choice(self) -> bool:
        return self.type is QuestionType.SINGLE_CHOICE


class AssessmentSettings(_WireModel):
    time_limit_minutes: Optional[float] = Field(default=None, alias="timeLimit")
    max_attempts: int = Field(default=1, ge=1, alias="attempts")
    passing_score_percent: float = Field(default=70, ge=0, le=100, alias="passingScore")
    shuffle_questions: bool = Field(default=False, alias="shuffleQuestions")
    shuffle_options: bool = Field(default=False, alias="shuffleOptions")
    show_results: ShowResults = Field(default=ShowResults.IMMEDIATELY, alias="showResults")
    show_correct_answers: bool = Field(default=True, alias="showCorrectAnswers")

    @property
    def time_limit_seconds(self) -> Optional[int]:
        if not self.time_limit_minutes:
            return None
        return int(self.time_limit_minutes * 60)


class Assessment(_WireModel):
    id: str = Field(alias="_id")
    title: str = ""
    description: Optional[str] = None
    course: Optional[Any] = None
    questions: tuple[Question, ...] = ()
    settings: AssessmentSettings = Field(default_factory=AssessmentSettings)
    total_points: Optional[float] = Field(default=None, alias="totalPoints")

    @property
    def course_id(self) -> Optional[str]:
        if isinstance(self.course, dict):
            return self.course.get("_id")
        return self.course

    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def presented(self, seed: str) -> Assessment:
        """
        Return the assessment in the order shown for one attempt.

        Shuffling is seeded so the same attempt always gets the same order.
        """
        if not (self.settings.shuffle_questions or self.settings.shuffle_options):
            return self

        rng = random.Random(seed)
        questions = list(self.questions)
        if self.settings.shuffle_questions:
            rng.shuffle(questions)
        if self.settings.shuffle_options:
            shuffled = []
            for q in questions:
                options = list(q.options)
                rng.shuffle(options)
                shuffled.append(q.model_copy(update={"options": tuple(options)}))
            questions = shuffled
        return self.model_copy(update={"questions": tuple(questions)})


class Answer(BaseModel):
    """The learner's latest local answer for one question."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    value: str | bool
    local_timestamp: datetime

    def wire_value(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return self.value


class QuestionResult(_WireModel):
    question_id: Optional[str] = Field(default=None, alias="questionId")
    prompt: Optional[str] = Field(default=None, alias="question")
    type: Optional[QuestionType] = None
    your_answer: Optional[Any] = Field(default=None, alias="yourAnswer")
    correct_answer: Optional[str] = Field(default=None, alias="correctAnswer")
    is_correct: bool = Field(default=False, alias="isCorrect")
    points_earned: float = Field(default=0, alias="pointsEarned")
    total_points: Optional[float] = Field(default=None, alias="totalPoints")
    explanation: Optional[str] = None
    time_spent: Optional[float] = Field(default=None, alias="timeSpent")


class Result(BaseModel):
    """Server-graded outcome of a submitted attempt."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    score: float = 0
    percentage: float = 0
    passed: bool = False
    elapsed_seconds: Optional[int] = None
    attempt_number: Optional[int] = None
    submitted_at: Optional[datetime] = None
    total_questions: Optional[int] = None
    answered_questions: Optional[int] = None
    correct_answers: Optional[int] = None
    total_points: Optional[float] = None
    feedback: Optional[str] = None
    details_available: bool = False
    breakdown: tuple[QuestionResult, ...] = ()


class Course(_WireModel):
    id: str = Field(alias="_id")
    title: str = ""
    description: Optional[str] = None


class AttemptSummary(_WireModel):
    id: str = Field(alias="_id")
    quiz: Optional[Any] = None
    attempt_number: Optional[int] = Field(default=None, alias="attemptNumber")
    status: Optional[str] = None
    score: float = 0
    percentage: float = 0
    passed: bool = Field(default=False, alias="isPassed")
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    submitted_at: Optional[datetime] = Field(default=None, alias="submittedAt")
    time_spent: Optional[int] = Field(default=None, alias="timeSpent")


class Pagination(_WireModel):
    current_page: int = Field(default=1, alias="currentPage")
    total_pages: int = Field(default=0, alias="totalPages")
    total_items: int = Field(default=0, alias="totalItems")
    has_next_page: bool = Field(default=False, alias="hasNextPage")
    has_prev_page: bool = Field(default=False, alias="hasPrevPage")


class AttemptPage(BaseModel):
    attempts: list[AttemptSummary]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Local UI service payloads
# ---------------------------------------------------------------------------


class OptionView(BaseModel):
    """Option as rendered for the learner (no correctness flag)."""

    text: str
    id: Optional[str] = None


class QuestionView(BaseModel):
    id: str
    prompt: str
    type: QuestionType
    options: list[OptionView]
    points: float


class NavigatorEntry(BaseModel):
    index: int
    question_id: str
    answered: bool
    flagged: bool


class SessionView(BaseModel):
    """Everything the UI needs to render the current session."""

    status: AttemptStatus
    attempt_id: Optional[str] = None
    assessment_id: Optional[str] = None
    title: Optional[str] = None
    current_index: int = 0
    question_count: int = 0
    current_question: Optional[QuestionView] = None
    current_answer: Optional[str | bool] = None
    navigator: list[NavigatorEntry] = []
    remaining_seconds: Optional[float] = None
    remaining_display: Optional[str] = None
    all_synced: bool = True
    last_error: Optional[str] = None
    result: Optional[Result] = None


class StartRequest(BaseModel):
    """Request body for POST /session/start."""

    assessment_id: str = Field(min_length=1)


class AnswerRequest(BaseModel):
    """Request body for POST /session/answer."""

    question_id: str = Field(min_length=1)
    value: str | bool


class GoToRequest(BaseModel):
    """Request body for POST /session/goto."""

    index: int


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    backend_url: str
    session_status: AttemptStatus
