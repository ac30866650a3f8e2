"""
Core data models for the Trivia Quiz.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class Question:
    """Represents a single normalized trivia question."""
    prompt_text: str
    options: Tuple[str, ...]
    correct_answer: str


# Ordered, immutable batch of questions for one attempt
QuestionSet = Tuple[Question, ...]


class QuizPhase(Enum):
    """Enumeration of possible quiz session phases."""
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    FINISHED = "finished"
    ERRORED = "errored"


@dataclass
class SessionState:
    """Mutable progress of one quiz attempt."""
    current_index: int = 0
    score: int = 0
    time_remaining: int = 0
    answered_current: bool = False


@dataclass
class QuizSettings:
    """Configuration settings for a quiz attempt."""
    total_time: int = 90
    question_amount: int = 10
    question_type: str = "multiple"
    api_url: str = "https://opentdb.com/api.php"
    low_time_threshold: int = 10
    tick_interval: float = 1.0


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of a scored selection."""
    selected_option: str
    correct_answer: str
    is_correct: bool
    score: int


class StateChangeKind(Enum):
    """Kinds of notifications published to rendering listeners."""
    LOADING = "loading"
    QUESTION_LOADED = "question_loaded"
    ANSWER_RESULT = "answer_result"
    SCORE_UPDATED = "score_updated"
    TIME_UPDATED = "time_updated"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class StateChange:
    """A single transition notification for the rendering layer."""
    kind: StateChangeKind
    phase: QuizPhase
    score: int = 0
    time_remaining: int = 0
    question_number: int = 0
    question_total: int = 0
    question: Optional[Question] = None
    answer: Optional[AnswerResult] = None
    low_time: bool = False
    message: Optional[str] = None
