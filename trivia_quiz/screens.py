"""
Screen projection and display text for the Trivia Quiz.
Pure functions of session data; no rendering side effects.
"""
from dataclasses import dataclass

from .models import AnswerResult, QuizPhase


@dataclass(frozen=True)
class ScreenVisibility:
    """Which screens the rendering layer should show."""
    start: bool = False
    loading: bool = False
    quiz: bool = False
    status_bar: bool = False
    results: bool = False
    error: bool = False


_SCREENS = {
    QuizPhase.IDLE: ScreenVisibility(start=True),
    QuizPhase.LOADING: ScreenVisibility(loading=True),
    QuizPhase.ACTIVE: ScreenVisibility(quiz=True, status_bar=True),
    QuizPhase.FINISHED: ScreenVisibility(results=True),
    QuizPhase.ERRORED: ScreenVisibility(error=True),
}


def render(phase: QuizPhase) -> ScreenVisibility:
    """Map a session phase to the visible screens."""
    return _SCREENS[phase]


def format_question_heading(question_number: int, question_total: int, prompt_text: str) -> str:
    return f"{question_number} of {question_total}. {prompt_text}"


def format_feedback(result: AnswerResult) -> str:
    if result.is_correct:
        return "Correct!"
    return f"Incorrect. The correct answer was: {result.correct_answer}"


def format_score(score: int) -> str:
    return f"Score: {score}"


def format_timer(time_remaining: int) -> str:
    return f"Time: {time_remaining}s"


def format_final_score(score: int, total: int) -> str:
    return f"{score} / {total}"


def format_error(message: str) -> str:
    """Prefix a failure description for display, once."""
    if message.startswith("Error:"):
        return message
    return f"Error: {message}"
