"""
Quiz engine core logic for the Trivia Quiz.
Handles the session state machine, scoring, and the countdown timer.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

from .models import AnswerResult, Question, QuestionSet, QuizPhase, SessionState

# Set up logger for engine and timer operations
logger = logging.getLogger(__name__)

DEFAULT_TOTAL_TIME = 90


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""
    pass


class EmptySetError(QuizSessionError):
    """Raised when an attempt is started with no questions."""
    pass


class OutOfRangeError(QuizSessionError):
    """Raised when the current question is requested outside an active attempt."""
    pass


class InvalidTransitionError(QuizSessionError):
    """Raised when an operation is not valid in the current phase."""
    pass


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(timer_name: str, interval: float) -> None:
        """Log countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - {timer_name}, Interval {interval}s",
            extra={
                'event_type': 'timer_countdown_start',
                'timer_name': timer_name,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(timer_name: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if total_duration <= 0:
            return
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - {timer_name}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'timer_name': timer_name,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(timer_name: str, completion_type: str, ticks: int) -> None:
        """Log timer completion (stopped or cancelled)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - {timer_name}, Type {completion_type}, Ticks {ticks}",
            extra={
                'event_type': 'timer_completed',
                'timer_name': timer_name,
                'completion_type': completion_type,
                'ticks': ticks,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(timer_name: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - {timer_name}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'timer_name': timer_name,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_name: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - {timer_name}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_name': timer_name,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """
    Cancellable repeating countdown task.

    At most one countdown task runs per timer; starting again replaces the
    previous task.
    """

    def __init__(self, interval: float = 1.0, name: str = "quiz"):
        """Initialize the timer."""
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._ticks = 0

    def start(self, tick_callback: Callable[[int], Awaitable[Any]]) -> None:
        """
        Start the repeating countdown.

        Ticks are scheduled against the loop's monotonic clock. If a callback
        runs past one or more interval boundaries, the next call receives the
        number of intervals that elapsed so no time is lost.

        Args:
            tick_callback: Awaited with the number of intervals elapsed since the previous call
        """
        self.cancel()
        self._is_cancelled = False
        self._ticks = 0
        TimerLifecycleLogger.log_timer_start(self.name, self.interval)
        self._task = asyncio.create_task(self._run(tick_callback))

    async def _run(self, tick_callback: Callable[[int], Awaitable[Any]]) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        try:
            while not self._is_cancelled:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                if self._is_cancelled:
                    break
                elapsed = max(1, 1 + int((loop.time() - next_tick) // self.interval))
                next_tick += elapsed * self.interval
                self._ticks += elapsed
                await tick_callback(elapsed)
            TimerLifecycleLogger.log_timer_completion(self.name, "stopped", self._ticks)
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_completion(self.name, "asyncio_cancelled", self._ticks)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self.name,
                "tick_execution_error",
                str(e),
                "tick_callback"
            )
            raise

    def cancel(self) -> None:
        """Stop the countdown. Safe to call from within the tick callback."""
        self._is_cancelled = True
        task = self._task
        if task is None or task.done():
            return

        TimerLifecycleLogger.log_timer_state_transition(self.name, "running", "cancelled", "cancel requested")
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # The running task ends itself after its callback returns
        if task is not current:
            task.cancel()

    @property
    def is_running(self) -> bool:
        """Check if a countdown task is active."""
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def ticks(self) -> int:
        """Number of intervals delivered in the current countdown."""
        return self._ticks


class QuizEngine:
    """
    Quiz session state machine.

    Owns the QuestionSet and SessionState for one attempt at a time. All
    mutation goes through the transition methods; timer expiry wins over any
    answer or advance that arrives after it.
    """

    def __init__(self, total_time: int = DEFAULT_TOTAL_TIME):
        """
        Initialize the quiz engine.

        Args:
            total_time: Session-wide countdown in seconds
        """
        self.total_time = total_time
        self._phase = QuizPhase.IDLE
        self._questions: QuestionSet = ()
        self._state = SessionState(time_remaining=total_time)
        self._error_message: Optional[str] = None

    @property
    def phase(self) -> QuizPhase:
        return self._phase

    @property
    def state(self) -> SessionState:
        """Copy of the current session state."""
        return SessionState(
            current_index=self._state.current_index,
            score=self._state.score,
            time_remaining=self._state.time_remaining,
            answered_current=self._state.answered_current
        )

    @property
    def questions(self) -> QuestionSet:
        return self._questions

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def is_active(self) -> bool:
        return self._phase is QuizPhase.ACTIVE

    def _transition(self, to_phase: QuizPhase, reason: str) -> None:
        logger.info(
            f"Session transition: {self._phase.value} -> {to_phase.value} ({reason})",
            extra={
                'event_type': 'session_transition',
                'from_phase': self._phase.value,
                'to_phase': to_phase.value,
                'reason': reason
            }
        )
        self._phase = to_phase

    def begin_loading(self) -> None:
        """
        Enter the loading phase ahead of a fetch.

        Raises:
            InvalidTransitionError: If an attempt is loading or active
        """
        if self._phase not in (QuizPhase.IDLE, QuizPhase.ERRORED, QuizPhase.FINISHED):
            raise InvalidTransitionError(f"Cannot load questions while {self._phase.value}")
        self._error_message = None
        self._transition(QuizPhase.LOADING, "fetch requested")

    def start(self, question_set: QuestionSet) -> None:
        """
        Start a new attempt with a freshly fetched question set.

        Args:
            question_set: Ordered questions for this attempt

        Raises:
            EmptySetError: If question_set is empty
            InvalidTransitionError: If an attempt is already active
        """
        if self._phase is QuizPhase.ACTIVE:
            raise InvalidTransitionError("Cannot start while an attempt is active")
        if not question_set:
            raise EmptySetError("Cannot start a quiz with no questions")

        self._questions = tuple(question_set)
        self._state = SessionState(
            current_index=0,
            score=0,
            time_remaining=self.total_time,
            answered_current=False
        )
        self._error_message = None
        self._transition(QuizPhase.ACTIVE, f"started with {len(self._questions)} questions")

    def tick(self) -> bool:
        """
        Count down one second.

        Returns:
            True if this tick expired the session
        """
        if self._phase is not QuizPhase.ACTIVE:
            logger.debug(f"Ignoring tick while {self._phase.value}")
            return False

        self._state.time_remaining = max(0, self._state.time_remaining - 1)
        TimerLifecycleLogger.log_timer_update("session", self._state.time_remaining, self.total_time)

        if self._state.time_remaining == 0:
            self._transition(QuizPhase.FINISHED, "time expired")
            return True
        return False

    def submit_answer(self, selected_option: str) -> Optional[AnswerResult]:
        """
        Score a selection for the current question.

        Args:
            selected_option: Option text chosen by the user

        Returns:
            AnswerResult, or None if the selection was ignored
        """
        if self._phase is not QuizPhase.ACTIVE:
            logger.debug(f"Ignoring answer while {self._phase.value}")
            return None
        if self._state.answered_current:
            logger.debug("Ignoring answer: current question already answered")
            return None

        question = self._questions[self._state.current_index]
        is_correct = selected_option == question.correct_answer
        if is_correct:
            self._state.score += 1
        self._state.answered_current = True

        logger.info(
            f"Question {self._state.current_index + 1} answered, correct: {is_correct}",
            extra={
                'event_type': 'answer_submitted',
                'question_index': self._state.current_index,
                'is_correct': is_correct,
                'score': self._state.score
            }
        )
        return AnswerResult(
            selected_option=selected_option,
            correct_answer=question.correct_answer,
            is_correct=is_correct,
            score=self._state.score
        )

    def advance(self) -> bool:
        """
        Move past an answered question.

        Returns:
            True if the attempt finished

        Raises:
            InvalidTransitionError: If the current question has not been answered
        """
        if self._phase is not QuizPhase.ACTIVE:
            logger.debug(f"Ignoring advance while {self._phase.value}")
            return self._phase is QuizPhase.FINISHED
        if not self._state.answered_current:
            raise InvalidTransitionError("Cannot advance before answering the current question")

        self._state.current_index += 1
        if self._state.current_index >= len(self._questions):
            self._transition(QuizPhase.FINISHED, "all questions answered")
            return True

        self._state.answered_current = False
        return False

    def current_question(self) -> Question:
        """
        Get the active question.

        Raises:
            OutOfRangeError: If no attempt is active
        """
        if self._phase is not QuizPhase.ACTIVE or self._state.current_index >= len(self._questions):
            raise OutOfRangeError(f"No current question while {self._phase.value}")
        return self._questions[self._state.current_index]

    def final_score(self) -> Tuple[int, int]:
        """
        Get the final tally.

        Returns:
            (score, number of questions)

        Raises:
            InvalidTransitionError: If the attempt has not finished
        """
        if self._phase is not QuizPhase.FINISHED:
            raise InvalidTransitionError(f"No final score while {self._phase.value}")
        return self._state.score, len(self._questions)

    def fail(self, message: str) -> None:
        """
        Abort loading or the active attempt.

        Args:
            message: User-facing description of the failure
        """
        if self._phase not in (QuizPhase.LOADING, QuizPhase.ACTIVE):
            raise InvalidTransitionError(f"Cannot fail while {self._phase.value}")
        self._error_message = message
        self._transition(QuizPhase.ERRORED, message)

    def reset(self) -> None:
        """Discard the current attempt and return to idle."""
        self._questions = ()
        self._state = SessionState(time_remaining=self.total_time)
        self._error_message = None
        self._transition(QuizPhase.IDLE, "reset")
