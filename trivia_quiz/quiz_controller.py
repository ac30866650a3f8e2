"""
Quiz session controller for the Trivia Quiz.
Connects the question source, the session state machine and the countdown,
and publishes every transition to rendering listeners.
"""
import inspect
import logging
from typing import Any, Callable, List, Optional

from .models import AnswerResult, QuizPhase, QuizSettings, StateChange, StateChangeKind
from .question_source import QuestionSource, SourceError
from .quiz_engine import EmptySetError, QuizEngine, QuizTimer

StateChangeListener = Callable[[StateChange], Any]


class QuizController:
    """
    Orchestrates a single quiz attempt at a time.

    Every inbound event (fetch completion, timer tick, user selection) runs
    on the same event loop, so handlers never overlap and the session state
    needs no locking.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        settings: Optional[QuizSettings] = None,
        timer: Optional[QuizTimer] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            question_source: Adapter used to fetch each attempt's questions
            settings: Quiz settings, defaults if None
            timer: Countdown timer, one ticking every settings.tick_interval if None
        """
        self.logger = logging.getLogger(__name__)
        self.question_source = question_source
        self.settings = settings or QuizSettings()
        self.engine = QuizEngine(self.settings.total_time)
        self.timer = timer or QuizTimer(self.settings.tick_interval)
        self._listeners: List[StateChangeListener] = []
        self._attempt = 0

    @property
    def phase(self) -> QuizPhase:
        return self.engine.phase

    def add_listener(self, listener: StateChangeListener) -> None:
        """Register a callable (plain or coroutine) notified of every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def start(self) -> bool:
        """
        Fetch a new question set and begin an attempt.

        Returns:
            True if the attempt started, False if it ended in the error phase
        """
        # Phase is checked first so a rejected start leaves a live countdown running
        self.engine.begin_loading()
        self.timer.cancel()
        self._attempt += 1
        attempt = self._attempt
        await self._emit(StateChangeKind.LOADING)

        try:
            question_set = await self.question_source.fetch_question_set()
        except SourceError as e:
            self.logger.error(f"Failed to load questions: {e}")
            if not self._is_current_load(attempt):
                return False
            self.engine.fail(f"Error: {e}")
            await self._emit(StateChangeKind.ERROR, message=self.engine.error_message)
            return False

        if not self._is_current_load(attempt):
            self.logger.info("Discarding fetched questions: attempt was abandoned while loading")
            return False

        try:
            self.engine.start(question_set)
        except EmptySetError as e:
            self.logger.error(f"Failed to start quiz: {e}")
            self.engine.fail("Error: No questions available. Please try again.")
            await self._emit(StateChangeKind.ERROR, message=self.engine.error_message)
            return False

        await self._emit_question_loaded()
        await self._emit(StateChangeKind.TIME_UPDATED)
        self.timer.start(self._on_tick)
        return True

    async def retry(self) -> bool:
        """Start a fresh attempt after an error or a finished quiz."""
        self.logger.info("Retry requested")
        return await self.start()

    async def submit_answer(self, option: str) -> Optional[AnswerResult]:
        """
        Submit the user's selection for the current question.

        Returns:
            AnswerResult, or None if the selection was ignored
        """
        result = self.engine.submit_answer(option)
        if result is None:
            return None

        await self._emit(StateChangeKind.ANSWER_RESULT, answer=result)
        await self._emit(StateChangeKind.SCORE_UPDATED)
        return result

    async def advance(self) -> None:
        """Move to the next question or finish the attempt."""
        was_active = self.engine.is_active
        finished = self.engine.advance()
        if not was_active:
            return

        if finished:
            await self._finish()
        else:
            await self._emit_question_loaded()

    async def abandon(self) -> None:
        """Stop the countdown and discard the current attempt."""
        self.timer.cancel()
        self._attempt += 1
        self.engine.reset()
        self.logger.info("Quiz attempt abandoned")

    def _is_current_load(self, attempt: int) -> bool:
        return attempt == self._attempt and self.engine.phase is QuizPhase.LOADING

    async def _on_tick(self, elapsed: int = 1) -> None:
        expired = False
        for _ in range(elapsed):
            if self.engine.tick():
                expired = True
                break
        if not self.engine.is_active and not expired:
            return

        await self._emit(StateChangeKind.TIME_UPDATED)
        if expired:
            await self._finish()

    async def _finish(self) -> None:
        self.timer.cancel()
        score, total = self.engine.final_score()
        self.logger.info(f"Quiz finished with {score} / {total}")
        await self._emit(StateChangeKind.FINISHED)

    async def _emit_question_loaded(self) -> None:
        await self._emit(StateChangeKind.QUESTION_LOADED, question=self.engine.current_question())

    async def _emit(self, kind: StateChangeKind, **fields: Any) -> None:
        state = self.engine.state
        change = StateChange(
            kind=kind,
            phase=self.engine.phase,
            score=state.score,
            time_remaining=state.time_remaining,
            question_number=state.current_index + 1,
            question_total=len(self.engine.questions),
            low_time=state.time_remaining <= self.settings.low_time_threshold,
            **fields
        )

        for listener in list(self._listeners):
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception(f"State change listener failed on {kind.value}")
