"""
Quiz engine core logic for the Trivia Quiz Bot.
Handles answer ordering, scoring and the countdown timer.
"""
import random
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .models import NOT_ANSWERED, Question, QuizResult, ReviewEntry

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, duration: int) -> None:
        """Log timer countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if total_duration > 0 and (remaining_time % 10 == 0 or remaining_time <= 5):
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str) -> None:
        """Log how a countdown finished."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}",
            extra={
                'event_type': 'timer_completion',
                'session_id': session_id,
                'completion_type': completion_type,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}"
            + (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Type {error_type}, Operation {operation}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """
    Periodic tick source for a quiz session.

    The timer does not count by itself: every interval it awaits the tick
    callback, and stops once the callback returns False or the timer is
    cancelled.
    """

    def __init__(self, session_id: str = None, interval: float = 1.0):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._is_paused = False
        self._is_cancelled = False
        self._session_id = session_id
        self._interval = interval

    def start(self, tick_callback: Callable[[], Awaitable[bool]], duration: int = 0) -> asyncio.Task:
        """
        Start ticking as a background task.

        Args:
            tick_callback: Awaited once per interval; return False to stop
            duration: Countdown length, used for logging only

        Returns:
            The running asyncio task
        """
        if self._task and not self._task.done():
            raise RuntimeError(f"Timer already running for session {self._session_id}")

        self._is_cancelled = False
        self._is_paused = False
        TimerLifecycleLogger.log_timer_start(self._session_id, duration)
        self._task = asyncio.create_task(self._run(tick_callback))
        return self._task

    async def _run(self, tick_callback: Callable[[], Awaitable[bool]]) -> None:
        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    break
                if self._is_paused:
                    continue
                if not await tick_callback():
                    break

            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "cancelled" if self._is_cancelled else "finished"
            )
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, "asyncio_cancelled")
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "tick_execution_error",
                str(e),
                "run"
            )
            raise

    def pause(self) -> None:
        """Pause the countdown timer."""
        if not self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "running", "paused", "pause requested"
            )
        self._is_paused = True

    def resume(self) -> None:
        """Resume the countdown timer."""
        if self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "paused", "running", "resume requested"
            )
        self._is_paused = False

    def cancel(self) -> None:
        """Stop the timer; safe to call from inside the tick callback."""
        if self._is_cancelled:
            return
        self._is_cancelled = True

        task = self._task
        if task is None or task.done():
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "stopped", "cancelled", "no active task"
            )
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # Cancelling from inside our own tick lets the loop exit on its own
        if task is not current:
            task.cancel()
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "running", "cancelled", "cancel requested"
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def is_paused(self) -> bool:
        """Check if timer is paused."""
        return self._is_paused

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled


class QuizEngine:
    """Answer ordering and scoring for a batch of questions."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Random source for shuffling; a fresh one by default
        """
        self._rng = rng or random.Random()

    def shuffle_answers(self, question: Question) -> List[str]:
        """
        Shuffle a question's answer choices.

        Args:
            question: Question whose choices to shuffle

        Returns:
            New list holding every incorrect answer and the correct one
        """
        choices = question.choices
        self._rng.shuffle(choices)
        return choices

    def build_answer_orders(self, questions: Sequence[Question]) -> List[List[str]]:
        """Shuffle every question's choices once, index-aligned with the batch."""
        return [self.shuffle_answers(question) for question in questions]

    def score(
        self,
        questions: Sequence[Question],
        selections: Dict[int, str],
        timed_out: bool = False
    ) -> QuizResult:
        """
        Score a set of answers against the batch.

        Args:
            questions: Questions in presentation order
            selections: Question index -> chosen answer, missing when unanswered
            timed_out: Whether the countdown ended the quiz

        Returns:
            QuizResult with score, total and a review entry per question

        Note:
            Comparison is exact and case-sensitive; unanswered questions are
            recorded as "Not answered" and never count as correct.
        """
        review = []
        score = 0
        for index, question in enumerate(questions):
            user_answer = selections.get(index)
            if user_answer is None:
                user_answer = NOT_ANSWERED
            elif user_answer == question.correct_answer:
                score += 1

            review.append(ReviewEntry(
                question=question.text,
                user_answer=user_answer,
                correct_answer=question.correct_answer
            ))

        return QuizResult(
            score=score,
            total=len(questions),
            timed_out=timed_out,
            review=tuple(review)
        )
