"""
Quiz session state machine for the Trivia Quiz Bot.
Tracks one playthrough from question fetch through scored completion.
"""
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import Question, QuizConfiguration, QuizResult, TimerState
from .quiz_engine import QuizEngine, QuizTimer, TimerLifecycleLogger
from .trivia_api import ErrorKind, TriviaApiClient, TriviaApiError


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SessionEvent(Enum):
    """Notifications sent to session listeners."""
    STATE_CHANGED = "state_changed"
    TICK = "tick"
    COMPLETED = "completed"


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""
    pass


class InvalidSessionStateError(QuizSessionError):
    """Raised when session is in an invalid state for the requested operation."""
    pass


SessionListener = Callable[["QuizSession", SessionEvent], Any]


class QuizSession:
    """
    A single quiz playthrough.

    The session moves IDLE -> LOADING -> ERROR or IN_PROGRESS -> COMPLETED.
    COMPLETED is terminal: whichever of submit() or the final tick() gets
    there first decides the result, later calls return it unchanged.
    """

    def __init__(
        self,
        api_client: TriviaApiClient,
        session_id: Optional[str] = None,
        engine: Optional[QuizEngine] = None,
        timer_interval: float = 1.0,
        auto_start_timer: bool = True
    ):
        """
        Initialize the session.

        Args:
            api_client: Client used to fetch the question batch
            session_id: Identifier used in log messages
            engine: Engine for answer shuffling and scoring
            timer_interval: Seconds between ticks of the countdown task
            auto_start_timer: Start the countdown task once questions arrive;
                tests turn this off and call tick() directly
        """
        self.logger = logging.getLogger(__name__)
        self.api_client = api_client
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.engine = engine or QuizEngine()
        self._timer_interval = timer_interval
        self._auto_start_timer = auto_start_timer

        self.state = SessionState.IDLE
        self.configuration: Optional[QuizConfiguration] = None
        self.questions: List[Question] = []
        self.result: Optional[QuizResult] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[ErrorKind] = None
        self.remaining_seconds = 0

        self._answer_orders: List[List[str]] = []
        self._selections: Dict[int, str] = {}
        self._timer: Optional[QuizTimer] = None
        self._listeners: List[SessionListener] = []
        self._generation = 0
        self._closed = False

    # Listeners

    def add_listener(self, callback: SessionListener) -> None:
        """Register a callback for state changes, ticks and completion."""
        self._listeners.append(callback)

    def remove_listener(self, callback: SessionListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: SessionEvent) -> None:
        for callback in list(self._listeners):
            try:
                callback(self, event)
            except Exception as e:
                # Listener errors must not break the timer or scoring
                self.logger.error(f"Session {self.session_id} listener failed on {event.value}: {e}", exc_info=True)

    def _set_state(self, state: SessionState) -> None:
        previous = self.state
        self.state = state
        self.logger.debug(f"Session {self.session_id}: {previous.value} -> {state.value}")
        self._emit(SessionEvent.STATE_CHANGED)

    # Loading

    async def start(self, configuration: QuizConfiguration) -> None:
        """
        Fetch the question batch for a configuration.

        Args:
            configuration: Quiz settings, kept for retries

        Raises:
            InvalidSessionStateError: If the session has already been started
        """
        if self.state is not SessionState.IDLE or self._closed:
            raise InvalidSessionStateError(
                f"Cannot start session {self.session_id} in state {self.state.value}"
            )
        self.configuration = configuration
        await self._load()

    async def retry(self) -> None:
        """
        Re-run the failed fetch with the same configuration.

        Raises:
            InvalidSessionStateError: If the session is not in the error state
        """
        if self.state is not SessionState.ERROR or self._closed:
            raise InvalidSessionStateError(
                f"Cannot retry session {self.session_id} in state {self.state.value}"
            )
        self.logger.info(f"Retrying question fetch for session {self.session_id}")
        await self._load()

    async def _load(self) -> None:
        self._generation += 1
        generation = self._generation
        config = self.configuration

        self._selections = {}
        self.result = None
        self.error = None
        self.error_kind = None
        self._set_state(SessionState.LOADING)

        try:
            questions = await self.api_client.fetch_questions(
                amount=config.question_count,
                category_id=config.category_id,
                difficulty=config.difficulty.api_value,
                question_type=config.question_type.api_value
            )
        except TriviaApiError as e:
            if self._is_stale(generation):
                return
            self.logger.warning(f"Session {self.session_id} failed to load questions ({e.kind.value}): {e.message}")
            self.error = e.message
            self.error_kind = e.kind
            self._set_state(SessionState.ERROR)
            return

        if self._is_stale(generation):
            self.logger.debug(f"Discarding late question batch for session {self.session_id}")
            return

        # Decode once so display and scoring use the same strings
        self.questions = [question.decoded() for question in questions]
        self._answer_orders = self.engine.build_answer_orders(self.questions)
        self._selections = {}
        self.remaining_seconds = config.timer_duration
        self.logger.info(
            f"Session {self.session_id} started with {len(self.questions)} questions, "
            f"timer {config.timer_duration}s"
        )
        self._set_state(SessionState.IN_PROGRESS)

        if self._auto_start_timer:
            self._start_timer()

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    # Timer

    def _start_timer(self) -> None:
        self._timer = QuizTimer(self.session_id, self._timer_interval)
        self._timer.start(self._on_timer_tick, self.remaining_seconds)

    async def _on_timer_tick(self) -> bool:
        self.tick()
        return self.state is SessionState.IN_PROGRESS

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    @property
    def timer(self) -> Optional[QuizTimer]:
        return self._timer

    @property
    def timer_state(self) -> TimerState:
        return TimerState(
            remaining_seconds=self.remaining_seconds,
            running=self.state is SessionState.IN_PROGRESS
        )

    def tick(self) -> TimerState:
        """
        Advance the countdown by one second.

        Does nothing unless the session is in progress. Reaching zero
        completes the session as timed out.

        Returns:
            Timer state after the tick
        """
        if self.state is not SessionState.IN_PROGRESS:
            return self.timer_state

        self.remaining_seconds = max(self.remaining_seconds - 1, 0)
        TimerLifecycleLogger.log_timer_update(
            self.session_id, self.remaining_seconds, self.configuration.timer_duration
        )
        self._emit(SessionEvent.TICK)

        if self.remaining_seconds == 0:
            self.logger.info(f"Session {self.session_id} timed out")
            self._complete(timed_out=True)
        return self.timer_state

    # Answering

    def answer_order(self, question_index: int) -> List[str]:
        """
        Get the frozen display order of a question's choices.

        Args:
            question_index: 0-based question index

        Returns:
            Choices in the order fixed when the batch arrived, or an empty
            list for an unknown index
        """
        if 0 <= question_index < len(self._answer_orders):
            return list(self._answer_orders[question_index])
        return []

    def select_answer(self, question_index: int, answer: str) -> None:
        """
        Record or overwrite the answer for a question.

        Args:
            question_index: 0-based question index
            answer: One of the question's choices

        Raises:
            InvalidSessionStateError: If the session is not in progress
            ValueError: If the index or answer is not valid for this batch
        """
        if self.state is not SessionState.IN_PROGRESS:
            raise InvalidSessionStateError(
                f"Cannot answer in session {self.session_id} while {self.state.value}"
            )
        if not 0 <= question_index < len(self.questions):
            raise ValueError(f"Question index {question_index} out of range")
        if answer not in self._answer_orders[question_index]:
            raise ValueError(f"'{answer}' is not a choice for question {question_index + 1}")

        self._selections[question_index] = answer

    def selected_answer(self, question_index: int) -> Optional[str]:
        return self._selections.get(question_index)

    @property
    def selections(self) -> Dict[int, str]:
        return dict(self._selections)

    # Completion

    def submit(self) -> QuizResult:
        """
        Finish the quiz on user request.

        Returns:
            The quiz result; the existing one if the session already completed

        Raises:
            InvalidSessionStateError: If no questions are being answered
        """
        if self.state is SessionState.COMPLETED:
            return self.result
        if self.state is not SessionState.IN_PROGRESS:
            raise InvalidSessionStateError(
                f"Cannot submit session {self.session_id} while {self.state.value}"
            )
        return self._complete(timed_out=False)

    def _complete(self, timed_out: bool) -> QuizResult:
        self.result = self.engine.score(self.questions, self._selections, timed_out=timed_out)
        self._stop_timer()
        self.logger.info(
            f"Session {self.session_id} completed: {self.result.score}/{self.result.total}"
            f"{' (timed out)' if timed_out else ''}"
        )
        self._set_state(SessionState.COMPLETED)
        self._emit(SessionEvent.COMPLETED)
        return self.result

    def close(self) -> None:
        """Discard the session; stops the timer and ignores late fetch results."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._stop_timer()
        self._listeners.clear()
        self.logger.debug(f"Session {self.session_id} closed in state {self.state.value}")

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def answered_count(self) -> int:
        return len(self._selections)

    @property
    def total_questions(self) -> int:
        return len(self.questions)
