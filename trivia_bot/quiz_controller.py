"""
Quiz session controller for the Trivia Quiz Bot.
Manages the live quiz session of each Discord channel.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .config_manager import ConfigManager
from .models import QuizConfiguration, QuizResult
from .quiz_session import (
    InvalidSessionStateError,
    QuizSession,
    SessionEvent,
    SessionState,
)
from .trivia_api import TriviaApiClient


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


CompletionCallback = Callable[[int, QuizSession, QuizResult], Awaitable[Any]]
TickCallback = Callable[[int, QuizSession], Awaitable[Any]]

# States in which a channel is considered busy
LIVE_STATES = (SessionState.LOADING, SessionState.IN_PROGRESS)


class QuizController:
    """
    Orchestrates quiz sessions per Discord channel.

    Each channel has at most one session. A session leaves the controller
    when it completes or is stopped; a failed session stays until it is
    retried, stopped or replaced by a new quiz.
    """

    def __init__(
        self,
        api_client: TriviaApiClient,
        config_manager: ConfigManager,
        completion_callback: Optional[CompletionCallback] = None,
        tick_callback: Optional[TickCallback] = None,
        timer_interval: float = 1.0
    ):
        """
        Initialize the quiz controller.

        Args:
            api_client: Client handed to every new session
            config_manager: Source of default quiz settings
            completion_callback: Awaited once when a session completes,
                whether submitted or timed out
            tick_callback: Awaited after every countdown tick
            timer_interval: Seconds between countdown ticks
        """
        self.logger = logging.getLogger(__name__)
        self.api_client = api_client
        self.config_manager = config_manager
        self.completion_callback = completion_callback
        self.tick_callback = tick_callback
        self.timer_interval = timer_interval

        # Sessions mapped by channel ID
        self._sessions: Dict[int, QuizSession] = {}
        self._pending_tasks: Set[asyncio.Task] = set()

        self.logger.info("QuizController initialized")

    def create_session(self, channel_id: int) -> QuizSession:
        """
        Create a session for a channel, replacing a failed one.

        Raises:
            SessionConflictError: If a quiz is loading or running in the channel
        """
        existing = self._sessions.get(channel_id)
        if existing is not None:
            if existing.state in LIVE_STATES:
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")
            self._discard(channel_id)

        session = QuizSession(
            self.api_client,
            session_id=str(channel_id),
            timer_interval=self.timer_interval
        )
        session.add_listener(self._make_listener(channel_id))
        self._sessions[channel_id] = session
        return session

    def get_session(self, channel_id: int) -> Optional[QuizSession]:
        return self._sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a quiz is loading or running in a channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if the channel has a live session
        """
        session = self._sessions.get(channel_id)
        return session is not None and session.state in LIVE_STATES

    def _require_session(self, channel_id: int) -> QuizSession:
        session = self._sessions.get(channel_id)
        if session is None:
            raise SessionNotFoundError(f"No quiz session in channel {channel_id}")
        return session

    # Lifecycle

    async def start_quiz(self, channel_id: int, configuration: QuizConfiguration) -> Dict[str, Any]:
        """
        Start a quiz with error handling.

        Args:
            channel_id: Discord channel identifier
            configuration: Settings for the new quiz

        Returns:
            Dictionary with operation results and error information
        """
        try:
            session = self.create_session(channel_id)
        except SessionConflictError as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

        self.logger.info(f"Starting quiz in channel {channel_id}: {ConfigManager.describe(configuration)}")
        await session.start(configuration)
        return self._load_outcome(channel_id, session)

    async def retry_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Retry the failed question fetch of a channel's session.

        Returns:
            Dictionary with operation results and error information
        """
        try:
            session = self._require_session(channel_id)
            await session.retry()
        except (SessionNotFoundError, InvalidSessionStateError) as e:
            return self._handle_session_error(channel_id, e, "retry_quiz")
        return self._load_outcome(channel_id, session)

    def _load_outcome(self, channel_id: int, session: QuizSession) -> Dict[str, Any]:
        if session.state is SessionState.ERROR:
            return {
                'success': False,
                'error': session.error,
                'error_kind': session.error_kind,
                'can_retry': True,
                'user_message': f"❌ {session.error}\n\nUse `/retry` to try again."
            }
        if session.is_closed:
            return {
                'success': False,
                'error': "Session was stopped while loading",
                'user_message': "❌ The quiz was stopped before the questions arrived."
            }
        return {
            'success': True,
            'message': f"Quiz started in channel {channel_id}",
            'session': session,
            'session_info': self.get_session_progress(channel_id)
        }

    def select_answer(self, channel_id: int, question_number: int, choice: str) -> Dict[str, Any]:
        """
        Record an answer given as a letter ("B") or the answer text.

        Args:
            channel_id: Discord channel identifier
            question_number: 1-based question number
            choice: Option letter or answer text

        Returns:
            Dictionary with success status and user-friendly message
        """
        try:
            session = self._require_session(channel_id)
            index = question_number - 1
            answer = self.resolve_choice(session, index, choice)
            session.select_answer(index, answer)
        except (QuizControllerError, InvalidSessionStateError, ValueError) as e:
            return self._handle_session_error(channel_id, e, "select_answer")

        return {
            'success': True,
            'answer': answer,
            'user_message': f"✅ Question {question_number}: {answer}"
        }

    @staticmethod
    def resolve_choice(session: QuizSession, index: int, choice: str) -> str:
        """
        Map a letter or typed answer to one of the question's choices.

        Raises:
            ValueError: If the choice matches no option
        """
        options = session.answer_order(index)
        if not options:
            raise ValueError(f"Question {index + 1} does not exist")

        text = choice.strip()
        if len(text) == 1 and text.isalpha():
            position = ord(text.upper()) - ord("A")
            if 0 <= position < len(options):
                return options[position]

        if text in options:
            return text
        for option in options:
            if option.lower() == text.lower():
                return option
        raise ValueError(f"'{choice}' is not a choice for question {index + 1}")

    def submit_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Submit the answers of a channel's quiz.

        Returns:
            Dictionary with the result or error information
        """
        try:
            session = self._require_session(channel_id)
            result = session.submit()
        except (SessionNotFoundError, InvalidSessionStateError) as e:
            return self._handle_session_error(channel_id, e, "submit_quiz")

        return {
            'success': True,
            'result': result,
            'user_message': f"✅ Submitted! You got {result.score} out of {result.total} correct."
        }

    def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop and discard a channel's quiz without scoring it.

        Returns:
            Dictionary with operation results
        """
        if channel_id not in self._sessions:
            return self._handle_session_error(
                channel_id,
                SessionNotFoundError(f"No quiz session in channel {channel_id}"),
                "stop_quiz"
            )

        self._discard(channel_id)
        self.logger.info(f"Stopped quiz in channel {channel_id}")
        return {
            'success': True,
            'message': f"Quiz stopped in channel {channel_id}",
            'user_message': "🛑 Quiz stopped."
        }

    def _discard(self, channel_id: int) -> None:
        session = self._sessions.pop(channel_id, None)
        if session is not None:
            session.close()

    async def shutdown(self) -> None:
        """Close every session and wait for pending callbacks."""
        for channel_id in list(self._sessions):
            self._discard(channel_id)
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)

    # Events

    def _make_listener(self, channel_id: int):
        def listener(session: QuizSession, event: SessionEvent) -> None:
            if event is SessionEvent.COMPLETED:
                # Completed sessions are terminal; the next quiz gets a new one
                if self._sessions.get(channel_id) is session:
                    del self._sessions[channel_id]
                if self.completion_callback is not None:
                    self._schedule(self.completion_callback(channel_id, session, session.result))
            elif event is SessionEvent.TICK and self.tick_callback is not None:
                self._schedule(self.tick_callback(channel_id, session))
        return listener

    def _schedule(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending_tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Session callback failed: {task.exception()}", exc_info=task.exception())

    # Status

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's session.

        Returns:
            Dictionary with state, answers and time remaining, or None
        """
        session = self._sessions.get(channel_id)
        if session is None:
            return None
        return {
            'state': session.state.value,
            'total_questions': session.total_questions,
            'answered': session.answered_count,
            'remaining_seconds': session.remaining_seconds,
            'configuration': session.configuration,
            'error': session.error,
        }

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log a failed operation and build the error result.

        Args:
            channel_id: Discord channel identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        self.logger.warning(f"Error in {operation} for channel {channel_id}: {error}")
        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Finish it with `/submit` or `/stop` first."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No quiz found in this channel. Start one with `/trivia`."

        elif isinstance(error, InvalidSessionStateError):
            if operation == "retry_quiz":
                return "❌ There is no failed quiz to retry in this channel."
            return "❌ The quiz is not accepting answers right now."

        elif isinstance(error, ValueError):
            return f"❌ {error}"

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
