"""
Configuration manager for Trivia Quiz Bot settings and quiz parameters.
Turns raw form input into a QuizConfiguration and holds the defaults.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Union

from .models import (
    ANY_CATEGORY_NAME,
    CATEGORY_IDS,
    DEFAULT_QUESTION_COUNT,
    DEFAULT_TIMER_DURATION,
    MAX_QUESTION_COUNT,
    MIN_QUESTION_COUNT,
    TIMER_DURATIONS,
    Difficulty,
    QuestionType,
    QuizConfiguration,
)
from .trivia_api import DEFAULT_BASE_URL, DEFAULT_TIMEOUT


def normalize_question_count(raw: Union[str, int, None]) -> int:
    """
    Normalize a typed question count.

    Non-digit characters are dropped; an empty or zero value becomes the
    default of 10, anything else is clamped to [1, 50].

    Args:
        raw: Text as typed, or an int

    Returns:
        A question count within bounds
    """
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        digits = "".join(ch for ch in str(raw or "") if ch in "0123456789")
        value = int(digits) if digits else 0

    if value <= 0:
        return DEFAULT_QUESTION_COUNT
    return max(MIN_QUESTION_COUNT, min(MAX_QUESTION_COUNT, value))


def parse_difficulty(value: Union[str, Difficulty]) -> Difficulty:
    """
    Parse a difficulty label ("Medium") or API value ("medium").

    Raises:
        ValueError: If the value names no difficulty
    """
    if isinstance(value, Difficulty):
        return value
    wanted = value.strip().lower()
    for difficulty in Difficulty:
        if wanted in (difficulty.label.lower(), difficulty.api_value or "any"):
            return difficulty
    raise ValueError(f"Unknown difficulty: {value}")


def parse_question_type(value: Union[str, QuestionType]) -> QuestionType:
    """
    Parse a question type label ("True or False") or API value ("boolean").

    Raises:
        ValueError: If the value names no question type
    """
    if isinstance(value, QuestionType):
        return value
    wanted = value.strip().lower()
    for question_type in QuestionType:
        if wanted in (question_type.label.lower(), question_type.api_value or "any"):
            return question_type
    raise ValueError(f"Unknown question type: {value}")


def parse_timer_duration(value: Union[str, int]) -> int:
    """
    Parse a timer option, either its label ("1 hour") or its seconds.

    Raises:
        ValueError: If the value is not one of the offered durations
    """
    if isinstance(value, int) and not isinstance(value, bool):
        seconds = value
    else:
        text = str(value).strip().lower()
        labels = {label.lower(): secs for label, secs in TIMER_DURATIONS.items()}
        if text in labels:
            return labels[text]
        try:
            seconds = int(text)
        except ValueError:
            raise ValueError(f"Unknown timer duration: {value}") from None

    if seconds not in TIMER_DURATIONS.values():
        raise ValueError(f"Timer duration must be one of {sorted(TIMER_DURATIONS.values())} seconds")
    return seconds


def timer_label(seconds: int) -> str:
    """Display label for a timer duration in seconds."""
    for label, value in TIMER_DURATIONS.items():
        if value == seconds:
            return label
    return f"{seconds} seconds"


class ConfigManager:
    """Manages bot configuration settings and quiz defaults."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = DEFAULT_QUESTION_COUNT
    DEFAULT_CATEGORY = ANY_CATEGORY_NAME
    DEFAULT_DIFFICULTY = Difficulty.MEDIUM
    DEFAULT_QUESTION_TYPE = QuestionType.ANY
    DEFAULT_TIMER_DURATION = DEFAULT_TIMER_DURATION

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._defaults = QuizConfiguration()
        self.api_base_url = DEFAULT_BASE_URL
        self.request_timeout = DEFAULT_TIMEOUT

    def apply_config(self, config: Dict[str, Any]) -> None:
        """
        Apply the "quiz" and "api" sections of a loaded config.json.

        Invalid values are logged and the defaults kept.
        """
        quiz_config = config.get('quiz', {})
        setters = {
            'default_question_count': self.set_question_count,
            'default_difficulty': self.set_difficulty,
            'default_type': self.set_question_type,
            'default_timer_duration': self.set_timer_duration,
        }
        for key, setter in setters.items():
            if quiz_config.get(key) is not None:
                result = setter(quiz_config[key])
                if not result['success']:
                    self.logger.warning(f"Ignoring config value quiz.{key}: {result['error']}")

        api_config = config.get('api', {})
        if api_config.get('base_url'):
            self.api_base_url = str(api_config['base_url'])
        if api_config.get('request_timeout') is not None:
            try:
                self.request_timeout = float(api_config['request_timeout'])
            except (TypeError, ValueError):
                self.logger.warning(f"Ignoring invalid api.request_timeout: {api_config['request_timeout']}")

        self.logger.info("Configuration applied")

    def get_default_configuration(self) -> QuizConfiguration:
        """
        Get the default quiz configuration.

        Returns:
            QuizConfiguration built from the current defaults
        """
        return self._defaults

    def set_question_count(self, count: Union[str, int]) -> Dict[str, Any]:
        """
        Set the default number of questions.

        Args:
            count: Typed value, normalized the same way as form input

        Returns:
            Dictionary with success status and user-friendly message
        """
        value = normalize_question_count(count)
        self._defaults = self._replace(question_count=value)
        self.logger.info(f"Default question count set to {value}")
        return {
            'success': True,
            'message': f"Question count set to {value}",
            'user_message': f"✅ Question count set to {value}"
        }

    def set_difficulty(self, difficulty: Union[str, Difficulty]) -> Dict[str, Any]:
        """Set the default difficulty."""
        try:
            value = parse_difficulty(difficulty)
        except ValueError as e:
            self.logger.error(str(e))
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ Invalid difficulty: {difficulty}"
            }
        self._defaults = self._replace(difficulty=value)
        self.logger.info(f"Default difficulty set to {value.label}")
        return {
            'success': True,
            'message': f"Difficulty set to {value.label}",
            'user_message': f"✅ Difficulty set to {value.label}"
        }

    def set_question_type(self, question_type: Union[str, QuestionType]) -> Dict[str, Any]:
        """Set the default question type."""
        try:
            value = parse_question_type(question_type)
        except ValueError as e:
            self.logger.error(str(e))
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ Invalid question type: {question_type}"
            }
        self._defaults = self._replace(question_type=value)
        self.logger.info(f"Default question type set to {value.label}")
        return {
            'success': True,
            'message': f"Question type set to {value.label}",
            'user_message': f"✅ Question type set to {value.label}"
        }

    def set_timer_duration(self, duration: Union[str, int]) -> Dict[str, Any]:
        """
        Set the default timer duration.

        Args:
            duration: Seconds or a timer label such as "1 hour"

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        try:
            value = parse_timer_duration(duration)
        except ValueError as e:
            self.logger.error(str(e))
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ Invalid timer: choose one of {', '.join(TIMER_DURATIONS)}"
            }
        self._defaults = self._replace(timer_duration=value)
        self.logger.info(f"Default timer duration set to {value} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {value} seconds",
            'user_message': f"✅ Timer set to {timer_label(value)}"
        }

    def build_configuration(
        self,
        question_count: Union[str, int, None] = None,
        category: Optional[str] = None,
        difficulty: Union[str, Difficulty, None] = None,
        question_type: Union[str, QuestionType, None] = None,
        timer_duration: Union[str, int, None] = None
    ) -> Dict[str, Any]:
        """
        Build a quiz configuration from form input.

        Args:
            question_count: Typed count; normalized rather than rejected
            category: Category display name, "Any Category" for no filter
            difficulty: Difficulty label or API value
            question_type: Question type label or API value
            timer_duration: Timer label or seconds

        Returns:
            Dictionary with success status, the configuration or an error,
            and a user-friendly message. Omitted values use the defaults.
        """
        defaults = self._defaults
        try:
            configuration = QuizConfiguration(
                question_count=(
                    normalize_question_count(question_count)
                    if question_count is not None else defaults.question_count
                ),
                category=self._resolve_category(category) if category else defaults.category,
                difficulty=parse_difficulty(difficulty) if difficulty else defaults.difficulty,
                question_type=parse_question_type(question_type) if question_type else defaults.question_type,
                timer_duration=(
                    parse_timer_duration(timer_duration)
                    if timer_duration is not None else defaults.timer_duration
                )
            )
        except ValueError as e:
            self.logger.warning(f"Rejected quiz configuration: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ {e}"
            }

        return {
            'success': True,
            'configuration': configuration,
            'user_message': f"✅ {self.describe(configuration)}"
        }

    @staticmethod
    def _resolve_category(name: str) -> str:
        wanted = name.strip().lower()
        if wanted == ANY_CATEGORY_NAME.lower():
            return ANY_CATEGORY_NAME
        for known in CATEGORY_IDS:
            if known.lower() == wanted:
                return known
        raise ValueError(f"Unknown category: {name}")

    def _replace(self, **changes) -> QuizConfiguration:
        return replace(self._defaults, **changes)

    @staticmethod
    def describe(configuration: QuizConfiguration) -> str:
        """One-line description of a configuration."""
        return (
            f"{configuration.question_count} questions | {configuration.category} | "
            f"{configuration.difficulty.label} | {configuration.question_type.label} | "
            f"{timer_label(configuration.timer_duration)}"
        )

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current defaults
        """
        defaults = self._defaults
        return (
            f"Quiz Settings:\n"
            f"• Questions: {defaults.question_count}\n"
            f"• Category: {defaults.category}\n"
            f"• Difficulty: {defaults.difficulty.label}\n"
            f"• Type: {defaults.question_type.label}\n"
            f"• Timer: {timer_label(defaults.timer_duration)}\n"
            f"• Trivia API: {self.api_base_url}"
        )
