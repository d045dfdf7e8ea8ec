"""
Core data models for the Trivia Quiz Bot.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .text_utils import decode_entities


ANY_CATEGORY_NAME = "Any Category"
NOT_ANSWERED = "Not answered"

DEFAULT_QUESTION_COUNT = 10
MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 50

# Display label -> seconds
TIMER_DURATIONS: Dict[str, int] = {
    "30 seconds": 30,
    "60 seconds": 60,
    "120 seconds": 120,
    "300 seconds": 300,
    "1 hour": 3600,
}
DEFAULT_TIMER_DURATION = 30

# Open Trivia DB category ids
CATEGORY_IDS: Dict[str, int] = {
    "General Knowledge": 9,
    "Entertainment: Books": 10,
    "Entertainment: Film": 11,
    "Entertainment: Music": 12,
    "Entertainment: Musicals & Theatres": 13,
    "Entertainment: Television": 14,
    "Entertainment: Video Games": 15,
    "Entertainment: Board Games": 16,
    "Science & Nature": 17,
    "Science: Computers": 18,
    "Science: Mathematics": 19,
    "Mythology": 20,
    "Sports": 21,
    "Geography": 22,
    "History": 23,
    "Politics": 24,
    "Art": 25,
    "Celebrities": 26,
    "Animals": 27,
    "Vehicles": 28,
    "Entertainment: Comics": 29,
    "Science: Gadgets": 30,
    "Entertainment: Japanese Anime & Manga": 31,
    "Entertainment: Cartoon & Animations": 32,
}


class Difficulty(Enum):
    """Question difficulty filter."""
    ANY = "Any Difficulty"
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @property
    def label(self) -> str:
        return self.value

    @property
    def api_value(self) -> Optional[str]:
        """Query parameter value, or None when no filter applies."""
        if self is Difficulty.ANY:
            return None
        return self.value.lower()


class QuestionType(Enum):
    """Question type filter."""
    ANY = "Any Type"
    MULTIPLE = "Multiple Choice"
    BOOLEAN = "True or False"

    @property
    def label(self) -> str:
        return self.value

    @property
    def api_value(self) -> Optional[str]:
        """Query parameter value, or None when no filter applies."""
        return {
            QuestionType.MULTIPLE: "multiple",
            QuestionType.BOOLEAN: "boolean",
        }.get(self)


@dataclass(frozen=True)
class Category:
    """A trivia category as listed by the API."""
    id: int
    name: str


ANY_CATEGORY = Category(id=0, name=ANY_CATEGORY_NAME)


@dataclass(frozen=True)
class QuizConfiguration:
    """Settings for a single quiz round."""
    question_count: int = DEFAULT_QUESTION_COUNT
    category: str = ANY_CATEGORY_NAME
    difficulty: Difficulty = Difficulty.MEDIUM
    question_type: QuestionType = QuestionType.ANY
    timer_duration: int = DEFAULT_TIMER_DURATION

    @property
    def category_id(self) -> Optional[int]:
        """Numeric category filter, None for "Any Category" or unknown names."""
        if self.category == ANY_CATEGORY_NAME:
            return None
        return CATEGORY_IDS.get(self.category)


@dataclass(frozen=True)
class Question:
    """A single trivia question exactly as returned by the API."""
    category: str
    type: str
    difficulty: str
    text: str
    correct_answer: str
    incorrect_answers: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def choices(self) -> List[str]:
        """Incorrect answers followed by the correct one, unshuffled."""
        return list(self.incorrect_answers) + [self.correct_answer]

    def decoded(self) -> "Question":
        """Return a copy with every text field entity-decoded."""
        return replace(
            self,
            category=decode_entities(self.category),
            text=decode_entities(self.text),
            correct_answer=decode_entities(self.correct_answer),
            incorrect_answers=tuple(decode_entities(a) for a in self.incorrect_answers),
        )


@dataclass(frozen=True)
class ReviewEntry:
    """Per-question comparison shown on the summary."""
    question: str
    user_answer: str
    correct_answer: str

    @property
    def is_correct(self) -> bool:
        return self.user_answer == self.correct_answer

    @property
    def is_answered(self) -> bool:
        return self.user_answer != NOT_ANSWERED


@dataclass(frozen=True)
class QuizResult:
    """Final outcome of a quiz session."""
    score: int
    total: int
    timed_out: bool
    review: Tuple[ReviewEntry, ...] = ()

    @property
    def percentage(self) -> int:
        """Whole-number percentage; 0 when there were no questions."""
        if self.total == 0:
            return 0
        return self.score * 100 // self.total

    @property
    def answered_count(self) -> int:
        return sum(1 for entry in self.review if entry.is_answered)


@dataclass(frozen=True)
class TimerState:
    """Snapshot of a session countdown."""
    remaining_seconds: int
    running: bool
