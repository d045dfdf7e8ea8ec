"""
Test fixtures and sample data for Trivia Quiz Bot tests.
"""
import asyncio
import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import discord
import httpx

from trivia_bot.models import Category, Difficulty, Question, QuestionType, QuizConfiguration
from trivia_bot.trivia_api import TriviaApiClient


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_sample_questions() -> List[Question]:
        """Create sample questions, already free of entities."""
        return [
            Question("Science: Computers", "multiple", "easy", "What does CPU stand for?",
                     "Central Processing Unit",
                     ("Central Process Unit", "Computer Personal Unit", "Central Processor Unit")),
            Question("Geography", "multiple", "medium", "What is the capital of Australia?",
                     "Canberra", ("Sydney", "Melbourne", "Perth")),
            Question("General Knowledge", "boolean", "easy", "The sky is blue.", "True", ("False",)),
            Question("History", "multiple", "hard", "In which year did WW2 end?",
                     "1945", ("1944", "1946", "1939")),
            Question("Animals", "boolean", "medium", "Bats are blind.", "False", ("True",)),
        ]

    @staticmethod
    def create_encoded_question() -> Question:
        """A question carrying HTML entities the way the API sends them."""
        return Question(
            category="Entertainment: Film",
            type="multiple",
            difficulty="medium",
            text="Who directed &quot;Am&eacute;lie&quot;?",
            correct_answer="Jean-Pierre Jeunet",
            incorrect_answers=("Luc Besson", "Fran&ccedil;ois Truffaut", "Jacques &amp; Co"),
        )

    @staticmethod
    def create_sample_configuration(**overrides) -> QuizConfiguration:
        values = {
            'question_count': 5,
            'category': "Any Category",
            'difficulty': Difficulty.MEDIUM,
            'question_type': QuestionType.ANY,
            'timer_duration': 30,
        }
        values.update(overrides)
        return QuizConfiguration(**values)

    @staticmethod
    def question_to_json(question: Question) -> Dict[str, Any]:
        return {
            "category": question.category,
            "type": question.type,
            "difficulty": question.difficulty,
            "question": question.text,
            "correct_answer": question.correct_answer,
            "incorrect_answers": list(question.incorrect_answers),
        }

    @staticmethod
    def create_questions_payload(questions: Optional[List[Question]] = None, response_code: int = 0) -> Dict:
        if questions is None:
            questions = TestFixtures.create_sample_questions()
        return {
            "response_code": response_code,
            "results": [TestFixtures.question_to_json(q) for q in questions],
        }

    @staticmethod
    def create_categories_payload() -> Dict:
        return {
            "trivia_categories": [
                {"id": 9, "name": "General Knowledge"},
                {"id": 10, "name": "Entertainment: Books"},
                {"id": 22, "name": "Geography"},
            ]
        }

    @staticmethod
    def create_sample_categories() -> List[Category]:
        return [Category(9, "General Knowledge"), Category(10, "Entertainment: Books"), Category(22, "Geography")]

    @staticmethod
    def create_sample_app_config() -> Dict[str, Any]:
        """Config dictionary shaped like config.json."""
        return {
            'bot': {'command_prefix': '!'},
            'quiz': {
                'default_question_count': 10,
                'default_difficulty': "Medium",
                'default_type': "Any Type",
                'default_timer_duration': 30,
            },
            'api': {'base_url': "https://opentdb.test", 'request_timeout': 5},
        }

    @staticmethod
    def create_mock_api_client(questions: Optional[List[Question]] = None) -> Mock:
        """API client double whose fetches resolve immediately."""
        client = Mock(spec=TriviaApiClient)
        client.fetch_questions = AsyncMock(
            return_value=questions if questions is not None else TestFixtures.create_sample_questions()
        )
        client.fetch_categories = AsyncMock(return_value=TestFixtures.create_sample_categories())
        return client


class MockTransportFactory:
    """Builds httpx mock transports that record requests."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def create_client(self) -> TriviaApiClient:
        http_client = httpx.AsyncClient(
            base_url="https://opentdb.test",
            transport=httpx.MockTransport(self)
        )
        return TriviaApiClient(base_url="https://opentdb.test", client=http_client)

    @classmethod
    def json_reply(cls, payload: Any, status_code: int = 200) -> "MockTransportFactory":
        return cls(lambda request: httpx.Response(status_code, content=json.dumps(payload).encode()))


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890) -> Mock:
        """Create mock Discord interaction."""
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.channel = MockDiscordObjects.create_mock_channel(channel_id)
        interaction.response = Mock()
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction

    @staticmethod
    def create_mock_channel(channel_id: int = 12345) -> Mock:
        """Create mock Discord channel."""
        channel = Mock(spec=discord.TextChannel)
        channel.id = channel_id
        channel.send = AsyncMock(return_value=MockDiscordObjects.create_mock_message())
        return channel

    @staticmethod
    def create_mock_message(message_id: int = 11111) -> Mock:
        """Create mock Discord message."""
        message = Mock(spec=discord.Message)
        message.id = message_id
        message.edit = AsyncMock()
        return message


class AsyncTestHelpers:
    """Helper functions for async testing."""

    @staticmethod
    async def run_with_timeout(coro, timeout: float = 5.0):
        """Run coroutine with timeout."""
        return await asyncio.wait_for(coro, timeout=timeout)

    @staticmethod
    async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.005):
        """Poll until predicate() is true or the timeout expires."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)
