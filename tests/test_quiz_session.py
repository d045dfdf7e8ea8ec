"""
Unit tests for the QuizSession state machine.
"""
import asyncio
import logging
import random
import unittest
from unittest.mock import AsyncMock

from trivia_bot.models import NOT_ANSWERED, Difficulty, QuestionType
from trivia_bot.quiz_engine import QuizEngine
from trivia_bot.quiz_session import (
    InvalidSessionStateError,
    QuizSession,
    SessionEvent,
    SessionState,
)
from trivia_bot.trivia_api import ApiLogicalError, ErrorKind, NetworkError
from tests.test_fixtures import AsyncTestHelpers, TestFixtures


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    """Base class building a session with a manual countdown."""

    def setUp(self):
        self.api_client = TestFixtures.create_mock_api_client()
        self.session = QuizSession(
            self.api_client,
            session_id="test",
            engine=QuizEngine(random.Random(7)),
            auto_start_timer=False
        )
        self.config = TestFixtures.create_sample_configuration()
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        self.session.close()
        logging.disable(logging.NOTSET)

    def answer_correctly(self, *indexes):
        for index in indexes:
            self.session.select_answer(index, self.session.questions[index].correct_answer)


class TestSessionLoading(SessionTestCase):
    """Test cases for IDLE -> LOADING -> IN_PROGRESS / ERROR."""

    async def test_start_success(self):
        self.assertIs(self.session.state, SessionState.IDLE)

        await self.session.start(self.config)

        self.assertIs(self.session.state, SessionState.IN_PROGRESS)
        self.assertEqual(self.session.total_questions, 5)
        self.assertEqual(self.session.remaining_seconds, 30)
        self.assertEqual(self.session.selections, {})
        self.assertIsNone(self.session.result)

    async def test_start_passes_configuration_to_client(self):
        config = TestFixtures.create_sample_configuration(
            question_count=12,
            category="Geography",
            difficulty=Difficulty.HARD,
            question_type=QuestionType.BOOLEAN
        )
        await self.session.start(config)

        self.api_client.fetch_questions.assert_awaited_once_with(
            amount=12, category_id=22, difficulty="hard", question_type="boolean"
        )

    async def test_any_filters_are_not_sent(self):
        config = TestFixtures.create_sample_configuration(difficulty=Difficulty.ANY)
        await self.session.start(config)

        self.api_client.fetch_questions.assert_awaited_once_with(
            amount=5, category_id=None, difficulty=None, question_type=None
        )

    async def test_state_changes_are_announced(self):
        states = []

        def record(session, event):
            if event is SessionEvent.STATE_CHANGED:
                states.append(session.state)

        self.session.add_listener(record)
        await self.session.start(self.config)
        self.assertEqual(states, [SessionState.LOADING, SessionState.IN_PROGRESS])

    async def test_start_twice_rejected(self):
        await self.session.start(self.config)
        with self.assertRaises(InvalidSessionStateError):
            await self.session.start(self.config)

    async def test_fetch_failure_enters_error_state(self):
        self.api_client.fetch_questions = AsyncMock(side_effect=ApiLogicalError(1))

        await self.session.start(self.config)

        self.assertIs(self.session.state, SessionState.ERROR)
        self.assertIs(self.session.error_kind, ErrorKind.API)
        self.assertIn("Not enough questions", self.session.error)
        self.assertIsNone(self.session.timer)

    async def test_retry_after_error(self):
        self.api_client.fetch_questions = AsyncMock(side_effect=[
            NetworkError("offline"),
            TestFixtures.create_sample_questions(),
        ])

        await self.session.start(self.config)
        self.assertIs(self.session.state, SessionState.ERROR)

        await self.session.retry()

        self.assertIs(self.session.state, SessionState.IN_PROGRESS)
        self.assertIsNone(self.session.error)
        self.assertEqual(self.api_client.fetch_questions.await_count, 2)
        first_call, second_call = self.api_client.fetch_questions.await_args_list
        self.assertEqual(first_call, second_call)

    async def test_retry_only_from_error(self):
        with self.assertRaises(InvalidSessionStateError):
            await self.session.retry()
        await self.session.start(self.config)
        with self.assertRaises(InvalidSessionStateError):
            await self.session.retry()

    async def test_questions_decoded_once_on_arrival(self):
        self.api_client.fetch_questions = AsyncMock(return_value=[TestFixtures.create_encoded_question()])

        await self.session.start(self.config)

        question = self.session.questions[0]
        self.assertEqual(question.text, 'Who directed "Amélie"?')
        self.assertIn("Jacques & Co", self.session.answer_order(0))

    async def test_decoded_answer_scores_correctly(self):
        question = TestFixtures.create_encoded_question()
        encoded = question.__class__(
            question.category, question.type, question.difficulty, question.text,
            "Jacques &amp; Co", ("Luc Besson",)
        )
        self.api_client.fetch_questions = AsyncMock(return_value=[encoded])
        await self.session.start(self.config)

        self.session.select_answer(0, "Jacques & Co")
        result = self.session.submit()

        self.assertEqual(result.score, 1)
        self.assertEqual(result.review[0].correct_answer, "Jacques & Co")


class TestAnswerOrder(SessionTestCase):
    """Test cases for frozen answer order."""

    async def test_answer_order_is_permutation(self):
        await self.session.start(self.config)
        for index, question in enumerate(self.session.questions):
            order = self.session.answer_order(index)
            self.assertEqual(sorted(order), sorted(question.choices))
            self.assertEqual(len(order), len(question.incorrect_answers) + 1)

    async def test_answer_order_is_stable(self):
        await self.session.start(self.config)
        first = [self.session.answer_order(i) for i in range(5)]
        self.session.select_answer(0, self.session.questions[0].correct_answer)
        self.session.tick()
        second = [self.session.answer_order(i) for i in range(5)]
        self.assertEqual(first, second)

    async def test_answer_order_returns_copy(self):
        await self.session.start(self.config)
        order = self.session.answer_order(0)
        order.clear()
        self.assertEqual(len(self.session.answer_order(0)), 4)

    async def test_unknown_index(self):
        await self.session.start(self.config)
        self.assertEqual(self.session.answer_order(99), [])


class TestAnswering(SessionTestCase):
    """Test cases for select_answer."""

    async def test_select_and_overwrite(self):
        await self.session.start(self.config)

        self.session.select_answer(1, "Sydney")
        self.session.select_answer(1, "Canberra")

        self.assertEqual(self.session.selected_answer(1), "Canberra")
        self.assertEqual(self.session.answered_count, 1)

    async def test_invalid_choice_rejected(self):
        await self.session.start(self.config)
        with self.assertRaises(ValueError):
            self.session.select_answer(1, "Auckland")
        with self.assertRaises(ValueError):
            self.session.select_answer(10, "Canberra")

    async def test_answer_before_start_rejected(self):
        with self.assertRaises(InvalidSessionStateError):
            self.session.select_answer(0, "anything")

    async def test_answer_after_completion_rejected(self):
        await self.session.start(self.config)
        self.session.submit()
        with self.assertRaises(InvalidSessionStateError):
            self.session.select_answer(0, self.session.questions[0].correct_answer)


class TestCompletion(SessionTestCase):
    """Test cases for submit and timeout completion."""

    async def test_manual_submit(self):
        await self.session.start(self.config)
        self.answer_correctly(0, 1, 2)

        result = self.session.submit()

        self.assertEqual(result.score, 3)
        self.assertEqual(result.total, 5)
        self.assertFalse(result.timed_out)
        self.assertEqual(result.review[3].user_answer, NOT_ANSWERED)
        self.assertEqual(result.review[4].user_answer, NOT_ANSWERED)
        self.assertIs(self.session.state, SessionState.COMPLETED)

    async def test_timeout_after_all_ticks(self):
        await self.session.start(self.config)
        self.answer_correctly(0)

        for _ in range(29):
            self.session.tick()
        self.assertIs(self.session.state, SessionState.IN_PROGRESS)
        self.assertEqual(self.session.remaining_seconds, 1)

        state = self.session.tick()

        self.assertIs(self.session.state, SessionState.COMPLETED)
        self.assertFalse(state.running)
        self.assertEqual(state.remaining_seconds, 0)
        self.assertTrue(self.session.result.timed_out)
        self.assertEqual(self.session.result.score, 1)

    async def test_submit_and_timeout_score_identically(self):
        other = QuizSession(self.api_client, engine=QuizEngine(random.Random(7)), auto_start_timer=False)
        await self.session.start(self.config)
        await other.start(self.config)
        for session in (self.session, other):
            session.select_answer(0, session.questions[0].correct_answer)
            session.select_answer(3, "1944")

        submitted = self.session.submit()
        for _ in range(30):
            other.tick()
        timed_out = other.result

        self.assertEqual(submitted.score, timed_out.score)
        self.assertEqual(submitted.review, timed_out.review)
        self.assertFalse(submitted.timed_out)
        self.assertTrue(timed_out.timed_out)
        other.close()

    async def test_completion_is_idempotent(self):
        await self.session.start(self.config)
        first = self.session.submit()

        second = self.session.submit()
        state = self.session.tick()

        self.assertIs(first, second)
        self.assertFalse(state.running)
        self.assertFalse(self.session.result.timed_out)

    async def test_tick_after_timeout_keeps_result(self):
        await self.session.start(self.config)
        for _ in range(30):
            self.session.tick()
        result = self.session.result

        self.session.tick()
        self.assertIs(self.session.submit(), result)
        self.assertTrue(result.timed_out)

    async def test_completed_event_emitted_once(self):
        events = []
        self.session.add_listener(lambda session, event: events.append(event))
        await self.session.start(self.config)

        self.session.submit()
        self.session.submit()
        for _ in range(40):
            self.session.tick()

        self.assertEqual(events.count(SessionEvent.COMPLETED), 1)

    async def test_tick_outside_progress_is_noop(self):
        state = self.session.tick()
        self.assertEqual(state.remaining_seconds, 0)
        self.assertIs(self.session.state, SessionState.IDLE)

    async def test_submit_before_questions_rejected(self):
        with self.assertRaises(InvalidSessionStateError):
            self.session.submit()

    async def test_zero_questions(self):
        self.api_client.fetch_questions = AsyncMock(return_value=[])
        await self.session.start(self.config)

        result = self.session.submit()

        self.assertEqual(result.total, 0)
        self.assertEqual(result.score, 0)
        self.assertEqual(result.percentage, 0)

    async def test_listener_errors_do_not_break_completion(self):
        def broken(session, event):
            raise RuntimeError("listener bug")

        self.session.add_listener(broken)
        await self.session.start(self.config)
        result = self.session.submit()
        self.assertEqual(result.total, 5)


class TestConcurrency(unittest.IsolatedAsyncioTestCase):
    """Test cases for the running countdown and late completions."""

    def setUp(self):
        self.api_client = TestFixtures.create_mock_api_client()
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_countdown_task_times_out_session(self):
        session = QuizSession(self.api_client, timer_interval=0.005)
        await session.start(TestFixtures.create_sample_configuration())

        await AsyncTestHelpers.wait_for_condition(lambda: session.state is SessionState.COMPLETED)

        self.assertTrue(session.result.timed_out)
        self.assertEqual(session.remaining_seconds, 0)
        await AsyncTestHelpers.wait_for_condition(lambda: not session.timer.is_running)

    async def test_submit_stops_countdown(self):
        session = QuizSession(self.api_client, timer_interval=0.005)
        await session.start(TestFixtures.create_sample_configuration())
        await asyncio.sleep(0.02)

        session.submit()
        remaining = session.remaining_seconds
        await asyncio.sleep(0.05)

        self.assertFalse(session.result.timed_out)
        self.assertEqual(session.remaining_seconds, remaining)
        self.assertTrue(session.timer.is_cancelled)

    async def test_closed_session_ignores_late_fetch(self):
        release = asyncio.Event()

        async def slow_fetch(**kwargs):
            await release.wait()
            return TestFixtures.create_sample_questions()

        self.api_client.fetch_questions = AsyncMock(side_effect=slow_fetch)
        session = QuizSession(self.api_client, auto_start_timer=False)

        start = asyncio.ensure_future(session.start(TestFixtures.create_sample_configuration()))
        await AsyncTestHelpers.wait_for_condition(lambda: session.state is SessionState.LOADING)
        session.close()
        release.set()
        await start

        self.assertIs(session.state, SessionState.LOADING)
        self.assertEqual(session.questions, [])
        self.assertIsNone(session.timer)

    async def test_close_stops_countdown(self):
        session = QuizSession(self.api_client, timer_interval=0.005)
        await session.start(TestFixtures.create_sample_configuration())

        session.close()
        remaining = session.remaining_seconds
        await asyncio.sleep(0.05)

        self.assertEqual(session.remaining_seconds, remaining)
        self.assertTrue(session.is_closed)
        with self.assertRaises(InvalidSessionStateError):
            await session.start(TestFixtures.create_sample_configuration())


if __name__ == '__main__':
    unittest.main()
