"""
Unit tests for the question source adapter.
"""
import asyncio
import random
import unittest
from collections import Counter
from unittest.mock import patch

import aiohttp

from trivia_quiz.question_source import (
    QuestionSource, SourceError, decode_html, normalize_record, parse_payload, shuffle_options
)
from tests.test_fixtures import FakeResponse, FakeSession, TestFixtures, async_test


class TestDecodeHtml(unittest.TestCase):
    """Test cases for entity decoding."""

    def test_decodes_named_entities(self):
        self.assertEqual(decode_html("&quot;Hello&quot; &amp; goodbye"), '"Hello" & goodbye')

    def test_decodes_numeric_entities(self):
        self.assertEqual(decode_html("It&#039;s &#x263A;"), "It's ☺")

    def test_decodes_accented_letters(self):
        self.assertEqual(decode_html("Fran&ccedil;ois"), "François")

    def test_plain_text_unchanged(self):
        self.assertEqual(decode_html("What is 2 + 2?"), "What is 2 + 2?")

    def test_escaped_markup_becomes_literal_text(self):
        self.assertEqual(decode_html("&lt;b&gt;bold&lt;/b&gt;"), "<b>bold</b>")


class TestShuffleOptions(unittest.TestCase):
    """Test cases for the Fisher-Yates option shuffle."""

    def test_shuffle_is_permutation(self):
        options = ["a", "b", "c", "d", "b"]
        for seed in range(20):
            result = shuffle_options(options, random.Random(seed))
            self.assertEqual(Counter(result), Counter(options))

    def test_shuffle_does_not_mutate_input(self):
        options = ["a", "b", "c", "d"]
        shuffle_options(options, random.Random(1))
        self.assertEqual(options, ["a", "b", "c", "d"])

    def test_shuffle_swaps_from_last_index_down(self):
        """Each step swaps index i with a draw from [0, i]."""
        calls = []

        class RecordingRandom(random.Random):
            def randint(self, a, b):
                calls.append((a, b))
                return a

        result = shuffle_options(["a", "b", "c", "d"], RecordingRandom())

        self.assertEqual(calls, [(0, 3), (0, 2), (0, 1)])
        # Always swapping with index 0 rotates the list
        self.assertEqual(result, ["b", "c", "d", "a"])

    def test_shuffle_single_and_empty(self):
        self.assertEqual(shuffle_options([]), [])
        self.assertEqual(shuffle_options(["only"]), ["only"])

    def test_correct_answer_position_varies(self):
        positions = set()
        for seed in range(50):
            result = shuffle_options(["correct", "x", "y", "z"], random.Random(seed))
            positions.add(result.index("correct"))
        self.assertGreater(len(positions), 1)


class TestNormalizeRecord(unittest.TestCase):
    """Test cases for record normalization."""

    def test_options_contain_correct_answer_once(self):
        question = normalize_record(TestFixtures.create_raw_record(), random.Random(3))

        self.assertEqual(question.options.count(question.correct_answer), 1)
        self.assertEqual(len(question.options), 4)
        self.assertEqual(question.correct_answer, "Paris")

    def test_decoding_applied_uniformly(self):
        question = normalize_record(TestFixtures.create_encoded_record(), random.Random(0))

        self.assertEqual(
            question.prompt_text,
            "Which author wrote \"Don Quixote\" & 'Exemplary Novels'?"
        )
        self.assertIn("François Rabelais", question.options)
        self.assertIn("José Saramago", question.options)
        for text in (question.prompt_text, question.correct_answer) + question.options:
            self.assertNotIn("&", text.replace(" & ", ""))
            self.assertNotIn("&#", text)

    def test_encoded_correct_answer_matches_decoded_option(self):
        record = TestFixtures.create_raw_record(
            question="Who painted &quot;Guernica&quot;?",
            correct="Pablo Picasso &amp; nobody else",
            incorrect=["Salvador Dal&iacute;", "Joan Mir&oacute;", "Diego Vel&aacute;zquez"]
        )
        question = normalize_record(record, random.Random(7))

        self.assertEqual(question.correct_answer, "Pablo Picasso & nobody else")
        self.assertIn(question.correct_answer, question.options)

    def test_missing_fields_raise_source_error(self):
        broken_records = [
            {"correct_answer": "Paris", "incorrect_answers": ["London"]},
            {"question": "Q?", "incorrect_answers": ["London"]},
            {"question": "Q?", "correct_answer": "Paris"},
            {"question": "Q?", "correct_answer": "Paris", "incorrect_answers": []},
            {"question": "Q?", "correct_answer": "Paris", "incorrect_answers": [1, 2]},
            {"question": None, "correct_answer": "Paris", "incorrect_answers": ["London"]},
            "not a record",
        ]
        for record in broken_records:
            with self.subTest(record=record):
                with self.assertRaises(SourceError):
                    normalize_record(record)


class TestParsePayload(unittest.TestCase):
    """Test cases for payload validation."""

    def test_valid_payload_preserves_record_order(self):
        questions = parse_payload(TestFixtures.create_payload(), random.Random(0))

        self.assertIsInstance(questions, tuple)
        self.assertEqual(len(questions), 2)
        self.assertEqual(questions[0].correct_answer, "Paris")
        self.assertEqual(questions[1].correct_answer, "42")

    def test_error_response_code(self):
        with self.assertRaises(SourceError) as context:
            parse_payload(TestFixtures.create_payload(response_code=1))
        self.assertIn("1", str(context.exception))
        self.assertIn("No Results", str(context.exception))

    def test_rate_limit_response_code(self):
        with self.assertRaises(SourceError) as context:
            parse_payload({"response_code": 5, "results": []})
        self.assertIn("Rate Limit", str(context.exception))

    def test_empty_results(self):
        with self.assertRaises(SourceError):
            parse_payload(TestFixtures.create_payload(records=[]))

    def test_missing_results_and_code(self):
        with self.assertRaises(SourceError):
            parse_payload({"response_code": 0})
        with self.assertRaises(SourceError):
            parse_payload({"results": [TestFixtures.create_raw_record()]})

    def test_non_object_payload(self):
        with self.assertRaises(SourceError):
            parse_payload([TestFixtures.create_raw_record()])

    def test_one_malformed_record_fails_whole_set(self):
        payload = TestFixtures.create_payload(records=[TestFixtures.create_raw_record(), {"question": "Q?"}])
        with self.assertRaises(SourceError):
            parse_payload(payload)


class TestQuestionSource(unittest.TestCase):
    """Test cases for fetching over HTTP."""

    def test_params_default_to_ten_multiple_choice(self):
        source = QuestionSource()
        self.assertEqual(source.params, {"amount": 10, "type": "multiple"})
        self.assertEqual(source.api_url, "https://opentdb.com/api.php")

    @async_test
    async def test_fetch_success(self):
        session = FakeSession(FakeResponse(200, TestFixtures.create_payload()))
        source = QuestionSource(session=session, rng=random.Random(0))

        questions = await source.fetch_question_set()

        self.assertEqual(len(questions), 2)
        self.assertEqual(session.calls, [("https://opentdb.com/api.php", {"amount": 10, "type": "multiple"})])

    @async_test
    async def test_fetch_non_2xx_status(self):
        source = QuestionSource(session=FakeSession(FakeResponse(503, TestFixtures.create_payload())))

        with self.assertRaises(SourceError) as context:
            await source.fetch_question_set()
        self.assertIn("503", str(context.exception))

    @async_test
    async def test_fetch_provider_error_code(self):
        source = QuestionSource(session=FakeSession(FakeResponse(200, TestFixtures.create_payload(response_code=1))))

        with self.assertRaises(SourceError):
            await source.fetch_question_set()

    @async_test
    async def test_fetch_invalid_json(self):
        source = QuestionSource(session=FakeSession(FakeResponse(200, json_error=ValueError("bad json"))))

        with self.assertRaises(SourceError):
            await source.fetch_question_set()

    @async_test
    async def test_fetch_transport_error(self):
        source = QuestionSource(session=FakeSession(error=aiohttp.ClientConnectionError("connection refused")))

        with self.assertRaises(SourceError) as context:
            await source.fetch_question_set()
        self.assertIsInstance(context.exception.__cause__, aiohttp.ClientError)

    @async_test
    async def test_fetch_timeout(self):
        source = QuestionSource(session=FakeSession(error=asyncio.TimeoutError()))

        with self.assertRaises(SourceError):
            await source.fetch_question_set()

    @async_test
    async def test_fetch_without_session_opens_its_own(self):
        fake_session = FakeSession(FakeResponse(200, TestFixtures.create_payload()))

        class OwnedSession:
            async def __aenter__(self):
                return fake_session

            async def __aexit__(self, exc_type, exc, tb):
                return False

        with patch("trivia_quiz.question_source.aiohttp.ClientSession", return_value=OwnedSession()) as factory:
            questions = await QuestionSource(amount=2).fetch_question_set()

        factory.assert_called_once()
        self.assertEqual(len(questions), 2)
        self.assertEqual(fake_session.calls[0][1]["amount"], 2)

    @async_test
    async def test_each_fetch_is_independent(self):
        session = FakeSession(FakeResponse(200, TestFixtures.create_payload()))
        source = QuestionSource(session=session)

        first = await source.fetch_question_set()
        second = await source.fetch_question_set()

        self.assertIsNot(first, second)
        self.assertEqual(len(session.calls), 2)


if __name__ == '__main__':
    unittest.main()
