"""
Question source adapter for the Trivia Quiz.
Fetches raw multiple-choice records from Open Trivia DB and normalizes them.
"""
import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import aiohttp
from bs4 import BeautifulSoup

from .models import Question, QuestionSet

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://opentdb.com/api.php"
DEFAULT_QUESTION_AMOUNT = 10
DEFAULT_QUESTION_TYPE = "multiple"

# Open Trivia DB response codes
RESPONSE_CODE_MESSAGES = {
    1: "No Results",
    2: "Invalid Parameter",
    3: "Token Not Found",
    4: "Token Empty",
    5: "Rate Limit",
}


class SourceError(Exception):
    """Raised when a question set cannot be retrieved or is unusable."""
    pass


def decode_html(text: str) -> str:
    """
    Decode HTML entities (named and numeric) into plain text.

    Args:
        text: Possibly entity-encoded string from the provider

    Returns:
        Plain text content
    """
    return BeautifulSoup(text, "html.parser").get_text()


def shuffle_options(options: List[str], rng: Optional[random.Random] = None) -> List[str]:
    """
    Shuffle options with Fisher-Yates.

    Args:
        options: Options to shuffle
        rng: Random source, module-level random if None

    Returns:
        New list holding a permutation of the options
    """
    rng = rng or random
    shuffled = list(options)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def normalize_record(record: Dict[str, Any], rng: Optional[random.Random] = None) -> Question:
    """
    Convert one raw provider record into a Question.

    Args:
        record: Raw record with question, correct_answer and incorrect_answers
        rng: Random source used for the option shuffle

    Returns:
        Normalized Question

    Raises:
        SourceError: If the record is missing fields or has the wrong types
    """
    if not isinstance(record, dict):
        raise SourceError("Malformed question record: expected an object")

    prompt = record.get("question")
    correct = record.get("correct_answer")
    incorrect = record.get("incorrect_answers")

    if not isinstance(prompt, str) or not isinstance(correct, str):
        raise SourceError("Malformed question record: missing question or correct_answer")
    if not isinstance(incorrect, list) or not incorrect:
        raise SourceError("Malformed question record: missing incorrect_answers")
    if not all(isinstance(answer, str) for answer in incorrect):
        raise SourceError("Malformed question record: incorrect_answers must be strings")

    options = [decode_html(answer) for answer in [correct] + incorrect]

    return Question(
        prompt_text=decode_html(prompt),
        options=tuple(shuffle_options(options, rng)),
        correct_answer=decode_html(correct)
    )


def parse_payload(payload: Any, rng: Optional[random.Random] = None) -> QuestionSet:
    """
    Validate a provider payload and normalize every record in it.

    Args:
        payload: Decoded JSON body
        rng: Random source used for the option shuffles

    Returns:
        Ordered QuestionSet

    Raises:
        SourceError: On a provider error code, empty results, or malformed data
    """
    if not isinstance(payload, dict):
        raise SourceError("Malformed payload: expected a JSON object")

    response_code = payload.get("response_code")
    if response_code != 0:
        reason = RESPONSE_CODE_MESSAGES.get(response_code, "Unknown error")
        raise SourceError(f"API returned error code {response_code} ({reason})")

    results = payload.get("results")
    if not isinstance(results, list) or not results:
        raise SourceError("API returned no questions or an error code.")

    return tuple(normalize_record(record, rng) for record in results)


class QuestionSource:
    """Retrieves question sets from Open Trivia DB over HTTP."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        amount: int = DEFAULT_QUESTION_AMOUNT,
        question_type: str = DEFAULT_QUESTION_TYPE,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the question source.

        Args:
            api_url: Provider endpoint
            amount: Number of questions per fetch
            question_type: Provider question type filter
            session: Shared HTTP session, a fresh one per fetch if None
            rng: Random source for option shuffles
        """
        self.api_url = api_url
        self.amount = amount
        self.question_type = question_type
        self._session = session
        self._rng = rng

    @property
    def params(self) -> Dict[str, Any]:
        """Query parameters sent with every request."""
        return {"amount": self.amount, "type": self.question_type}

    async def fetch_question_set(self) -> QuestionSet:
        """
        Fetch and normalize a batch of questions.

        Returns:
            Ordered QuestionSet

        Raises:
            SourceError: If the request fails or the payload is unusable
        """
        logger.info(
            f"Fetching {self.amount} questions from {self.api_url}",
            extra={'event_type': 'question_fetch_start', 'amount': self.amount}
        )

        try:
            if self._session is not None:
                payload = await self._get_json(self._session)
            else:
                async with aiohttp.ClientSession() as session:
                    payload = await self._get_json(session)
        except aiohttp.ClientError as e:
            logger.error(f"Question fetch failed: {e}")
            raise SourceError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error("Question fetch timed out")
            raise SourceError("Network error: request timed out") from e

        questions = parse_payload(payload, self._rng)
        logger.info(
            f"Fetched {len(questions)} questions",
            extra={'event_type': 'question_fetch_complete', 'count': len(questions)}
        )
        return questions

    async def _get_json(self, session: aiohttp.ClientSession) -> Any:
        async with session.get(self.api_url, params=self.params) as response:
            if not 200 <= response.status < 300:
                logger.error(f"Question fetch returned HTTP {response.status}")
                raise SourceError(f"HTTP error! status: {response.status}")
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise SourceError("Malformed payload: response body is not JSON") from e
