"""
Async HTTP client for the Open Trivia DB API.
Fetches the category list and question batches and decodes the JSON replies.
"""
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from .models import Category, Question


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://opentdb.com"
DEFAULT_TIMEOUT = 10.0

CATEGORY_ENDPOINT = "/api_category.php"
QUESTION_ENDPOINT = "/api.php"


class ErrorKind(Enum):
    """Broad cause of a failed API call."""
    NETWORK = "network"
    DECODE = "decode"
    API = "api"


class ResponseCode(Enum):
    """The API's own status indicator, separate from the HTTP status."""
    SUCCESS = 0
    NO_RESULTS = 1
    INVALID_PARAMETER = 2
    TOKEN_NOT_FOUND = 3
    TOKEN_EMPTY = 4
    UNKNOWN = -1

    @classmethod
    def from_value(cls, value: int) -> "ResponseCode":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


RESPONSE_CODE_MESSAGES: Dict[ResponseCode, str] = {
    ResponseCode.NO_RESULTS: "Not enough questions are available for the selected options. "
                             "Try fewer questions or a different category.",
    ResponseCode.INVALID_PARAMETER: "The trivia service rejected one of the quiz settings as invalid.",
    ResponseCode.TOKEN_NOT_FOUND: "The trivia session token was not found.",
    ResponseCode.TOKEN_EMPTY: "The trivia session token has run out of new questions.",
    ResponseCode.UNKNOWN: "The trivia service returned an unknown response code.",
}


class TriviaApiError(Exception):
    """Base exception for trivia API failures."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class NetworkError(TriviaApiError):
    """Raised when the request could not be completed."""

    def __init__(self, message: str):
        super().__init__(ErrorKind.NETWORK, message)


class DecodeError(TriviaApiError):
    """Raised when the reply is not the JSON shape we expect."""

    def __init__(self, message: str):
        super().__init__(ErrorKind.DECODE, message)


class ApiLogicalError(TriviaApiError):
    """Raised when a well-formed reply carries a nonzero response code."""

    def __init__(self, response_code: int):
        self.response_code = ResponseCode.from_value(response_code)
        self.raw_code = response_code
        super().__init__(ErrorKind.API, RESPONSE_CODE_MESSAGES[self.response_code])


class TriviaApiClient:
    """Read-only client for the category list and question endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the API client.

        Args:
            base_url: Root URL of the trivia service
            timeout: Request timeout in seconds
            client: Optional pre-built httpx client; the caller keeps ownership
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "TriviaApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch_categories(self) -> List[Category]:
        """
        Fetch the list of available categories.

        Returns:
            Categories in the order the API lists them

        Raises:
            NetworkError: If the request fails
            DecodeError: If the reply has an unexpected shape
        """
        payload = await self._get_json(CATEGORY_ENDPOINT)

        raw_categories = payload.get("trivia_categories")
        if not isinstance(raw_categories, list):
            raise DecodeError("Failed to decode categories: missing 'trivia_categories' list")

        try:
            categories = [Category(id=int(item["id"]), name=str(item["name"])) for item in raw_categories]
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Failed to decode categories: {e}") from e

        logger.info(f"Fetched {len(categories)} categories")
        return categories

    async def fetch_questions(
        self,
        amount: int,
        category_id: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None
    ) -> List[Question]:
        """
        Fetch a batch of questions.

        Args:
            amount: Number of questions to request, passed through unchanged
            category_id: Numeric category filter, omitted when None
            difficulty: "easy", "medium" or "hard", omitted when None
            question_type: "multiple" or "boolean", omitted when None

        Returns:
            Questions as received, still entity-encoded

        Raises:
            NetworkError: If the request fails
            DecodeError: If the reply has an unexpected shape
            ApiLogicalError: If the reply carries a nonzero response code
        """
        params = build_question_params(amount, category_id, difficulty, question_type)
        payload = await self._get_json(QUESTION_ENDPOINT, params=params)

        response_code = payload.get("response_code")
        if not isinstance(response_code, int) or isinstance(response_code, bool):
            raise DecodeError("Failed to decode questions: missing 'response_code'")

        if response_code != ResponseCode.SUCCESS.value:
            error = ApiLogicalError(response_code)
            logger.warning(f"Question request {params} returned response code {response_code}")
            raise error

        results = payload.get("results")
        if not isinstance(results, list):
            raise DecodeError("Failed to decode questions: missing 'results' list")

        questions = [self._parse_question(item) for item in results]
        logger.info(f"Fetched {len(questions)} questions with params {params}")
        return questions

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Issue a GET request and return the decoded JSON object."""
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Trivia API returned HTTP {e.response.status_code} for {path}")
            raise NetworkError(f"Trivia service returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Request to {path} failed: {e}")
            raise NetworkError(f"Failed to reach the trivia service: {e}") from e

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Invalid JSON from {path}: {e}")
            raise DecodeError(f"Invalid JSON from trivia service: {e}") from e

        if not isinstance(payload, dict):
            raise DecodeError("Unexpected reply from trivia service: expected a JSON object")
        return payload

    @staticmethod
    def _parse_question(item: Any) -> Question:
        """Convert one raw result into a Question."""
        try:
            incorrect = item["incorrect_answers"]
            if not isinstance(incorrect, list):
                raise TypeError("'incorrect_answers' is not a list")
            return Question(
                category=str(item["category"]),
                type=str(item["type"]),
                difficulty=str(item["difficulty"]),
                text=str(item["question"]),
                correct_answer=str(item["correct_answer"]),
                incorrect_answers=tuple(str(answer) for answer in incorrect),
            )
        except (KeyError, TypeError) as e:
            raise DecodeError(f"Failed to decode question: {e}") from e


def build_question_params(
    amount: int,
    category_id: Optional[int] = None,
    difficulty: Optional[str] = None,
    question_type: Optional[str] = None
) -> Dict[str, Any]:
    """Query parameters for the question endpoint; filters only when set."""
    params: Dict[str, Any] = {"amount": amount}
    if category_id is not None:
        params["category"] = category_id
    if difficulty:
        params["difficulty"] = difficulty
    if question_type:
        params["type"] = question_type
    return params
