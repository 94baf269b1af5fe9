import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, TypeVar

import requests

import config
from errors import RemoteServiceError
from quiz import build_quiz_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ModelCandidate:
    version: str
    model: str

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/{self.version}/models/{self.model}:generateContent"


# Tried in order until one answers
QUIZ_MODEL_CANDIDATES: List[ModelCandidate] = [
    ModelCandidate("v1beta", "gemini-2.0-flash"),
    ModelCandidate("v1beta", "gemini-1.5-flash"),
    ModelCandidate("v1", "gemini-1.5-flash"),
    ModelCandidate("v1", "gemini-1.5-pro"),
]

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}


def first_success(candidates: Sequence[T], attempt: Callable[[T], R]) -> R:
    """
    Runs attempt(candidate) for each candidate in order and returns the first
    result. When every candidate fails, raises the last failure with all of
    them attached as `failures`.
    """
    failures: List[RemoteServiceError] = []
    for candidate in candidates:
        try:
            return attempt(candidate)
        except RemoteServiceError as e:
            logger.warning(f"Candidate {candidate} failed: {e.message}")
            failures.append(e)

    if failures:
        last = failures[-1]
        error = RemoteServiceError(last.message, status_code=last.status_code)
    else:
        error = RemoteServiceError("All models failed")
    error.failures = failures
    raise error


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"HTTP {response.status_code}"


class AIGateway:
    """
    Client for the chat edge function and the Gemini quiz models.
    """

    def __init__(
        self,
        chat_url: Optional[str] = None,
        chat_key: Optional[str] = None,
        gemini_key: Optional[str] = None,
        gemini_base_url: Optional[str] = None,
        candidates: Optional[Sequence[ModelCandidate]] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.chat_url = chat_url or config.CHAT_API_URL
        self.chat_key = chat_key if chat_key is not None else config.CHAT_API_KEY
        self.gemini_key = gemini_key if gemini_key is not None else config.GEMINI_API_KEY
        self.gemini_base_url = gemini_base_url or config.GEMINI_BASE_URL
        self.candidates = list(candidates) if candidates is not None else list(QUIZ_MODEL_CANDIDATES)
        self.http = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT

        if not self.chat_key:
            logger.warning("CHAT_API_KEY is not set. Chat requests will fail.")
        if not self.gemini_key:
            logger.warning("GEMINI_API_KEY is not set. Quiz generation will fail.")

    def ask_chat(self, message: str) -> str:
        if not self.chat_key:
            raise RemoteServiceError("CHAT_API_KEY is missing. Please check your .env file.", http_status=500)

        headers = {
            "Authorization": f"Bearer {self.chat_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.http.post(
                self.chat_url,
                headers=headers,
                json={"message": message},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteServiceError(f"Request failed: {e}") from e

        if not response.ok:
            raise RemoteServiceError(_error_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteServiceError("Unexpected response format from chat service.") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise RemoteServiceError("Unexpected response format from chat service.")
        return text

    def _generate_with(self, candidate: ModelCandidate, prompt: str) -> str:
        payload = {
            "contents": [{"parts": [{"text": build_quiz_prompt(prompt)}]}],
            "generationConfig": GENERATION_CONFIG,
        }
        try:
            response = self.http.post(
                candidate.url(self.gemini_base_url),
                params={"key": self.gemini_key},
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteServiceError(f"Request failed: {e}") from e

        if not response.ok:
            raise RemoteServiceError(_error_message(response), status_code=response.status_code)

        try:
            data: Any = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RemoteServiceError(f"Unexpected response format from {candidate.model}.") from e
        if not isinstance(text, str):
            raise RemoteServiceError(f"Unexpected response format from {candidate.model}.")

        logger.info(f"Quiz generated with {candidate.version}/{candidate.model}")
        return text

    def generate_quiz(self, prompt: str) -> str:
        if not self.gemini_key:
            raise RemoteServiceError("GEMINI_API_KEY is missing. Please check your .env file.", http_status=500)
        return first_success(self.candidates, lambda candidate: self._generate_with(candidate, prompt))
