import json

import pytest

from models import ChatSession, QuizHistoryEntry
from state import AppState
from storage import FileBackend, SessionStore

QUIZ_ITEMS = [
    {
        "question": f"Question {n}?",
        "options": ["A", "B", "C", "D"],
        "correctAnswer": n % 4,
        "explanation": f"Because {n}.",
    }
    for n in range(1, 6)
]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeHttp:
    """Stands in for requests.Session; replays queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeGateway:
    def __init__(self, reply="Climate is the long-term pattern of weather.", quiz_text=None, error=None):
        self.reply = reply
        self.quiz_text = quiz_text if quiz_text is not None else json.dumps(QUIZ_ITEMS)
        self.error = error
        self.messages = []
        self.prompts = []

    def ask_chat(self, message):
        self.messages.append(message)
        if self.error:
            raise self.error
        return self.reply

    def generate_quiz(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.quiz_text


@pytest.fixture
def backend(tmp_path):
    return FileBackend(tmp_path / "storage")


@pytest.fixture
def chat_store(backend):
    return SessionStore(backend, "climatesage-chat-sessions", ChatSession)


@pytest.fixture
def history_store(backend):
    return SessionStore(backend, "climatesage-quiz-history", QuizHistoryEntry)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def state(gateway, chat_store, history_store):
    return AppState(gateway, chat_store=chat_store, history_store=history_store)
