import pytest
from fastapi.testclient import TestClient

import speech
from conftest import QUIZ_ITEMS, FakeGateway
from errors import RemoteServiceError
from main import app, get_state
from state import AppState


@pytest.fixture
def client(state):
    app.dependency_overrides[get_state] = lambda: state
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_chat_creates_and_lists_session(client, gateway):
    gateway.reply = "CO2 is at about 421 ppm."
    response = client.post("/chat", json={"message": "What is the CO2 level?"})

    assert response.status_code == 200
    body = response.json()
    assert body["applied"] is True
    assert body["user_message"]["topic"] == "Climate Science"
    assert body["assistant_message"]["chart"][0] == {"year": 1960, "co2": 316.91}

    sessions = client.get("/chat/list").json()
    assert [s["id"] for s in sessions] == [body["session_id"]]
    assert sessions[0]["title"] == "What is the CO2 level?"
    assert client.get("/chat/current").json()["id"] == body["session_id"]


def test_chat_rejects_empty_message(client):
    assert client.post("/chat", json={"message": "  "}).status_code == 400


def test_chat_upstream_failure_is_inline_text(client, state):
    state.gateway = FakeGateway(error=RemoteServiceError("HTTP 500"))
    response = client.post("/chat", json={"message": "hello"})
    assert response.status_code == 200
    assert "HTTP 500" in response.json()["assistant_message"]["text"]


def test_session_lifecycle(client):
    created = client.post("/chat/new").json()
    assert created["title"] == "New Chat"

    turn = client.post(f"/chat/{created['id']}/message", json={"message": "Paris treaty?"}).json()
    assert turn["user_message"]["topic"] == "Policy"

    renamed = client.patch(f"/chat/{created['id']}", json={"title": "Policy notes", "conversation_id": "conv-1"}).json()
    assert renamed["title"] == "Policy notes"
    assert renamed["conversation_id"] == "conv-1"

    other = client.post("/chat/new").json()
    assert client.post(f"/chat/{created['id']}/select").json()["id"] == created["id"]

    deleted = client.delete(f"/chat/{created['id']}").json()
    assert deleted == {"deleted": True, "chat_id": created["id"], "current_chat_id": other["id"]}
    assert client.get(f"/chat/{created['id']}").status_code == 404


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/chat/missing"),
        ("post", "/chat/missing/select"),
        ("delete", "/chat/missing"),
    ],
)
def test_unknown_chat_is_404(client, method, path):
    assert getattr(client, method)(path).status_code == 404


def test_rename_to_blank_is_400(client):
    created = client.post("/chat/new").json()
    assert client.patch(f"/chat/{created['id']}", json={"title": " "}).status_code == 400


def test_co2_data(client):
    data = client.get("/data/co2").json()
    assert data[-1]["year"] == 2023


def test_quiz_round(client):
    quiz = client.post("/quiz/generate", json={"prompt": "sea level rise"}).json()
    assert [q["id"] for q in quiz["questions"]] == [1, 2, 3, 4, 5]
    assert "correctAnswer" in quiz["questions"][0]

    assert client.post(f"/quiz/{quiz['id']}/finish").status_code == 409

    for question, item in zip(quiz["questions"], QUIZ_ITEMS):
        result = client.post(
            f"/quiz/{quiz['id']}/answer",
            json={"question_id": question["id"], "selected": item["correctAnswer"]},
        ).json()
        assert result["correct"] is True

    again = client.post(f"/quiz/{quiz['id']}/answer", json={"question_id": 1, "selected": 0})
    assert again.status_code == 409

    entry = client.post(f"/quiz/{quiz['id']}/finish").json()
    assert (entry["score"], entry["total_questions"]) == (5, 5)

    history = client.get("/quiz/history").json()
    assert [h["id"] for h in history] == [entry["id"]]

    assert client.delete(f"/quiz/history/{entry['id']}").json()["deleted"] is True
    assert client.get("/quiz/history").json() == []
    assert client.delete(f"/quiz/history/{entry['id']}").status_code == 404


def test_quiz_answer_validation(client):
    quiz = client.post("/quiz/generate", json={"prompt": "oceans"}).json()
    assert client.post(f"/quiz/{quiz['id']}/answer", json={"question_id": 9, "selected": 0}).status_code == 404
    assert client.post(f"/quiz/{quiz['id']}/answer", json={"question_id": 1, "selected": 7}).status_code == 400
    assert client.post("/quiz/nope/answer", json={"question_id": 1, "selected": 0}).status_code == 404


def test_quiz_generation_error_is_422(client, state):
    state.gateway = FakeGateway(quiz_text="not json at all")
    response = client.post("/quiz/generate", json={"prompt": "oceans"})
    assert response.status_code == 422
    assert "try again" in response.json()["error"]


def test_quiz_upstream_failure_is_502(client, state):
    state.gateway = FakeGateway(error=RemoteServiceError("All models failed"))
    response = client.post("/quiz/generate", json={"prompt": "oceans"})
    assert response.status_code == 502
    assert response.json() == {"error": "All models failed"}


def test_speech_to_text(client, monkeypatch):
    calls = []

    def fake_transcribe(audio, filename, content_type, model_id):
        calls.append((audio, filename, model_id))
        return "how does solar work"

    monkeypatch.setattr(speech, "transcribe", fake_transcribe)
    response = client.post(
        "/speech-to-text",
        files={"file": ("clip.webm", b"audio", "audio/webm")},
        data={"model_id": "scribe_v1"},
    )
    assert response.json() == {"text": "how does solar work"}
    assert calls == [(b"audio", "clip.webm", "scribe_v1")]


def test_speech_to_text_without_file(client):
    response = client.post("/speech-to-text", data={"model_id": "scribe_v1"})
    assert response.status_code == 400
    assert response.json() == {"error": "No audio file provided"}


def test_signed_url(client, monkeypatch):
    monkeypatch.setattr(speech, "get_signed_url", lambda agent_type: f"wss://{agent_type}")
    assert client.post("/elevenlabs-url", json={"agentType": "climate"}).json() == {"signedUrl": "wss://climate"}


def test_signed_url_missing_credentials(client, monkeypatch):
    def fail(agent_type):
        raise RemoteServiceError("ElevenLabs credentials not configured", http_status=500)

    monkeypatch.setattr(speech, "get_signed_url", fail)
    response = client.post("/elevenlabs-url", json={})
    assert response.status_code == 500
    assert response.json() == {"error": "ElevenLabs credentials not configured"}


def test_chat_survives_storage_write_failure(client, state, backend, monkeypatch):
    async def failing_write(key, text):
        raise OSError("disk full")

    monkeypatch.setattr(backend, "write", failing_write)
    response = client.post("/chat", json={"message": "What is CO2?"})

    assert response.status_code == 200
    assert len(state.current_session.messages) == 2


def test_signed_url_without_body(client, monkeypatch):
    def fail(agent_type):
        assert agent_type is None
        raise RemoteServiceError("ElevenLabs credentials not configured", http_status=500)

    monkeypatch.setattr(speech, "get_signed_url", fail)
    response = client.post("/elevenlabs-url")
    assert response.status_code == 500
    assert response.json() == {"error": "ElevenLabs credentials not configured"}
