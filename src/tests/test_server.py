import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeExtractor, FakeLLM, make_pages, mcq_payload
from studyloop.config import settings
from studyloop.persistence import MemoryStore
from studyloop.registry import DocumentRegistry
from studyloop.server import create_app


class StaticProbe:
    def __init__(self, valid):
        self.valid = set(valid)

    async def exists(self, video_id: str) -> bool:
        return video_id in self.valid


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def client(tmp_path, monkeypatch, llm):
    monkeypatch.setattr(settings.paths, "uploads_dir", tmp_path / "uploads")
    app = create_app(
        registry=DocumentRegistry(FakeExtractor(make_pages(10))),
        llm=llm,
        store=MemoryStore(),
        probe=StaticProbe({"dQw4w9WgXcQ"}),
    )
    return TestClient(app)


def _upload(client: TestClient, name: str = "physics.pdf"):
    return client.post("/documents", files={"file": (name, b"%PDF-1.4 fake", "application/pdf")})


def test_injected_empty_collaborators_are_kept():
    registry = DocumentRegistry(FakeExtractor())
    store = MemoryStore()
    app = create_app(registry=registry, llm=FakeLLM(), store=store)
    assert app.state.registry is registry
    assert app.state.attempts.store is store


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_are_exposed(client, llm):
    _upload(client)
    llm.replies.append("not json")
    client.post("/quiz", json={"start": 1, "end": 2})
    body = client.get("/metrics/").text
    assert "studyloop_malformed_responses_total" in body


def test_upload_list_and_duplicate(client, tmp_path):
    response = _upload(client)
    assert response.status_code == 201
    assert response.json() == {"name": "physics.pdf", "pages": 10}
    assert (tmp_path / "uploads" / "physics.pdf").exists()

    _upload(client, "chemistry.pdf")
    assert client.get("/documents").json()["active"] == "chemistry.pdf"

    duplicate = _upload(client)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "DuplicateDocument"
    view = client.get("/documents").json()
    assert view["active"] == "physics.pdf"
    assert [d["name"] for d in view["documents"]] == ["physics.pdf", "chemistry.pdf"]


def test_activate_and_remove(client):
    _upload(client, "a.pdf")
    _upload(client, "b.pdf")
    assert client.post("/documents/missing.pdf/activate").status_code == 404
    assert client.post("/documents/a.pdf/activate").json()["active"] == "a.pdf"
    assert client.delete("/documents/a.pdf").json()["active"] == "b.pdf"
    assert client.delete("/documents/b.pdf").json()["active"] is None


def test_operations_without_document_are_404(client):
    assert client.post("/quiz", json={}).status_code == 404
    assert client.get("/chat").status_code == 404
    assert client.post("/recommendations").json()["error"] == "NoActiveDocument"


def test_pages_window(client):
    _upload(client)
    body = client.get("/documents/active/pages", params={"start": 2, "end": 3}).json()
    assert body["text"].startswith("[Page 2]")
    assert "[Page 4]" not in body["text"]
    assert client.get("/documents/active/pages", params={"start": 9, "end": 3}).status_code == 422


def test_quiz_generate_and_grade(client, llm):
    _upload(client)
    llm.replies.append(json.dumps(mcq_payload(2)))
    quiz = client.post("/quiz", json={"start": 1, "end": 10, "count": 2}).json()
    questions = quiz["questions"]
    assert [q["type"] for q in questions] == ["MCQ", "MCQ"]

    llm.replies.append(json.dumps([{"score": 1, "feedback": "Correct."}, {"score": 1, "feedback": "?"}]))
    attempt = client.post("/quiz/grade", json={"questions": questions, "user_answers": ["right 0"]}).json()
    assert attempt["score"] == 1
    assert attempt["total"] == 2
    assert attempt["userAnswers"] == ["right 0", ""]
    assert attempt["documentIdentity"] == "physics.pdf"

    assert [a["id"] for a in client.get("/attempts").json()] == [attempt["id"]]
    summary = client.get("/attempts/summary").json()
    assert summary["attempts"] == 1
    assert summary["overallPercent"] == 50.0

    assert client.delete("/attempts").status_code == 204
    assert client.get("/attempts").json() == []


def test_malformed_generation_is_502(client, llm):
    _upload(client)
    llm.replies.append("I could not produce a quiz.")
    response = client.post("/quiz", json={"start": 1, "end": 2})
    assert response.status_code == 502
    assert response.json()["error"] == "GenerationMalformed"


def test_invalid_question_payload_is_422(client):
    _upload(client)
    response = client.post("/quiz/grade", json={"questions": [{"type": "Essay"}], "user_answers": []})
    assert response.status_code == 422


def test_chat_roundtrip(client, llm):
    _upload(client)
    messages = client.post("/chat", json={"message": "What is inertia?"}).json()
    assert [m["role"] for m in messages] == ["user", "model"]
    assert messages[1]["text"] == llm.chat_reply
    assert client.get("/chat").json() == messages
    assert client.delete("/chat").status_code == 204
    assert client.get("/chat").json() == []


def test_recommendations_only_return_confirmed_videos(client, llm):
    _upload(client)
    llm.replies.append(
        json.dumps(
            [
                {"title": "Real", "description": "d", "youtubeUrl": "https://youtu.be/dQw4w9WgXcQ"},
                {"title": "Invented", "description": "d", "youtubeUrl": "https://youtu.be/zzzzzzzzzzz"},
            ]
        )
    )
    body = client.post("/recommendations", json={"start": 1, "end": 3}).json()
    assert [r["title"] for r in body["recommendations"]] == ["Real"]
    assert body["recommendations"][0]["isValid"] is True
    assert body["candidates"] == 2
    assert body["noneConfirmed"] is False
    assert "[Page 4]" not in llm.calls[0][0]
