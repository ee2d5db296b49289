import asyncio

import pytest

from conftest import FakeExtractor, FakeLLM, make_pages
from studyloop.chat import ERROR_REPLY, ChatService
from studyloop.errors import ChatBusy, NoActiveDocument
from studyloop.persistence import ChatTranscriptStore, chat_history_key
from studyloop.registry import DocumentRegistry


def _service(store, llm=None, names=("a.pdf",)):
    registry = DocumentRegistry(FakeExtractor(make_pages(3)))

    async def load():
        for name in names:
            await registry.add(name, b"")

    asyncio.run(load())
    return ChatService(registry, ChatTranscriptStore(store), llm or FakeLLM(), context_chars=50), registry


def test_send_appends_and_persists_in_order(store):
    llm = FakeLLM(chat_reply="Page one says so (p. 1, \"p1w0\").")
    chat, _ = _service(store, llm)
    messages = asyncio.run(chat.send("What is on page one?"))
    assert [(m.role, m.text) for m in messages] == [
        ("user", "What is on page one?"),
        ("model", "Page one says so (p. 1, \"p1w0\")."),
    ]
    assert chat.history() == messages
    history, system = llm.chat_calls[0]
    assert history[-1].text == "What is on page one?"
    assert "[Page 1]" in system
    assert "p3w0" not in system


def test_concurrent_send_is_rejected(store):
    llm = FakeLLM()
    llm.chat_gate = asyncio.Event()
    chat, _ = _service(store, llm)

    async def scenario():
        first = asyncio.create_task(chat.send("first"))
        await asyncio.sleep(0)
        assert chat.is_responding()
        with pytest.raises(ChatBusy):
            await chat.send("second")
        llm.chat_gate.set()
        await first

    asyncio.run(scenario())
    assert [m.text for m in chat.history() if m.role == "user"] == ["first"]


def test_clear_is_rejected_while_a_reply_is_pending(store):
    llm = FakeLLM()
    llm.chat_gate = asyncio.Event()
    chat, _ = _service(store, llm)

    async def scenario():
        pending = asyncio.create_task(chat.send("hello"))
        await asyncio.sleep(0)
        with pytest.raises(ChatBusy):
            chat.clear()
        llm.chat_gate.set()
        await pending

    asyncio.run(scenario())
    assert [m.role for m in chat.history()] == ["user", "model"]
    chat.clear()
    assert chat_history_key("a.pdf") not in store.data


def test_zero_context_chars_is_respected(store):
    llm = FakeLLM()
    chat = ChatService(_service(store)[1], ChatTranscriptStore(store), llm, context_chars=0)
    asyncio.run(chat.send("anything?"))
    _, system = llm.chat_calls[0]
    assert "[Page 1]" not in system


def test_failed_reply_becomes_apology(store):
    chat, _ = _service(store, FakeLLM(error=RuntimeError("503")))
    messages = asyncio.run(chat.send("hello?"))
    assert messages[-1].role == "model"
    assert messages[-1].text == ERROR_REPLY


def test_blank_input_is_ignored(store):
    llm = FakeLLM()
    chat, _ = _service(store, llm)
    assert asyncio.run(chat.send("   ")) == []
    assert llm.chat_calls == []


def test_transcripts_follow_the_active_document(store):
    chat, registry = _service(store, names=("a.pdf", "b.pdf"))
    asyncio.run(chat.send("about b"))
    registry.activate("a.pdf")
    assert chat.history() == []
    asyncio.run(chat.send("about a"))
    assert [m.text for m in chat.history("b.pdf")][0] == "about b"
    chat.clear()
    assert chat_history_key("a.pdf") not in store.data
    assert chat_history_key("b.pdf") in store.data


def test_no_active_document(store):
    chat = ChatService(DocumentRegistry(FakeExtractor()), ChatTranscriptStore(store), FakeLLM())
    with pytest.raises(NoActiveDocument):
        chat.history()
