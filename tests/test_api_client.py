"""Tests for the REST client against the in-memory backend."""
import httpx
import pytest

from pagelm.models.subject import SourceType
from pagelm.services.api_client import (
    BackendError,
    BackendUnavailableError,
    PageLMClient,
    UntrustedOriginError,
)


async def test_subject_crud(api):
    created = await api.create_subject("Biology")
    assert created.name == "Biology"

    renamed = await api.rename_subject(created.id, "Bio 101")
    assert renamed.name == "Bio 101"

    subjects = await api.list_subjects()
    assert [s.name for s in subjects] == ["Bio 101"]

    await api.delete_subject(created.id)
    assert await api.list_subjects() == []


async def test_error_detail_comes_from_body(api):
    with pytest.raises(BackendError) as exc:
        await api.get_subject("missing")
    assert exc.value.status_code == 404
    assert exc.value.detail == "subject not found"
    assert str(exc.value) == "http 404: subject not found"


async def test_upload_sends_source_type_and_files(api, backend, subject):
    res = await api.upload_sources(
        subject["id"],
        [("notes.pdf", b"%PDF-1.4", "application/pdf"), ("ex.txt", b"1+1", "text/plain")],
        SourceType.EXERCISE,
    )
    assert [s.original_name for s in res.sources] == ["notes.pdf", "ex.txt"]
    assert all(s.source_type == SourceType.EXERCISE for s in res.sources)

    fetched, sources = await api.get_subject(subject["id"])
    assert fetched.source_count == 2
    assert sources[0].mime_type == "application/pdf"


async def test_upload_from_path(api, subject, tmp_path):
    path = tmp_path / "cells.md"
    path.write_text("# Cells")
    res = await api.upload_sources(subject["id"], [path])
    assert res.sources[0].original_name == "cells.md"
    assert res.sources[0].source_type == SourceType.MATERIAL


async def test_start_job_returns_id_field(api, backend, subject):
    body = await api.start_job(subject["id"], "podcast", {"topic": "Cells"})
    assert body["pid"]
    assert backend.last_request("/podcast") == {"topic": "Cells"}


async def test_chat_start_omits_empty_fields(api, backend, subject):
    start = await api.chat_start(subject["id"], "What is ATP?")
    assert start.chat_id
    assert backend.last_request("/chat") == {"q": "What is ATP?"}

    again = await api.chat_start(subject["id"], "And ADP?", chat_id=start.chat_id, provider="openai")
    assert again.chat_id == start.chat_id
    assert backend.last_request("/chat") == {"q": "And ADP?", "chatId": start.chat_id, "provider": "openai"}


async def test_models_and_transcription(api, subject):
    models = await api.list_models()
    assert models.default_provider == "openai"
    assert models.providers[0].default_model == "gpt-4o-mini"

    res = await api.transcribe(subject["id"], ("memo.webm", b"\x00\x01", "audio/webm"))
    assert res.ok
    assert res.transcription == "heard memo.webm"


async def test_flashcards(api, subject):
    from pagelm.models.flashcard import FlashcardCreate

    card = await api.create_flashcard(subject["id"], FlashcardCreate(question="Q", answer="A", tag="bio"))
    assert [c.id for c in await api.list_flashcards(subject["id"])] == [card.id]
    await api.delete_flashcard(subject["id"], card.id)
    assert await api.list_flashcards(subject["id"]) == []


def test_ws_url_uses_backend_host_only():
    client = PageLMClient("https://example.org:8443/api")
    assert client.ws_url("/ws/quiz", quizId="q 1") == "wss://example.org:8443/ws/quiz?quizId=q+1"
    assert PageLMClient("http://localhost:5000").ws_url("/ws/chat") == "ws://localhost:5000/ws/chat"


@pytest.mark.parametrize("url", [
    "https://evil.example/notes.md",
    "//evil.example/notes.md",
    "http://pagelm.test:8080/notes.md",
    "https://pagelm.test/notes.md",
])
def test_resolve_rejects_other_origins(url):
    client = PageLMClient("http://pagelm.test")
    with pytest.raises(UntrustedOriginError):
        client.resolve_backend_url(url)


def test_resolve_accepts_relative_and_same_origin():
    client = PageLMClient("http://pagelm.test")
    assert client.resolve_backend_url("/files/a.md") == "http://pagelm.test/files/a.md"
    assert client.resolve_backend_url("http://PAGELM.test:80/x").endswith("/x")


async def test_fetch_backend_content(api, backend):
    backend.files["notes.md"] = "# Notes"
    backend.files["cards.json"] = '{"q": "ATP?"}'
    assert await api.fetch_backend_content("/files/notes.md") == "# Notes"
    # JSON files come back verbatim rather than decoded
    assert await api.fetch_backend_content("/files/cards.json") == '{"q": "ATP?"}'
    with pytest.raises(UntrustedOriginError):
        await api.fetch_backend_bytes("https://evil.example/files/notes.md")


async def test_transport_failure_is_wrapped():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    client = PageLMClient("http://pagelm.test", transport=httpx.MockTransport(refuse))
    with pytest.raises(BackendUnavailableError):
        await client.list_subjects()
    await client.aclose()


async def test_mindmap_roundtrip(api, backend, subject):
    from pagelm.models.graph import GraphNode, KnowledgeGraph

    sid = subject["id"]
    assert await api.get_mindmap(sid) is None

    graph = KnowledgeGraph(nodes=[GraphNode(id="cell", label="Cell")])
    await api.save_mindmap(sid, "t1", graph)
    assert backend.last_request("/mindmap")["toolId"] == "t1"
    assert [n.id for n in (await api.get_mindmap(sid)).nodes] == ["cell"]

    edited = await api.ai_edit_mindmap(sid, "t1", "Add mitochondria", graph, provider="ollama")
    assert [n.id for n in edited.nodes] == ["cell", "added"]
    body = backend.last_request("/mindmap/ai-edit")
    assert body["provider"] == "ollama"
    assert "model" not in body

    await api.delete_mindmap(sid)
    assert await api.get_mindmap(sid) is None


async def test_chat_rename_and_delete(api, backend, subject):
    sid = subject["id"]
    backend.chats[sid]["c1"] = {"id": "c1", "title": "Old", "at": 1, "messages": []}
    chat = await api.rename_chat(sid, "c1", "Photosynthesis")
    assert chat.title == "Photosynthesis"

    await api.delete_chat(sid, "c1")
    assert await api.list_chats(sid) == []
    with pytest.raises(BackendError) as exc:
        await api.delete_chat(sid, "c1")
    assert exc.value.status_code == 404
